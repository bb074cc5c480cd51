from datetime import datetime, timedelta, timezone

from quiztrack.analytics import ACHIEVEMENTS, StatisticsEngine
from quiztrack.schemas import QuestionProgress, QuestionType, SessionInput, SessionRecord
from quiztrack.utils.catalog import ModuleCatalog

CATALOG = ModuleCatalog({
    "specialties": {
        "cardio": {"name": "Cardiology", "modules": [{"id": "m1", "name": "Heart Failure"}]},
    }
})


def _put_sessions(store, user_id, sessions):
    record = store.load(user_id)
    record.sessions = sessions
    store.save(user_id, record)


def _session(completed_at, module_id="m1", correct=2, incorrect=1, total=3, seconds=60):
    data = SessionInput(
        module_id=module_id,
        correct_count=correct,
        incorrect_count=incorrect,
        total_questions=total,
        time_spent_seconds=seconds,
    )
    score = round(100 * correct / total) if total else 0
    return SessionRecord(**data.model_dump(), score=score, completed_at=completed_at)


def _engine(store, clock, **kwargs):
    return StatisticsEngine(store, clock=clock, **kwargs)


def test_empty_user_has_zeroed_sections(store, clock):
    stats = _engine(store, clock)
    overview = stats.overview("u1")
    assert overview.accuracy == 0
    assert overview.total_sessions == 0
    assert stats.time_analysis("u1").model_dump() == {
        "average_session_time": 0,
        "fastest_session": 0,
        "longest_session": 0,
        "total_time_minutes": 0,
        "average_time_per_question": 0,
    }
    streaks = stats.streaks("u1")
    assert (streaks.current_streak, streaks.longest_streak, streaks.streak_history) == (0, 0, [])
    assert stats.problem_questions("u1") == []
    assert stats.achievements("u1") == []
    recent = stats.recent_performance("u1")
    assert len(recent.daily_data) == 7
    assert recent.average_score == 0


def test_overview_accuracy_rounds_half_up(store, clock):
    store.record_answer("u1", "m1", 0, True)
    store.record_answer("u1", "m1", 1, True)
    store.record_answer("u1", "m1", 2, False)
    overview = _engine(store, clock).overview("u1")
    assert overview.total_questions == 3
    assert overview.accuracy == 67
    assert overview.last_activity_at == clock()


def test_recent_performance_buckets_last_seven_days(store, clock):
    now = clock()
    _put_sessions(store, "u1", [
        _session(now - timedelta(days=9)),
        _session(now - timedelta(days=6), correct=1, incorrect=0, total=1),
        _session(now - timedelta(hours=1), correct=1, incorrect=1, total=2, seconds=30),
        _session(now, correct=0, incorrect=2, total=2),
    ])
    recent = _engine(store, clock).recent_performance("u1")
    assert [b.date for b in recent.daily_data] == [(now - timedelta(days=d)).date() for d in range(6, -1, -1)]
    assert recent.daily_data[0].sessions == 1
    today = recent.daily_data[-1]
    assert (today.sessions, today.correct, today.incorrect, today.total_time) == (2, 1, 3, 90)
    # the nine-day-old session is outside the window
    assert recent.total_sessions == 3
    assert recent.average_score == 50


def test_module_breakdown_sorted_by_sessions(store, clock):
    now = clock()
    _put_sessions(store, "u1", [
        _session(now, module_id="m2", correct=1, incorrect=0, total=1),
        _session(now, module_id="m1", correct=1, incorrect=2, total=3),
        _session(now, module_id="m1", correct=3, incorrect=0, total=3),
        _session(now, module_id="m3"),
    ])
    rows = _engine(store, clock, catalog=CATALOG).module_breakdown("u1")
    assert [r.module_id for r in rows] == ["m1", "m2", "m3"]
    m1 = rows[0]
    assert m1.module_name == "Heart Failure"
    assert rows[1].module_name == "m2"
    assert (m1.sessions, m1.total_questions, m1.correct_count, m1.best_score, m1.average_score) == (2, 6, 4, 100, 67)


def test_time_analysis(store, clock):
    now = clock()
    _put_sessions(store, "u1", [
        _session(now, total=4, seconds=30),
        _session(now, total=4, seconds=91),
    ])
    analysis = _engine(store, clock).time_analysis("u1")
    assert analysis.average_session_time == 61
    assert analysis.fastest_session == 30
    assert analysis.longest_session == 91
    assert analysis.total_time_minutes == 2
    assert analysis.average_time_per_question == 15


def test_streaks_with_gap(store, clock):
    day1 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
    _put_sessions(store, "u1", [
        _session(day1),
        _session(day1 + timedelta(hours=5)),
        _session(day1 + timedelta(days=1)),
        _session(day1 + timedelta(days=2)),
        _session(day1 + timedelta(days=9)),
    ])
    stats = _engine(store, clock)

    clock.now = day1 + timedelta(days=9, hours=3)
    streaks = stats.streaks("u1")
    assert streaks.longest_streak == 3
    assert streaks.current_streak == 1
    assert streaks.total_active_days == 4

    # yesterday still counts as active
    clock.now = day1 + timedelta(days=10)
    assert stats.streaks("u1").current_streak == 1

    clock.now = day1 + timedelta(days=11)
    streaks = stats.streaks("u1")
    assert streaks.current_streak == 0
    assert streaks.longest_streak == 3


def test_streak_history_keeps_last_thirty_days(store, clock):
    start = clock() - timedelta(days=39)
    _put_sessions(store, "u1", [_session(start + timedelta(days=d)) for d in range(40)])
    streaks = _engine(store, clock).streaks("u1")
    assert streaks.current_streak == 40
    assert len(streaks.streak_history) == 30
    assert streaks.streak_history[-1] == clock().date()


def test_problem_questions_ranked_by_error_rate(store, clock):
    record = store.load("u1")
    record.progress = {
        "m1": {
            "m1_0": QuestionProgress(seen=4, correct=1, incorrect=3),
            "m1_1": QuestionProgress(seen=2, correct=0, incorrect=2),
            "m1_2": QuestionProgress(seen=1, correct=0, incorrect=1),
            "m1_3": QuestionProgress(seen=4, correct=2, incorrect=2),
        },
        "m2": {"m2_7": QuestionProgress(seen=3, correct=0, incorrect=3)},
    }
    store.save("u1", record)
    problems = _engine(store, clock, catalog=CATALOG).problem_questions("u1")
    assert [(p.module_id, p.question_index, p.error_rate) for p in problems] == [
        ("m1", 1, 100),
        ("m2", 7, 100),
        ("m1", 0, 75),
    ]
    assert problems[0].module_name == "Heart Failure"


def test_problem_questions_limited_to_ten(store, clock):
    record = store.load("u1")
    record.progress = {"m1": {f"m1_{i}": QuestionProgress(seen=2, correct=0, incorrect=2) for i in range(15)}}
    store.save("u1", record)
    problems = _engine(store, clock).problem_questions("u1")
    assert len(problems) == 10
    assert [p.question_index for p in problems] == list(range(10))


def _set_totals(store, correct, incorrect, total_time=0):
    record = store.load("u1")
    record.statistics.total_correct = correct
    record.statistics.total_incorrect = incorrect
    record.statistics.total_questions = correct + incorrect
    record.statistics.total_time = total_time
    record.statistics.last_activity_at = store.clock()
    store.save("u1", record)


def test_accuracy_badge_requires_fifty_questions(store, clock):
    stats = _engine(store, clock)
    _set_totals(store, correct=49, incorrect=0)
    ids = [a.id for a in stats.achievements("u1")]
    assert "accuracy_90" not in ids
    assert "questions_10" in ids

    _set_totals(store, correct=50, incorrect=0)
    ids = [a.id for a in stats.achievements("u1")]
    assert "accuracy_90" in ids
    assert "questions_50" in ids
    assert "accuracy_80" not in ids


def test_achievements_carry_last_activity_and_keep_definition_order(store, clock):
    _set_totals(store, correct=95, incorrect=5, total_time=11 * 3600)
    unlocked = _engine(store, clock).achievements("u1")
    ids = [a.id for a in unlocked]
    definition_order = [a["id"] for a in ACHIEVEMENTS]
    assert ids == [i for i in definition_order if i in ids]
    assert ids == ["questions_10", "questions_50", "questions_100", "accuracy_90", "accuracy_80", "time_10h"]
    assert all(a.unlocked_at == clock() for a in unlocked)


def test_evolution_series_daily_means(store, clock):
    now = clock()
    _put_sessions(store, "u1", [
        _session(now - timedelta(days=40)),
        _session(now - timedelta(days=2), correct=1, incorrect=1, total=2),
        _session(now - timedelta(days=2), correct=3, incorrect=0, total=3),
        _session(now, correct=0, incorrect=3, total=3),
    ])
    series = _engine(store, clock).evolution_series("u1")
    assert [(p.date, p.average_score, p.sessions, p.questions) for p in series] == [
        ((now - timedelta(days=2)).date(), 75, 2, 5),
        (now.date(), 0, 1, 3),
    ]
    assert len(_engine(store, clock).evolution_series("u1", window_days=1)) == 1


def test_performance_by_type(store, clock, build_provider, build_questions):
    questions = build_questions(2, qtype=QuestionType.CONTEUDISTA) + build_questions(1, qtype=QuestionType.RACIOCINIO)
    provider = build_provider({"m1": questions})
    store.record_answer("u1", "m1", 0, True)
    store.record_answer("u1", "m1", 1, False)
    store.record_answer("u1", "m1", 2, True)
    # unknown module is skipped
    store.record_answer("u1", "gone", 0, True)
    result = _engine(store, clock, question_provider=provider).performance_by_type("u1")
    assert result["conteudista"].model_dump() == {"correct": 1, "incorrect": 1, "total": 2, "accuracy": 50}
    assert result["raciocinio"].accuracy == 100


def test_dashboard_combines_sections(store, clock):
    store.record_answer("u1", "m1", 0, True)
    store.record_session("u1", SessionInput(module_id="m1", correct_count=1, incorrect_count=0, total_questions=1))
    dashboard = _engine(store, clock, catalog=CATALOG).dashboard("u1")
    payload = dashboard.model_dump(mode="json")
    assert set(payload) == {
        "overview", "recent_performance", "module_breakdown", "time_analysis",
        "streaks", "problem_questions", "achievements",
    }
    assert payload["overview"]["total_sessions"] == 1
    assert payload["module_breakdown"][0]["module_name"] == "Heart Failure"


def test_engine_does_not_modify_record(store, clock, medium):
    store.record_answer("u1", "m1", 0, False)
    store.record_answer("u1", "m1", 0, False)
    before = medium.get(store.user_key("u1"))
    _engine(store, clock, catalog=CATALOG).dashboard("u1")
    assert medium.get(store.user_key("u1")) == before
