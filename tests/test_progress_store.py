import json
from datetime import datetime, timedelta, timezone

import pytest

from quiztrack.errors import CapacityExceededError
from quiztrack.progress_store import ProgressStore, question_key
from quiztrack.repositories import InMemoryMedium
from quiztrack.schemas import DirectoryEntry, SessionInput


def _session(module_id="m1", correct=2, incorrect=1, total=3, seconds=60):
    return SessionInput(
        module_id=module_id,
        correct_count=correct,
        incorrect_count=incorrect,
        total_questions=total,
        time_spent_seconds=seconds,
    )


def test_load_missing_user_returns_empty_record(store, clock):
    record = store.load("u1")
    assert record.user_id == "u1"
    assert record.progress == {}
    assert record.sessions == []
    assert record.statistics.total_questions == 0
    assert record.created_at == clock()


@pytest.mark.parametrize("raw", ["{not json", json.dumps({"progress": {}}), json.dumps({"user_id": "u1"}), json.dumps([1, 2])])
def test_load_discards_invalid_records(store, medium, raw):
    medium.set(store.user_key("u1"), raw)
    record = store.load("u1")
    assert record.progress == {}
    assert record.sessions == []


def test_record_answer_keeps_counters_consistent(store):
    outcomes = [True, False, True, True, False]
    for i, ok in enumerate(outcomes):
        store.record_answer("u1", "m1", i % 2, ok)
    record = store.load("u1")
    stats = record.statistics
    assert stats.total_questions == len(outcomes)
    assert stats.total_questions == stats.total_correct + stats.total_incorrect
    assert stats.total_correct == 3
    assert sum(q.seen for m in record.progress.values() for q in m.values()) == stats.total_questions
    entry = record.progress["m1"][question_key("m1", 0)]
    assert (entry.seen, entry.correct, entry.incorrect) == (3, 2, 1)


def test_record_answer_updates_activity_timestamps(store, clock):
    clock.advance(minutes=5)
    progress = store.record_answer("u1", "m1", 0, True)
    assert progress.last_seen_at == clock()
    record = store.load("u1")
    assert record.statistics.last_activity_at == clock()
    assert record.last_updated_at == clock()


def test_record_session_computes_score_and_time(store, clock):
    session = store.record_session("u1", _session(correct=2, incorrect=1, total=3, seconds=90))
    assert session.score == 67
    assert session.completed_at == clock()
    record = store.load("u1")
    assert record.statistics.total_time == 90
    assert record.sessions[-1].score == 67


def test_record_session_with_no_questions_scores_zero(store):
    session = store.record_session("u1", _session(correct=0, incorrect=0, total=0))
    assert session.score == 0


def test_sessions_capped_at_one_hundred_oldest_evicted(store, clock):
    for i in range(105):
        store.record_session("u1", _session(module_id=f"m{i}"))
        clock.advance(seconds=1)
    sessions = store.load("u1").sessions
    assert len(sessions) == 100
    assert sessions[0].module_id == "m5"
    assert sessions[-1].module_id == "m104"


def test_record_session_refreshes_streaks(store, clock):
    for _ in range(3):
        store.record_session("u1", _session())
        clock.advance(days=1)
    stats = store.load("u1").statistics
    assert stats.streak_days == 3
    assert stats.longest_streak == 3
    clock.advance(days=5)
    store.record_session("u1", _session())
    stats = store.load("u1").statistics
    assert stats.streak_days == 1
    assert stats.longest_streak == 3


def test_position_only_reported_for_same_module(store):
    store.save_position("u1", "m1", 7)
    assert store.get_position("u1", "m1").model_dump() == {"question_index": 7, "has_position": True}
    assert store.get_position("u1", "m2").has_position is False
    assert store.get_position("u1", "m2").question_index == 0


def test_module_progress_counts_slots_and_is_idempotent(store):
    store.record_answer("u1", "m1", 0, True)
    store.record_answer("u1", "m1", 1, False)
    store.record_answer("u1", "m1", 1, False)
    # slot outside the requested range is ignored
    store.record_answer("u1", "m1", 9, True)
    first = store.module_progress("u1", "m1", 4)
    second = store.module_progress("u1", "m1", 4)
    assert first == second
    assert (first.seen, first.correct, first.total) == (2, 1, 4)
    assert first.seen_percentage == 50
    assert first.correct_percentage == 25


def test_module_progress_with_zero_questions(store):
    progress = store.module_progress("u1", "m1", 0)
    assert progress.seen_percentage == 0
    assert progress.correct_percentage == 0


def test_session_history_newest_first(store, clock):
    for i in range(12):
        store.record_session("u1", _session(module_id=f"m{i}"))
        clock.advance(minutes=1)
    history = store.session_history("u1")
    assert len(history) == 10
    assert history[0].module_id == "m11"
    assert history[-1].module_id == "m2"
    assert store.session_history("u1", limit=0) == []


def test_user_statistics_summary(store, clock):
    store.record_session("u1", _session(correct=1, incorrect=1, total=2))
    clock.advance(days=10)
    store.record_session("u1", _session(correct=3, incorrect=0, total=3))
    summary = store.user_statistics("u1")
    assert summary.total_sessions == 2
    assert summary.average_score == 75
    assert summary.recent_activity == 1


def test_capacity_exceeded_prunes_old_sessions_and_reraises(clock):
    medium = InMemoryMedium()
    store = ProgressStore(medium, clock=clock)
    store.upsert_user_directory_entry(DirectoryEntry(id="u1", username="ana", email="ana@x.io"))
    store.record_session("u1", _session())
    clock.advance(days=200)
    store.record_session("u1", _session())
    medium.max_bytes = len(medium.get(store.user_key("u1"))) + len(store.user_key("u1")) + 200
    with pytest.raises(CapacityExceededError):
        store.record_session("u1", _session(module_id="x" * 500))
    # the six-month-old session was pruned by the cleanup pass
    sessions = store.load("u1").sessions
    assert len(sessions) == 1


def test_clean_old_data_uses_calendar_months(store, clock):
    store.upsert_user_directory_entry(DirectoryEntry(id="u1", username="ana", email="ana@x.io"))
    store.record_session("u1", _session(module_id="old"))
    clock.now = datetime(2024, 9, 16, tzinfo=timezone.utc)
    store.record_session("u1", _session(module_id="new"))
    assert store.clean_old_data() == 1
    assert [s.module_id for s in store.load("u1").sessions] == ["new"]


def test_clear_all_data_removes_owned_keys(store, medium):
    store.record_answer("u1", "m1", 0, True)
    store.upsert_user_directory_entry(DirectoryEntry(id="u1", username="ana", email="ana@x.io"))
    store.set_active_user("u1")
    medium.set("unrelated", "keep")
    store.clear_all_data()
    assert medium.keys() == ["unrelated"]


def test_user_directory_merge_and_lookup(store, clock):
    store.upsert_user_directory_entry(
        DirectoryEntry(id="u1", username="ana", email="Ana@X.io", password_hash="h", created_at=clock())
    )
    merged = store.upsert_user_directory_entry(DirectoryEntry(id="u1", username="ana2", email="Ana@X.io"))
    assert merged.password_hash == "h"
    assert merged.username == "ana2"
    assert len(store.list_users()) == 1
    assert store.find_user_by_email("ana@x.io").id == "u1"
    assert store.get_user("missing") is None


def test_active_user_marker(store):
    assert store.get_active_user() is None
    store.set_active_user("u1")
    assert store.get_active_user() == "u1"
    store.clear_active_user()
    assert store.get_active_user() is None


def test_records_round_trip_through_sqlite(clock):
    from quiztrack.database import create_db_and_tables, make_engine
    from quiztrack.repositories import KeyValueRepository

    engine = make_engine(None)
    create_db_and_tables(engine)
    store = ProgressStore(KeyValueRepository(engine), clock=clock)
    store.record_answer("u1", "m1", 2, False)
    store.record_session("u1", _session())
    record = store.load("u1")
    assert record.progress["m1"]["m1_2"].incorrect == 1
    assert record.sessions[0].completed_at == clock()
    assert record.sessions[0].completed_at.tzinfo is not None
    assert store.user_key("u1") in store.medium.keys()
