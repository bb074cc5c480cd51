"""Dashboard statistics derived from a user's stored progress record.

Every method loads a fresh record from the progress store and recomputes
its result from scratch; nothing is cached and the record is never
modified. Results are pydantic models that serialize to plain JSON.
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List

from .progress_store import ProgressStore
from .schemas import (
    Achievement,
    DailyBucket,
    Dashboard,
    EvolutionPoint,
    ModuleStats,
    Overview,
    ProblemQuestion,
    RecentPerformance,
    Streaks,
    TimeAnalysis,
    TypePerformance,
    UserRecord,
)
from .utils.dates import calendar_date, streak_runs, utc_now
from .utils.numbers import mean_rounded, percent, round_half_up

QUESTION_MILESTONES = (10, 50, 100, 250, 500, 1000, 2500)
PROBLEM_QUESTION_LIMIT = 10
STREAK_HISTORY_DAYS = 30
RECENT_DAYS = 7


def _question_milestone(n: int):
    return {
        "id": f"questions_{n}",
        "name": f"{n} Questions",
        "description": f"Answered {n} questions",
        "icon": "📚",
        "unlocked": lambda ctx, n=n: ctx["total_questions"] >= n,
    }


# Evaluated in this order; the order is kept for achievements sharing a timestamp.
ACHIEVEMENTS = [_question_milestone(n) for n in QUESTION_MILESTONES] + [
    {
        "id": "accuracy_90",
        "name": "Master",
        "description": "90% accuracy with 50+ questions",
        "icon": "🏆",
        "unlocked": lambda ctx: ctx["accuracy"] >= 90 and ctx["total_questions"] >= 50,
    },
    {
        "id": "accuracy_80",
        "name": "Expert",
        "description": "80% accuracy with 100+ questions",
        "icon": "⭐",
        "unlocked": lambda ctx: ctx["accuracy"] >= 80 and ctx["total_questions"] >= 100,
    },
    {
        "id": "streak_7",
        "name": "Full Week",
        "description": "7 consecutive days of study",
        "icon": "🔥",
        "unlocked": lambda ctx: ctx["current_streak"] >= 7,
    },
    {
        "id": "streak_30",
        "name": "Dedicated Month",
        "description": "30 consecutive days of study",
        "icon": "💎",
        "unlocked": lambda ctx: ctx["current_streak"] >= 30,
    },
    {
        "id": "time_10h",
        "name": "Dedication",
        "description": "10 hours of study",
        "icon": "⏱️",
        "unlocked": lambda ctx: ctx["total_hours"] >= 10,
    },
    {
        "id": "time_50h",
        "name": "Commitment",
        "description": "50 hours of study",
        "icon": "📖",
        "unlocked": lambda ctx: ctx["total_hours"] >= 50,
    },
]


class StatisticsEngine:
    """Compute dashboard sections for a user.

    `catalog` labels module rows (falls back to the raw module id) and
    `question_provider` is only needed for `performance_by_type`.
    """

    def __init__(
        self,
        store: ProgressStore,
        *,
        catalog=None,
        question_provider=None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.catalog = catalog
        self.question_provider = question_provider
        self.clock = clock

    def module_name(self, module_id: str) -> str:
        if self.catalog is None:
            return module_id
        return self.catalog.resolve_module_name(module_id)

    def dashboard(self, user_id: str) -> Dashboard:
        return Dashboard(
            overview=self.overview(user_id),
            recent_performance=self.recent_performance(user_id),
            module_breakdown=self.module_breakdown(user_id),
            time_analysis=self.time_analysis(user_id),
            streaks=self.streaks(user_id),
            problem_questions=self.problem_questions(user_id),
            achievements=self.achievements(user_id),
        )

    def overview(self, user_id: str) -> Overview:
        record = self.store.load(user_id)
        stats = record.statistics
        streaks = self._streaks(record)
        return Overview(
            total_questions=stats.total_questions,
            total_correct=stats.total_correct,
            total_incorrect=stats.total_incorrect,
            accuracy=percent(stats.total_correct, stats.total_correct + stats.total_incorrect),
            total_sessions=len(record.sessions),
            total_time_minutes=round_half_up(stats.total_time / 60),
            current_streak=streaks.current_streak,
            longest_streak=streaks.longest_streak,
            last_activity_at=stats.last_activity_at,
        )

    def recent_performance(self, user_id: str) -> RecentPerformance:
        """Seven daily buckets ending today, plus the window's average score."""
        record = self.store.load(user_id)
        today = calendar_date(self.clock())
        buckets: Dict[date, DailyBucket] = OrderedDict()
        for offset in range(RECENT_DAYS - 1, -1, -1):
            day = today - timedelta(days=offset)
            buckets[day] = DailyBucket(date=day)
        scores = []
        for session in record.sessions:
            bucket = buckets.get(calendar_date(session.completed_at))
            if bucket is None:
                continue
            bucket.sessions += 1
            bucket.correct += session.correct_count
            bucket.incorrect += session.incorrect_count
            bucket.total_time += session.time_spent_seconds
            scores.append(session.score)
        return RecentPerformance(
            total_sessions=len(scores),
            daily_data=list(buckets.values()),
            average_score=mean_rounded(scores),
        )

    def module_breakdown(self, user_id: str) -> List[ModuleStats]:
        record = self.store.load(user_id)
        modules: Dict[str, ModuleStats] = {}
        for session in record.sessions:
            stats = modules.get(session.module_id)
            if stats is None:
                stats = ModuleStats(module_id=session.module_id, module_name=self.module_name(session.module_id))
                modules[session.module_id] = stats
            stats.sessions += 1
            stats.total_questions += session.total_questions
            stats.correct_count += session.correct_count
            stats.incorrect_count += session.incorrect_count
            stats.total_time += session.time_spent_seconds
            stats.best_score = max(stats.best_score, session.score)
        for stats in modules.values():
            stats.average_score = percent(stats.correct_count, stats.total_questions)
        return sorted(modules.values(), key=lambda m: m.sessions, reverse=True)

    def time_analysis(self, user_id: str) -> TimeAnalysis:
        sessions = self.store.load(user_id).sessions
        if not sessions:
            return TimeAnalysis()
        times = [s.time_spent_seconds for s in sessions]
        total_time = sum(times)
        total_questions = sum(s.total_questions for s in sessions)
        return TimeAnalysis(
            average_session_time=round_half_up(total_time / len(sessions)),
            fastest_session=min(times),
            longest_session=max(times),
            total_time_minutes=round_half_up(total_time / 60),
            average_time_per_question=round_half_up(total_time / total_questions) if total_questions else 0,
        )

    def streaks(self, user_id: str) -> Streaks:
        return self._streaks(self.store.load(user_id))

    def _streaks(self, record: UserRecord) -> Streaks:
        current, longest, days = streak_runs(
            (calendar_date(s.completed_at) for s in record.sessions),
            calendar_date(self.clock()),
        )
        return Streaks(
            current_streak=current,
            longest_streak=longest,
            total_active_days=len(days),
            streak_history=days[-STREAK_HISTORY_DAYS:],
        )

    def problem_questions(self, user_id: str) -> List[ProblemQuestion]:
        """Questions answered wrong more often than right, worst first."""
        record = self.store.load(user_id)
        found = []
        for module_id, questions in record.progress.items():
            for question_id, entry in questions.items():
                if entry.incorrect > entry.correct and entry.seen >= 2:
                    found.append(ProblemQuestion(
                        module_id=module_id,
                        module_name=self.module_name(module_id),
                        question_index=int(question_id.rsplit("_", 1)[-1]),
                        seen=entry.seen,
                        correct=entry.correct,
                        incorrect=entry.incorrect,
                        error_rate=percent(entry.incorrect, entry.seen),
                    ))
        # sorted() is stable: equal error rates keep scan order
        found = sorted(found, key=lambda p: p.error_rate, reverse=True)
        return found[:PROBLEM_QUESTION_LIMIT]

    def achievements(self, user_id: str) -> List[Achievement]:
        """Unlocked achievements, newest first.

        Unlock times are not tracked, so every unlocked achievement carries
        the user's last activity timestamp.
        """
        record = self.store.load(user_id)
        stats = record.statistics
        overview = self.overview(user_id)
        streaks = self._streaks(record)
        ctx = {
            "total_questions": stats.total_questions,
            "accuracy": overview.accuracy,
            "current_streak": streaks.current_streak,
            "total_hours": stats.total_time // 3600,
        }
        unlocked = [
            Achievement(
                id=a["id"],
                name=a["name"],
                description=a["description"],
                icon=a["icon"],
                unlocked_at=stats.last_activity_at,
            )
            for a in ACHIEVEMENTS
            if a["unlocked"](ctx)
        ]
        return sorted(unlocked, key=lambda a: a.unlocked_at.timestamp() if a.unlocked_at else float("-inf"), reverse=True)

    def evolution_series(self, user_id: str, window_days: int = 30) -> List[EvolutionPoint]:
        """Mean session score per active day over the trailing window."""
        record = self.store.load(user_id)
        start = self.clock() - timedelta(days=window_days)
        days: Dict[date, List] = {}
        for session in record.sessions:
            if session.completed_at < start:
                continue
            days.setdefault(calendar_date(session.completed_at), []).append(session)
        return [
            EvolutionPoint(
                date=day,
                average_score=mean_rounded(s.score for s in sessions),
                sessions=len(sessions),
                questions=sum(s.total_questions for s in sessions),
            )
            for day, sessions in sorted(days.items())
        ]

    def performance_by_type(self, user_id: str) -> Dict[str, TypePerformance]:
        """Accuracy split by question type (`conteudista` vs `raciocinio`).

        Modules whose questions cannot be loaded are skipped; questions
        without a type are not counted.
        """
        record = self.store.load(user_id)
        result = {"conteudista": TypePerformance(), "raciocinio": TypePerformance()}
        if self.question_provider is None:
            return result
        for module_id, questions in record.progress.items():
            loaded = self.question_provider.load_questions(module_id)
            if not loaded.success:
                continue
            for question_id, entry in questions.items():
                index = int(question_id.rsplit("_", 1)[-1])
                if index >= len(loaded.questions):
                    continue
                question = loaded.questions[index]
                if question.type is None:
                    continue
                bucket = result["raciocinio" if question.type.value == "raciocínio" else "conteudista"]
                bucket.correct += entry.correct
                bucket.incorrect += entry.incorrect
                bucket.total += entry.seen
        for bucket in result.values():
            bucket.accuracy = percent(bucket.correct, bucket.correct + bucket.incorrect)
        return result
