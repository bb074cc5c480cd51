"""Durable per-user progress records over a key/value medium.

The store is the only writer of `UserRecord`s. Per-question counters and
the rolling statistics are always changed together and written with a
single `save`, so `statistics.total_questions` always equals the sum of
`seen` over every question entry.

Keys used on the medium:
- `quiztrack_user_<id>`: one JSON `UserRecord` per user
- `users_list`: JSON list of `DirectoryEntry`
- `current_user`: id of the active user
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from pydantic import ValidationError

from .errors import CapacityExceededError
from .repositories import KeyValueMedium
from .schemas import (
    DirectoryEntry,
    ModuleProgress,
    Position,
    QuestionProgress,
    SessionInput,
    SessionRecord,
    UserRecord,
    UserStatisticsSummary,
)
from .utils.dates import calendar_date, months_ago, streak_runs, utc_now
from .utils.numbers import mean_rounded, percent

logger = logging.getLogger("quiztrack.store")

STORAGE_PREFIX = "quiztrack_"
USERS_LIST_KEY = "users_list"
CURRENT_USER_KEY = "current_user"
DEFAULT_SESSION_CAP = 100
DEFAULT_CLEANUP_MONTHS = 6


def question_key(module_id: str, question_index: int) -> str:
    """Identity of a question slot inside a module's progress map."""
    return f"{module_id}_{question_index}"


class ProgressStore:
    """Load, mutate and persist per-user quiz progress."""

    def __init__(
        self,
        medium: KeyValueMedium,
        *,
        clock: Callable[[], datetime] = utc_now,
        session_cap: int = DEFAULT_SESSION_CAP,
        cleanup_months: int = DEFAULT_CLEANUP_MONTHS,
    ):
        self.medium = medium
        self.clock = clock
        self.session_cap = session_cap
        self.cleanup_months = cleanup_months

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    def user_key(self, user_id: str) -> str:
        return f"{STORAGE_PREFIX}user_{user_id}"

    def empty_record(self, user_id: str) -> UserRecord:
        now = self.clock()
        return UserRecord(user_id=user_id, created_at=now, last_updated_at=now)

    def load(self, user_id: str) -> UserRecord:
        """Return the stored record for `user_id`, or a fresh empty one.

        A stored value that is not valid JSON, lacks `user_id`/`progress`, or
        fails model validation is discarded and replaced by an empty record.
        """
        raw = self.medium.get(self.user_key(user_id))
        if raw is None:
            return self.empty_record(user_id)
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("discarding unreadable record for user %s", user_id)
            return self.empty_record(user_id)
        if not isinstance(data, dict) or not data.get("user_id") or "progress" not in data:
            logger.warning("discarding record with invalid structure for user %s", user_id)
            return self.empty_record(user_id)
        try:
            return UserRecord.model_validate(data)
        except ValidationError as exc:
            logger.warning("discarding record for user %s: %s", user_id, exc.error_count())
            return self.empty_record(user_id)

    def save(self, user_id: str, record: UserRecord) -> None:
        """Persist `record` with `last_updated_at` refreshed.

        When the medium is full, old sessions are pruned for every known user
        and `CapacityExceededError` is re-raised; the save is not retried.
        """
        record.last_updated_at = self.clock()
        try:
            self.medium.set(self.user_key(user_id), record.model_dump_json())
        except CapacityExceededError:
            logger.error("store full while saving user %s; pruning old sessions", user_id)
            self.clean_old_data()
            raise

    def record_answer(self, user_id: str, module_id: str, question_index: int, is_correct: bool) -> QuestionProgress:
        """Count one answer for a question slot and return its updated counters."""
        record = self.load(user_id)
        now = self.clock()
        module = record.progress.setdefault(module_id, {})
        entry = module.setdefault(question_key(module_id, question_index), QuestionProgress())
        entry.seen += 1
        if is_correct:
            entry.correct += 1
            record.statistics.total_correct += 1
        else:
            entry.incorrect += 1
            record.statistics.total_incorrect += 1
        entry.last_seen_at = now
        record.statistics.total_questions += 1
        record.statistics.last_activity_at = now
        self.save(user_id, record)
        return entry.model_copy()

    def record_session(self, user_id: str, session_input: SessionInput) -> SessionRecord:
        """Append a completed session, keeping only the most recent ones."""
        record = self.load(user_id)
        session = SessionRecord(
            **session_input.model_dump(),
            score=percent(session_input.correct_count, session_input.total_questions),
            completed_at=self.clock(),
        )
        record.sessions.append(session)
        record.statistics.total_time += session.time_spent_seconds
        if len(record.sessions) > self.session_cap:
            record.sessions = record.sessions[-self.session_cap:]
        current, longest, _ = streak_runs(
            (calendar_date(s.completed_at) for s in record.sessions),
            calendar_date(self.clock()),
        )
        record.statistics.streak_days = current
        record.statistics.longest_streak = max(record.statistics.longest_streak, longest)
        self.save(user_id, record)
        logger.info("recorded session user=%s module=%s score=%s", user_id, session.module_id, session.score)
        return session

    # -------------------------------------------------------------------------
    # Resume position
    # -------------------------------------------------------------------------

    def save_position(self, user_id: str, module_id: str, question_index: int) -> None:
        record = self.load(user_id)
        record.last_module = module_id
        record.last_question_index = question_index
        self.save(user_id, record)

    def get_position(self, user_id: str, module_id: str) -> Position:
        """Saved position for `module_id`; only meaningful for the module it was saved in."""
        record = self.load(user_id)
        if record.last_module == module_id:
            return Position(question_index=record.last_question_index, has_position=True)
        return Position()

    # -------------------------------------------------------------------------
    # Derived reads
    # -------------------------------------------------------------------------

    def module_progress(self, user_id: str, module_id: str, total_questions: int) -> ModuleProgress:
        """Share of question slots ever seen and ever answered correctly."""
        module = self.load(user_id).progress.get(module_id, {})
        seen = 0
        correct = 0
        for i in range(total_questions):
            entry = module.get(question_key(module_id, i))
            if entry is None:
                continue
            if entry.seen > 0:
                seen += 1
            if entry.correct > 0:
                correct += 1
        return ModuleProgress(
            seen=seen,
            correct=correct,
            total=total_questions,
            seen_percentage=percent(seen, total_questions),
            correct_percentage=percent(correct, total_questions),
        )

    def session_history(self, user_id: str, limit: int = 10) -> List[SessionRecord]:
        """Most recent sessions, newest first."""
        sessions = self.load(user_id).sessions
        if limit <= 0:
            return []
        return list(reversed(sessions[-limit:]))

    def user_statistics(self, user_id: str) -> UserStatisticsSummary:
        record = self.load(user_id)
        cutoff = self.clock() - timedelta(days=7)
        return UserStatisticsSummary(
            **record.statistics.model_dump(),
            total_sessions=len(record.sessions),
            average_score=mean_rounded(s.score for s in record.sessions),
            recent_activity=sum(1 for s in record.sessions if s.completed_at >= cutoff),
        )

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def clean_old_data(self) -> int:
        """Drop sessions older than the cleanup window for every listed user.

        Returns the number of sessions removed. Failures writing a pruned
        record are logged and skipped so the pass covers every user.
        """
        cutoff = months_ago(self.clock(), self.cleanup_months)
        removed = 0
        for user in self.list_users():
            record = self.load(user.id)
            kept = [s for s in record.sessions if s.completed_at >= cutoff]
            if len(kept) == len(record.sessions):
                continue
            removed += len(record.sessions) - len(kept)
            record.sessions = kept
            record.last_updated_at = self.clock()
            try:
                self.medium.set(self.user_key(user.id), record.model_dump_json())
            except CapacityExceededError:
                logger.warning("could not write pruned record for user %s", user.id)
        logger.info("cleanup removed %d sessions older than %s", removed, cutoff.isoformat())
        return removed

    def clear_all_data(self) -> None:
        """Remove every record, the directory and the active-user marker."""
        for key in self.medium.keys():
            if key.startswith(STORAGE_PREFIX) or key in (USERS_LIST_KEY, CURRENT_USER_KEY):
                self.medium.remove(key)
        logger.warning("all stored progress data cleared")

    # -------------------------------------------------------------------------
    # User directory
    # -------------------------------------------------------------------------

    def list_users(self) -> List[DirectoryEntry]:
        raw = self.medium.get(USERS_LIST_KEY)
        if not raw:
            return []
        try:
            return [DirectoryEntry.model_validate(item) for item in json.loads(raw)]
        except (ValueError, TypeError):
            logger.warning("user directory unreadable; treating as empty")
            return []

    def _write_users(self, users: List[DirectoryEntry]) -> None:
        payload = json.dumps([u.model_dump(mode="json") for u in users])
        self.medium.set(USERS_LIST_KEY, payload)

    def find_user_by_email(self, email: str) -> Optional[DirectoryEntry]:
        wanted = email.strip().lower()
        for user in self.list_users():
            if user.email.lower() == wanted:
                return user
        return None

    def get_user(self, user_id: str) -> Optional[DirectoryEntry]:
        for user in self.list_users():
            if user.id == user_id:
                return user
        return None

    def upsert_user_directory_entry(self, entry: DirectoryEntry) -> DirectoryEntry:
        """Merge `entry` into the directory entry with the same id, or append it."""
        users = self.list_users()
        for i, existing in enumerate(users):
            if existing.id == entry.id:
                merged = existing.model_copy(update=entry.model_dump(exclude_unset=True))
                users[i] = merged
                self._write_users(users)
                return merged
        users.append(entry)
        self._write_users(users)
        return entry

    def set_active_user(self, user_id: str) -> None:
        self.medium.set(CURRENT_USER_KEY, user_id)

    def get_active_user(self) -> Optional[str]:
        return self.medium.get(CURRENT_USER_KEY)

    def clear_active_user(self) -> None:
        self.medium.remove(CURRENT_USER_KEY)
