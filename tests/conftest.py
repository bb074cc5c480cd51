from datetime import datetime, timedelta, timezone
from pathlib import Path
import os
import tempfile

import pytest

# Point the application at a throwaway database before `quiztrack` is imported
os.environ.setdefault("QUIZTRACK_DB_PATH", str(Path(tempfile.gettempdir()) / "quiztrack_test.db"))

from quiztrack.progress_store import ProgressStore
from quiztrack.repositories import InMemoryMedium
from quiztrack.schemas import Question, QuestionLoadResult
from quiztrack.state import StateContainer


class FakeClock:
    """Settable clock; `advance` moves it forward."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeProvider:
    """Question provider serving fixed modules from memory."""

    def __init__(self, modules=None):
        self.modules = modules or {}
        self.calls = []

    def load_questions(self, module_id):
        self.calls.append(module_id)
        if module_id not in self.modules:
            return QuestionLoadResult(success=False, error=f"Module {module_id} not found in catalog")
        return QuestionLoadResult(success=True, questions=self.modules[module_id])


def make_questions(n, correct_index=0, qtype=None):
    return [
        Question(
            question=f"Question {i}?",
            options=["A", "B", "C", "D"],
            correct_index=correct_index,
            explanation="Because.",
            type=qtype,
        )
        for i in range(n)
    ]


@pytest.fixture(scope="session", autouse=True)
def reset_db():
    """Ensure a fresh SQLite database for tests."""
    db_path = Path(os.environ["QUIZTRACK_DB_PATH"])
    if db_path.exists():
        try:
            db_path.unlink()
        except OSError:
            pass
    yield


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def medium():
    return InMemoryMedium()


@pytest.fixture
def store(medium, clock):
    return ProgressStore(medium, clock=clock)


@pytest.fixture
def state():
    return StateContainer()


@pytest.fixture
def provider():
    return FakeProvider({"m1": make_questions(3), "m2": make_questions(5, correct_index=1)})


@pytest.fixture
def build_questions():
    return make_questions


@pytest.fixture
def build_provider():
    return FakeProvider
