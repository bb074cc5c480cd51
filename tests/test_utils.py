from datetime import date, datetime, timedelta, timezone

import pytest

from quiztrack.database import create_db_and_tables, make_engine
from quiztrack.errors import CapacityExceededError, PersistenceError
from quiztrack.repositories import InMemoryMedium, KeyValueRepository
from quiztrack.utils.dates import calendar_date, ensure_utc, months_ago, streak_runs
from quiztrack.utils.numbers import mean_rounded, percent, round_half_up


def test_round_half_up():
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(2.49) == 2
    assert percent(2, 3) == 67
    assert percent(1, 8) == 13
    assert percent(5, 0) == 0
    assert mean_rounded([50, 100, 0]) == 50
    assert mean_rounded([]) == 0


def test_calendar_date_uses_utc():
    local = datetime(2024, 3, 15, 23, 30, tzinfo=timezone(timedelta(hours=-3)))
    assert calendar_date(local) == date(2024, 3, 16)
    assert ensure_utc(datetime(2024, 1, 1)).tzinfo == timezone.utc


def test_months_ago_clamps_day_of_month():
    now = datetime(2024, 8, 31, 10, 0, tzinfo=timezone.utc)
    assert months_ago(now, 6) == datetime(2024, 2, 29, 10, 0, tzinfo=timezone.utc)
    assert months_ago(datetime(2024, 3, 15, tzinfo=timezone.utc), 6) == datetime(2023, 9, 15, tzinfo=timezone.utc)


def test_streak_runs():
    d = date(2024, 3, 1)
    days = [d, d + timedelta(days=1), d + timedelta(days=2), d + timedelta(days=9), d]
    assert streak_runs(days, d + timedelta(days=9)) == (1, 3, sorted(set(days)))
    assert streak_runs(days, d + timedelta(days=11))[0] == 0
    assert streak_runs([], d) == (0, 0, [])


@pytest.mark.parametrize("medium_factory", [
    lambda budget: InMemoryMedium(max_bytes=budget),
    lambda budget: _sqlite_repository(budget),
])
def test_media_enforce_byte_budget(medium_factory):
    medium = medium_factory(20)
    medium.set("a", "x" * 10)
    # overwriting a key only counts its new size
    medium.set("a", "y" * 15)
    with pytest.raises(CapacityExceededError):
        medium.set("b", "z" * 10)
    assert medium.get("a") == "y" * 15
    assert medium.get("b") is None
    medium.remove("a")
    medium.remove("missing")
    assert medium.keys() == []


def _sqlite_repository(budget):
    engine = make_engine(None)
    create_db_and_tables(engine)
    return KeyValueRepository(engine, max_bytes=budget)


def test_repository_reports_read_failures_as_persistence_errors():
    repo = KeyValueRepository(make_engine(None))
    with pytest.raises(PersistenceError):
        repo.get("users_list")
    with pytest.raises(PersistenceError):
        repo.keys()


@pytest.mark.parametrize("medium_factory", [
    lambda budget: InMemoryMedium(max_bytes=budget),
    lambda budget: _sqlite_repository(budget),
])
def test_byte_budget_counts_utf8_bytes(medium_factory):
    medium = medium_factory(12)
    # six two-byte characters: 6 characters but 12 bytes of value
    with pytest.raises(CapacityExceededError):
        medium.set("k", "éééééé")
    medium.set("k", "ééééé")
    # the stored entry already uses 11 bytes, one more key byte plus value does not fit
    with pytest.raises(CapacityExceededError):
        medium.set("x", "a")
