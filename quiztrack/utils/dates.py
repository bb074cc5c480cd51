"""Date helpers: UTC clock, calendar-day keys and streak runs."""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Tuple


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def calendar_date(value: datetime) -> date:
    """The UTC calendar day a timestamp falls on."""
    return ensure_utc(value).date()


def months_ago(now: datetime, months: int) -> datetime:
    """Shift `now` back by whole calendar months, clamping the day of month."""
    month_index = now.year * 12 + (now.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def streak_runs(active_dates: Iterable[date], today: date) -> Tuple[int, int, List[date]]:
    """Compute `(current_streak, longest_streak, sorted_days)` for active days.

    A run grows when two consecutive active days are exactly one day apart and
    restarts at 1 otherwise. The trailing run only counts as current when the
    last active day is today or yesterday.
    """
    days = sorted(set(active_dates))
    if not days:
        return 0, 0, []
    longest = 1
    run = 1
    for prev, curr in zip(days, days[1:]):
        if (curr - prev).days == 1:
            run += 1
        else:
            run = 1
        longest = max(longest, run)
    last = days[-1]
    current = run if last in (today, today - timedelta(days=1)) else 0
    return current, longest, days
