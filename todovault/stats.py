"""
Completion statistics derived from the archive.

Stats are computed state: they are recomputed from archived completions on
every call and never stored, so they cannot drift from the archive.
"""

from __future__ import annotations

from collections import Counter
from datetime import date, timedelta
from typing import Iterable, Sequence

from .models import ArchivedTask, TodoStats, is_valid_date


def _as_date(value: date | str) -> date:
    return value if isinstance(value, date) else date.fromisoformat(value)


def longest_run(days: Iterable[date]) -> int:
    """Length of the longest run of consecutive calendar days."""
    longest = 0
    run = 0
    previous: date | None = None
    for day in sorted(set(days)):
        if previous is not None and day - previous == timedelta(days=1):
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        previous = day
    return longest


def current_run(days: Iterable[date], today: date) -> int:
    """
    Consecutive days ending at the most recent completion day.

    The run only counts if that day is today or yesterday; days after
    `today` are ignored.
    """
    seen = {d for d in days if d <= today}
    if not seen:
        return 0
    latest = max(seen)
    if latest < today - timedelta(days=1):
        return 0
    streak = 0
    day = latest
    while day in seen:
        streak += 1
        day -= timedelta(days=1)
    return streak


def compute_stats(
    archived: Sequence[ArchivedTask],
    today: date | str,
    live_completed: int = 0,
) -> TodoStats:
    """
    Compute completion stats.

    Args:
        archived: All archived tasks
        today: Reference date for the current streak
        live_completed: Completed tasks still in the live document; they
            count as completions on `today`

    Returns:
        Fresh TodoStats
    """
    today_date = _as_date(today)
    by_day: Counter[str] = Counter()

    for entry in archived:
        if is_valid_date(entry.completed_date):
            by_day[entry.completed_date] += 1
    if live_completed:
        by_day[today_date.isoformat()] += live_completed

    by_month: Counter[str] = Counter()
    for day, count in by_day.items():
        by_month[day[:7]] += count

    days = [date.fromisoformat(d) for d in by_day]
    return TodoStats(
        total_completed=len(archived) + live_completed,
        current_streak=current_run(days, today_date),
        longest_streak=longest_run(days),
        completions_by_month=dict(sorted(by_month.items())),
        completions_by_day=dict(sorted(by_day.items())),
    )
