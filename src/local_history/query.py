"""Read-only views over snapshot listings.

Nothing here touches the disk: every function takes a list of snapshots
(as returned by SnapshotStore) and returns a filtered, sorted or grouped
copy for display.
"""

from collections import OrderedDict
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from .core import HistoryGroup, Snapshot

LAST_HOUR = "Last hour"
TODAY = "Today"
YESTERDAY = "Yesterday"
THIS_WEEK = "This week"
LAST_WEEK = "Last week"
THIS_MONTH = "This month"


def display_path(path: str, base: Optional[Path] = None) -> str:
    """Workspace-relative POSIX path, or the basename outside the workspace."""
    p = Path(path)
    if base is not None:
        try:
            return p.relative_to(base).as_posix()
        except ValueError:
            pass
    return p.name


def sort_entries(entries: Iterable[Snapshot], base: Optional[Path] = None) -> List[Snapshot]:
    """Newest first; equal timestamps ordered by display path."""
    ordered = sorted(entries, key=lambda e: display_path(e.original_path, base))
    ordered.sort(key=lambda e: e.timestamp, reverse=True)
    return ordered


def filter_entries(
    entries: Iterable[Snapshot],
    text: Optional[str],
    base: Optional[Path] = None,
) -> List[Snapshot]:
    """Case-insensitive substring match on display path or file name.

    An empty or missing pattern keeps everything.
    """
    if not text:
        return list(entries)
    needle = text.lower()
    return [
        e for e in entries
        if needle in display_path(e.original_path, base).lower()
        or needle in e.basename.lower()
    ]


def day_label(day: date, today: date) -> str:
    """'Today', 'Yesterday' or the locale's date representation."""
    if day == today:
        return TODAY
    if day == today - timedelta(days=1):
        return YESTERDAY
    return day.strftime("%x")


def group_by_day(
    entries: Iterable[Snapshot],
    today: Optional[date] = None,
    base: Optional[Path] = None,
) -> List[HistoryGroup]:
    """Bucket snapshots by calendar day, newest day first."""
    today = today or date.today()
    days: Dict[date, List[Snapshot]] = {}
    for entry in entries:
        days.setdefault(entry.captured_at.date(), []).append(entry)

    return [
        HistoryGroup(label=day_label(day, today), entries=sort_entries(days[day], base))
        for day in sorted(days, reverse=True)
    ]


def recency_bounds(now: datetime) -> List[tuple]:
    """Named windows with their lower bounds, in priority order.

    Weeks start on Sunday.
    """
    hour_start = now.replace(minute=0, second=0, microsecond=0)
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    yesterday = today - timedelta(days=1)
    # isoweekday(): Monday=1 .. Sunday=7
    week_start = today - timedelta(days=today.isoweekday() % 7)
    last_week_start = week_start - timedelta(days=7)
    month_start = today.replace(day=1)
    return [
        (LAST_HOUR, hour_start),
        (TODAY, today),
        (YESTERDAY, yesterday),
        (THIS_WEEK, week_start),
        (LAST_WEEK, last_week_start),
        (THIS_MONTH, month_start),
    ]


def recency_label(moment: datetime, bounds: Sequence[tuple]) -> str:
    """First window whose lower bound ``moment`` satisfies, else its month."""
    for label, lower in bounds:
        if moment >= lower:
            return label
    return moment.strftime("%B %Y")


def group_by_recency_bucket(
    entries: Iterable[Snapshot],
    now: Optional[datetime] = None,
    base: Optional[Path] = None,
) -> List[HistoryGroup]:
    """Partition snapshots into mutually exclusive recency windows.

    Fixed windows come first in priority order, followed by one bucket per
    older calendar month, newest month first. Empty windows are omitted.
    """
    now = now or datetime.now()
    bounds = recency_bounds(now)

    fixed: "OrderedDict[str, List[Snapshot]]" = OrderedDict((label, []) for label, _ in bounds)
    months: Dict[tuple, List[Snapshot]] = {}
    for entry in entries:
        moment = entry.captured_at
        label = recency_label(moment, bounds)
        if label in fixed:
            fixed[label].append(entry)
        else:
            months.setdefault((moment.year, moment.month), []).append(entry)

    groups = [
        HistoryGroup(label=label, entries=sort_entries(items, base))
        for label, items in fixed.items()
        if items
    ]
    for year, month in sorted(months, reverse=True):
        label = date(year, month, 1).strftime("%B %Y")
        groups.append(HistoryGroup(label=label, entries=sort_entries(months[(year, month)], base)))
    return groups
