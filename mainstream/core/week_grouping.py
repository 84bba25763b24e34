"""
Mainstream - Week Grouping
==========================

Buckets time-ordered feed items into Monday-to-Sunday weeks with
human labels ("This week", "Last week", "Nov 25 - Dec 1").

``group_assets_by_week`` groups a single list in one pass.
``IncrementalWeekGrouper`` keeps its buckets between calls so an
infinite-scroll feed only pays for the page it just appended.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Optional

from mainstream.core.database import as_utc

NOW_REFRESH_INTERVAL = timedelta(hours=1)


@dataclass
class WeekGroup:
    """Assets that were created within the same calendar week."""
    key: str
    label: str
    week_start: date
    week_end: date
    post_count: int = 0
    contributors: list = field(default_factory=list)
    assets: list = field(default_factory=list)
    _contributor_ids: set = field(default_factory=set, repr=False)

    def add(self, asset: Any) -> None:
        self.assets.append(asset)
        self.post_count += 1
        uploader = getattr(asset, "uploader", None)
        if uploader is not None and uploader.id not in self._contributor_ids:
            self._contributor_ids.add(uploader.id)
            self.contributors.append(uploader)


# ==========================================================================
# Week Arithmetic
# ==========================================================================

def get_week_start(value: datetime) -> date:
    """Monday of the week containing ``value`` (in UTC)."""
    day = as_utc(value).date()
    return day - timedelta(days=day.weekday())


def get_week_end(week_start: date) -> date:
    return week_start + timedelta(days=6)


def _short_month(day: date) -> str:
    return day.strftime("%b")


def format_week_label(week_start: date, now: datetime) -> str:
    current_week = get_week_start(now)
    if week_start == current_week:
        return "This week"
    if week_start == current_week - timedelta(days=7):
        return "Last week"

    week_end = get_week_end(week_start)
    start_month = _short_month(week_start)
    end_month = _short_month(week_end)
    if start_month == end_month:
        return f"{start_month} {week_start.day} - {week_end.day}"
    return f"{start_month} {week_start.day} - {end_month} {week_end.day}"


def _new_group(week_start: date, now: datetime) -> WeekGroup:
    return WeekGroup(
        key=week_start.isoformat(),
        label=format_week_label(week_start, now),
        week_start=week_start,
        week_end=get_week_end(week_start),
    )


def _sorted_groups(groups: dict[date, WeekGroup]) -> list[WeekGroup]:
    return [groups[key] for key in sorted(groups, reverse=True)]


# ==========================================================================
# One-shot Grouping
# ==========================================================================

def group_assets_by_week(assets: list, now: Optional[datetime] = None) -> list[WeekGroup]:
    """Group ``assets`` by week, newest week first, preserving input order within a week."""
    if not assets:
        return []
    now = now or datetime.now(timezone.utc)

    groups: dict[date, WeekGroup] = {}
    for asset in assets:
        week_start = get_week_start(asset.created_at)
        if week_start not in groups:
            groups[week_start] = _new_group(week_start, now)
        groups[week_start].add(asset)
    return _sorted_groups(groups)


# ==========================================================================
# Incremental Grouping
# ==========================================================================

class IncrementalWeekGrouper:
    """
    Week grouping that remembers what it has already bucketed.

    Call ``update`` with the full, growing list of loaded assets. Only ids
    not seen before are processed. A changed first id or an emptied list
    means the feed was refreshed, so all state is dropped and rebuilt.
    """

    def __init__(self, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self._clock = clock
        self._now = clock()
        self._processed_ids: set = set()
        self._groups: dict[date, WeekGroup] = {}
        self._first_id: Any = None

    @property
    def now(self) -> datetime:
        return self._now

    def reset(self) -> None:
        self._processed_ids.clear()
        self._groups.clear()
        self._first_id = None

    def _is_new_feed(self, assets: list) -> bool:
        if not assets or len(assets) < len(self._processed_ids):
            return True
        first_id = assets[0].id
        if self._first_id is not None and first_id != self._first_id:
            return True
        return (
            self._first_id is None
            and bool(self._processed_ids)
            and first_id not in self._processed_ids
        )

    def _refresh_now(self) -> None:
        current = self._clock()
        if current - self._now <= NOW_REFRESH_INTERVAL:
            return
        self._now = current
        for group in self._groups.values():
            group.label = format_week_label(group.week_start, current)

    def update(self, assets: list) -> list[WeekGroup]:
        if self._is_new_feed(assets):
            self.reset()
        self._first_id = assets[0].id if assets else None

        new_assets = [a for a in assets if a.id not in self._processed_ids]
        if not new_assets:
            return _sorted_groups(self._groups)

        self._refresh_now()
        for asset in new_assets:
            self._processed_ids.add(asset.id)
            week_start = get_week_start(asset.created_at)
            if week_start not in self._groups:
                self._groups[week_start] = _new_group(week_start, self._now)
            self._groups[week_start].add(asset)
        return _sorted_groups(self._groups)
