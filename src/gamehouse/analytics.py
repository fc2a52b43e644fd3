"""Aggregations over stored session records.

Every function here is a pure read of a snapshot of records plus a
reference "now"; open sessions are treated as running until that instant.
"""

from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Iterable, Mapping, Sequence

from .config import clamp_bucket_seconds
from .models import ConcurrencyPoint, SessionRecord, TimelineEntry

Interval = tuple[float, float]


def by_activity(record: SessionRecord) -> str:
    return record.activity


def by_identity(record: SessionRecord) -> str:
    return record.identity


def aggregate_durations(
    sessions: Iterable[SessionRecord],
    key_of: Callable[[SessionRecord], str],
    now: datetime,
) -> dict[str, float]:
    """Sum effective seconds per key over the whole history."""
    totals: defaultdict[str, float] = defaultdict(float)
    for record in sessions:
        totals[key_of(record)] += record.effective_seconds(now)
    return dict(totals)


def leaderboard(totals: Mapping[str, float]) -> list[tuple[str, float]]:
    """Largest total first; equal totals ordered by key."""
    return sorted(totals.items(), key=lambda item: (-item[1], item[0]))


def distribution_minutes(totals: Mapping[str, float]) -> dict[str, int]:
    return {key: int(seconds // 60) for key, seconds in totals.items()}


def active_session_durations(
    sessions: Iterable[SessionRecord], now: datetime
) -> list[tuple[SessionRecord, float]]:
    entries = [
        (record, record.effective_seconds(now)) for record in sessions if record.active
    ]
    entries.sort(key=lambda item: (-item[1], item[0].display_name, item[0].activity))
    return entries


def latest_display_names(sessions: Iterable[SessionRecord]) -> dict[str, str]:
    """Display name from each identity's most recently started session."""
    names: dict[str, tuple[datetime, str]] = {}
    for record in sessions:
        current = names.get(record.identity)
        if current is None or record.start_time >= current[0]:
            names[record.identity] = (record.start_time, record.display_name)
    return {identity: name for identity, (_, name) in names.items()}


def collect_intervals(
    sessions: Iterable[SessionRecord], now: datetime
) -> dict[str, list[Interval]]:
    """Group ``[start, end)`` epoch-second intervals by identity."""
    grouped: defaultdict[str, list[Interval]] = defaultdict(list)
    for record in sessions:
        if record.start_time is None:
            continue
        start = record.start_time.timestamp()
        end = record.end_time(now).timestamp()
        if end <= start:
            continue
        grouped[record.identity].append((start, end))
    return dict(grouped)


def merge_intervals(intervals: Iterable[Interval]) -> list[Interval]:
    """Collapse overlapping or touching intervals into disjoint spans."""
    merged: list[Interval] = []
    current_start: float | None = None
    current_end = 0.0
    for start, end in sorted(intervals):
        if current_start is None:
            current_start, current_end = start, end
        elif start <= current_end:
            current_end = max(current_end, end)
        else:
            merged.append((current_start, current_end))
            current_start, current_end = start, end
    if current_start is not None:
        merged.append((current_start, current_end))
    return merged


def bucket_floor(epoch: float, bucket_seconds: int) -> int:
    return bucket_seconds * math.floor(epoch / bucket_seconds)


def bucket_ceil(epoch: float, bucket_seconds: int) -> int:
    return bucket_seconds * math.ceil(epoch / bucket_seconds)


def concurrency_series(
    sessions: Sequence[SessionRecord],
    now: datetime,
    bucket_seconds: int = 60,
    *,
    clamp: bool = True,
) -> list[ConcurrencyPoint]:
    """Count distinct identities engaged in each bucket up to ``now``.

    Each identity's intervals are merged first so that two overlapping
    activities of the same person count once. Merged spans then become
    bucket-aligned +1/-1 deltas which are swept in time order.
    """
    width = clamp_bucket_seconds(bucket_seconds) if clamp else int(bucket_seconds)
    if width <= 0:
        raise ValueError("bucket_seconds must be positive")

    deltas: defaultdict[int, int] = defaultdict(int)
    for intervals in collect_intervals(sessions, now).values():
        for start, end in merge_intervals(intervals):
            deltas[bucket_floor(start, width)] += 1
            deltas[bucket_ceil(end, width)] -= 1

    if not deltas:
        return []

    limit = now.timestamp()
    series: list[ConcurrencyPoint] = []
    running = 0
    step = min(deltas)
    while step < limit:
        running = max(running + deltas.get(step, 0), 0)
        series.append(
            ConcurrencyPoint(
                timestamp=datetime.fromtimestamp(step, tz=timezone.utc),
                count=running,
            )
        )
        step += width
    return series


def peak_concurrency(series: Iterable[ConcurrencyPoint]) -> int:
    return max((point.count for point in series), default=0)


def session_timeline(
    sessions: Iterable[SessionRecord], now: datetime
) -> list[TimelineEntry]:
    return [
        TimelineEntry(
            identity=record.identity,
            display_name=record.display_name,
            activity=record.activity,
            start=record.start_time,
            end=record.end_time(now),
        )
        for record in sessions
        if record.start_time is not None
    ]
