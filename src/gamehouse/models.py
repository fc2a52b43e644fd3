"""Domain models for tracked game sessions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional


@dataclass(slots=True)
class SessionRecord:
    """A single interval of one identity engaged in one activity."""

    identity: str
    display_name: str
    activity: str
    start_time: datetime
    accumulated_seconds: float = 0.0
    active: bool = True
    id: Optional[int] = None

    def effective_seconds(self, now: datetime) -> float:
        if not self.active:
            return self.accumulated_seconds
        return self.accumulated_seconds + (now - self.start_time).total_seconds()

    def end_time(self, now: datetime) -> datetime:
        if self.active:
            return now
        return self.start_time + timedelta(seconds=self.accumulated_seconds)


@dataclass(slots=True)
class ReconcileOutcome:
    """Activities opened and closed by one reconciliation call."""

    opened: list[str] = field(default_factory=list)
    closed: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.opened or self.closed)


@dataclass(frozen=True, slots=True)
class TimelineEntry:
    identity: str
    display_name: str
    activity: str
    start: datetime
    end: datetime


@dataclass(frozen=True, slots=True)
class ConcurrencyPoint:
    timestamp: datetime
    count: int
