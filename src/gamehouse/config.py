"""Configuration models and helpers for the session tracker."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum


MIN_BUCKET_SECONDS = 30
MAX_BUCKET_SECONDS = 900
DEFAULT_BUCKET_SECONDS = 60


class ConcurrencyPolicy(str, Enum):
    """How many activities one identity may have open at the same time."""

    MULTI = "multi"
    SINGLE = "single"


def clamp_bucket_seconds(value: int | float | None) -> int:
    """Clamp a requested bucket width to the supported range."""
    if value is None:
        return DEFAULT_BUCKET_SECONDS
    return int(min(max(int(value), MIN_BUCKET_SECONDS), MAX_BUCKET_SECONDS))


@dataclass(slots=True)
class TrackerSettings:
    """Runtime configuration for the presence collector and analytics."""

    poll_interval: timedelta = timedelta(seconds=10)
    refresh_interval: timedelta = timedelta(minutes=5)
    bucket_seconds: int = DEFAULT_BUCKET_SECONDS
    policy: ConcurrencyPolicy = ConcurrencyPolicy.MULTI

    def __post_init__(self) -> None:
        self.bucket_seconds = clamp_bucket_seconds(self.bucket_seconds)
        self.policy = ConcurrencyPolicy(self.policy)

    @classmethod
    def from_intervals(
        cls,
        poll_seconds: float,
        refresh_minutes: float | None = None,
        bucket_seconds: int | None = None,
        policy: ConcurrencyPolicy | str = ConcurrencyPolicy.MULTI,
    ) -> "TrackerSettings":
        refresh = refresh_minutes if refresh_minutes is not None else 5.0
        return cls(
            poll_interval=timedelta(seconds=poll_seconds),
            refresh_interval=timedelta(minutes=refresh),
            bucket_seconds=clamp_bucket_seconds(bucket_seconds),
            policy=ConcurrencyPolicy(policy),
        )
