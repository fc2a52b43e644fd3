"""Shared fixtures for session tracker tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from gamehouse.db import SqliteSessionStore
from gamehouse.models import SessionRecord

BASE = datetime(2025, 1, 25, 10, 0, tzinfo=timezone.utc)


def at(minutes: float = 0, seconds: float = 0) -> datetime:
    """Timestamp relative to the shared test base time."""
    return BASE + timedelta(minutes=minutes, seconds=seconds)


def epoch(seconds: float) -> datetime:
    """Timestamp at an absolute epoch offset, for bucket arithmetic tests."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def make_record(
    *,
    identity: str = "u1",
    display_name: str | None = None,
    activity: str = "chess",
    start: datetime | None = None,
    seconds: float = 0.0,
    active: bool = False,
) -> SessionRecord:
    """Helper to build a session record with sensible defaults."""
    return SessionRecord(
        identity=identity,
        display_name=display_name or identity.capitalize(),
        activity=activity,
        start_time=start or BASE,
        accumulated_seconds=seconds,
        active=active,
    )


@pytest.fixture
def store():
    store = SqliteSessionStore.open_in_memory()
    yield store
    store.close()
