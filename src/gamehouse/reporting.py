"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .analytics import (
    active_session_durations,
    aggregate_durations,
    by_activity,
    by_identity,
    concurrency_series,
    latest_display_names,
    leaderboard,
    peak_concurrency,
)
from .db import load_sessions


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def __init__(self, db_path: Path, bucket_seconds: int = 60) -> None:
        self.db_path = Path(db_path)
        self.bucket_seconds = bucket_seconds

    def print_summary(self, now: Optional[datetime] = None, limit: int = 5) -> None:
        now = now or datetime.now(timezone.utc)
        sessions = load_sessions(self.db_path)
        if not sessions:
            print("No sessions recorded yet.")
            return

        playing = active_session_durations(sessions, now)
        print(f"Summary at {now.astimezone().strftime('%Y-%m-%d %H:%M:%S')}")
        print("-" * 40)
        if playing:
            print("Now playing:")
            for record, seconds in playing:
                print(f"  {record.display_name:<20} {record.activity[:30]:<30} {format_duration(seconds)}")
        else:
            print("Nobody is playing right now.")
        print()

        games = leaderboard(aggregate_durations(sessions, by_activity, now))
        print("Top games:")
        for game, seconds in games[:limit]:
            print(f"  {game[:40]:<40} {format_duration(seconds)}")
        print()

        names = latest_display_names(sessions)
        players = leaderboard(aggregate_durations(sessions, by_identity, now))
        print("Top players:")
        for identity, seconds in players[:limit]:
            label = names.get(identity, identity)
            print(f"  {label[:40]:<40} {format_duration(seconds)}")
        print()

        peak = peak_concurrency(concurrency_series(sessions, now, self.bucket_seconds))
        print(f"Peak concurrent players: {peak}")


def format_duration(seconds: float) -> str:
    total_seconds = int(seconds)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
