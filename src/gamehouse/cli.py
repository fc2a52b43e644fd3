"""Command-line interface for the game session tracker."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from .config import ConcurrencyPolicy, TrackerSettings
from .paths import get_db_path, get_log_path, get_presence_path
from .presence import FilePresenceSource
from .server_runner import run_dashboard

app = typer.Typer(help="Track who is playing what, and for how long.")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
    )


@app.command()
def track(
    db_path: Optional[Path] = typer.Option(
        None,
        "--db",
        path_type=Path,
        help="Location of the session SQLite database.",
    ),
    presence_path: Optional[Path] = typer.Option(
        None,
        "--presence",
        path_type=Path,
        help="JSON file describing who is currently playing what.",
    ),
    poll_seconds: float = typer.Option(
        10.0,
        "--interval",
        min=1.0,
        help="Reconciliation interval in seconds.",
    ),
    refresh_minutes: float = typer.Option(
        5.0,
        "--refresh",
        min=0.1,
        help="Minutes between refreshes of the tracked identity list.",
    ),
    policy: ConcurrencyPolicy = typer.Option(
        ConcurrencyPolicy.MULTI,
        "--policy",
        case_sensitive=False,
        help="Allow several games per person (multi) or one at a time (single).",
    ),
    log_to_file: bool = typer.Option(
        False,
        "--log-file/--no-log-file",
        help="Also write logs to the tracker log in the data directory.",
    ),
) -> None:
    """Run the presence collector until interrupted."""
    from .collector import PresenceCollector

    if log_to_file:
        handler = logging.FileHandler(get_log_path(), encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)

    settings = TrackerSettings.from_intervals(
        poll_seconds=poll_seconds, refresh_minutes=refresh_minutes, policy=policy
    )
    source = FilePresenceSource(presence_path or get_presence_path())
    collector = PresenceCollector.open(db_path or get_db_path(), source, settings)
    collector.run_forever()


@app.command()
def summary(
    db_path: Optional[Path] = typer.Option(
        None,
        "--db",
        path_type=Path,
        help="Location of the session SQLite database.",
    ),
    limit: int = typer.Option(5, "--limit", min=1, help="Entries per leaderboard."),
    bucket_seconds: int = typer.Option(
        60,
        "--bucket",
        help="Bucket width in seconds for peak concurrency (clamped to 30-900).",
    ),
) -> None:
    """Print who is playing now plus all-time leaderboards."""
    from .reporting import SummaryPrinter

    summary_printer = SummaryPrinter(db_path=db_path or get_db_path(), bucket_seconds=bucket_seconds)
    summary_printer.print_summary(limit=limit)


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the API."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the API."
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the session SQLite database."
    ),
    presence_path: Optional[Path] = typer.Option(
        None,
        "--presence",
        path_type=Path,
        help="JSON file describing who is currently playing what.",
    ),
    poll_seconds: float = typer.Option(
        10.0,
        "--interval",
        min=1.0,
        help="Reconciliation interval in seconds.",
    ),
    refresh_minutes: float = typer.Option(
        5.0,
        "--refresh",
        min=0.1,
        help="Minutes between refreshes of the tracked identity list.",
    ),
    bucket_seconds: int = typer.Option(
        60,
        "--bucket",
        help="Default bucket width in seconds for peak concurrency (clamped to 30-900).",
    ),
    policy: ConcurrencyPolicy = typer.Option(
        ConcurrencyPolicy.MULTI,
        "--policy",
        case_sensitive=False,
        help="Allow several games per person (multi) or one at a time (single).",
    ),
    open_browser: bool = typer.Option(
        False,
        "--open-browser/--no-open-browser",
        help="Open the interactive API docs in your default browser.",
    ),
) -> None:
    """Start the web API with the background collector."""
    settings = TrackerSettings.from_intervals(
        poll_seconds=poll_seconds,
        refresh_minutes=refresh_minutes,
        bucket_seconds=bucket_seconds,
        policy=policy,
    )
    run_dashboard(
        host=host,
        port=port,
        db_path=db_path or get_db_path(),
        settings=settings,
        source=FilePresenceSource(presence_path or get_presence_path()),
        open_browser=open_browser,
    )
