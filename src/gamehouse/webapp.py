"""FastAPI application that exposes the session analytics API."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict

from .analytics import (
    active_session_durations,
    aggregate_durations,
    by_activity,
    by_identity,
    concurrency_series,
    distribution_minutes,
    latest_display_names,
    leaderboard,
    peak_concurrency,
    session_timeline,
)
from .collector import PresenceCollector, utcnow
from .config import MAX_BUCKET_SECONDS, MIN_BUCKET_SECONDS, TrackerSettings, clamp_bucket_seconds
from .db import load_sessions
from .normalization import normalize_activity_label
from .paths import get_db_path, get_presence_path
from .presence import FilePresenceSource, PresenceEvent, PresenceEventKind, PresenceSource
from .reconciler import as_utc
from .registry import IdentityRegistry

logger = logging.getLogger(__name__)


class CollectorRunner:
    """Manage the presence collector in a background thread."""

    def __init__(
        self,
        db_path: Path,
        source: PresenceSource,
        settings: TrackerSettings,
        registry: IdentityRegistry,
    ) -> None:
        self._db_path = Path(db_path)
        self._source = source
        self._settings = settings
        self._registry = registry
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._collector: Optional[PresenceCollector] = None

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            stop_event = threading.Event()
            collector = PresenceCollector.open(
                self._db_path, self._source, self._settings, registry=self._registry
            )
            thread = threading.Thread(
                target=collector.run_until_stopped,
                args=(stop_event,),
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            self._collector = collector
            thread.start()
            logger.info("Collector background thread started.")

    def stop(self) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            if not self._thread or not self._thread.is_alive() or not self._stop_event:
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._stop_event = None
            self._collector = None
        if thread:
            thread.join(timeout=10)
            logger.info("Collector background thread stopped.")

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())

    def submit_event(self, event: PresenceEvent) -> bool:
        with self._lock:
            if self._collector is None or not self._thread or not self._thread.is_alive():
                return False
            self._collector.submit_event(event)
            return True


class PresenceEventPayload(BaseModel):
    kind: PresenceEventKind
    identity: str
    activity: str
    timestamp: Optional[datetime] = None

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    db_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    source: Optional[PresenceSource] = None,
    registry: Optional[IdentityRegistry] = None,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_db_path = Path(db_path or get_db_path())
    resolved_settings = settings or TrackerSettings()
    resolved_source = source or FilePresenceSource(get_presence_path())
    resolved_registry = registry if registry is not None else IdentityRegistry()
    runner = CollectorRunner(
        resolved_db_path, resolved_source, resolved_settings, resolved_registry
    )

    app = FastAPI(title="Gamehouse", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db_path = resolved_db_path
    app.state.collector_runner = runner
    app.state.registry = resolved_registry

    @app.on_event("startup")
    async def _startup() -> None:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
        runner.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        runner.stop()

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        refreshed_at = resolved_registry.refreshed_at
        return {
            "collector_running": request.app.state.collector_runner.is_running(),
            "database_path": str(request.app.state.db_path),
            "tracked_identities": len(resolved_registry),
            "registry_refreshed_at": refreshed_at.isoformat() if refreshed_at else None,
            "poll_seconds": resolved_settings.poll_interval.total_seconds(),
            "refresh_seconds": resolved_settings.refresh_interval.total_seconds(),
            "bucket_seconds": resolved_settings.bucket_seconds,
            "policy": resolved_settings.policy.value,
        }

    @app.get("/api/sessions/active")
    def active_sessions(request: Request) -> Dict[str, Any]:
        now = clock()
        sessions = load_sessions(request.app.state.db_path, active_only=True)
        return {
            "now": now.isoformat(),
            "sessions": [
                {
                    "id": record.id,
                    "identity": record.identity,
                    "display_name": record.display_name,
                    "activity": record.activity,
                    "start_time": record.start_time.isoformat(),
                    "seconds": seconds,
                }
                for record, seconds in active_session_durations(sessions, now)
            ],
        }

    @app.get("/api/leaderboard/games")
    def game_leaderboard(request: Request) -> Dict[str, Any]:
        now = clock()
        sessions = load_sessions(request.app.state.db_path)
        totals = aggregate_durations(sessions, by_activity, now)
        return {
            "leaderboard": [
                {"activity": activity, "seconds": seconds}
                for activity, seconds in leaderboard(totals)
            ]
        }

    @app.get("/api/leaderboard/users")
    def user_leaderboard(request: Request) -> Dict[str, Any]:
        now = clock()
        sessions = load_sessions(request.app.state.db_path)
        totals = aggregate_durations(sessions, by_identity, now)
        names = latest_display_names(sessions)
        return {
            "leaderboard": [
                {
                    "identity": identity,
                    "display_name": names.get(identity, identity),
                    "seconds": seconds,
                }
                for identity, seconds in leaderboard(totals)
            ]
        }

    @app.get("/api/stats/game-distribution")
    def game_distribution(request: Request) -> Dict[str, int]:
        sessions = load_sessions(request.app.state.db_path)
        return distribution_minutes(aggregate_durations(sessions, by_activity, clock()))

    @app.get("/api/stats/peak-concurrency")
    def peak(
        request: Request,
        bucket_seconds: Optional[int] = Query(
            default=None,
            description=(
                f"Bucket width in seconds, clamped to "
                f"[{MIN_BUCKET_SECONDS}, {MAX_BUCKET_SECONDS}]."
            ),
        ),
    ) -> Dict[str, Any]:
        width = clamp_bucket_seconds(
            bucket_seconds if bucket_seconds is not None else resolved_settings.bucket_seconds
        )
        now = clock()
        sessions = load_sessions(request.app.state.db_path)
        series = concurrency_series(sessions, now, width)
        return {
            "bucket_seconds": width,
            "peak": peak_concurrency(series),
            "series": [
                {"timestamp": point.timestamp.isoformat(), "count": point.count}
                for point in series
            ],
        }

    @app.get("/api/stats/session-timeline")
    def timeline(request: Request) -> list[Dict[str, Any]]:
        sessions = load_sessions(request.app.state.db_path)
        return [
            {
                "identity": entry.identity,
                "username": entry.display_name,
                "game": entry.activity,
                "start": entry.start.isoformat(),
                "end": entry.end.isoformat(),
            }
            for entry in session_timeline(sessions, clock())
        ]

    @app.post("/api/presence-events", status_code=202)
    def push_presence_event(payload: PresenceEventPayload, request: Request) -> Dict[str, Any]:
        activity = normalize_activity_label(payload.activity)
        if activity is None:
            raise HTTPException(status_code=400, detail="activity is required")
        if payload.identity not in resolved_registry:
            raise HTTPException(status_code=404, detail="Identity is not tracked")
        timestamp = as_utc(payload.timestamp or clock())
        event = PresenceEvent(
            kind=payload.kind,
            identity=payload.identity,
            activity=activity,
            timestamp=timestamp,
        )
        if not request.app.state.collector_runner.submit_event(event):
            raise HTTPException(status_code=503, detail="Collector is not running")
        return {"queued": True, "kind": event.kind.value, "activity": activity}

    return app
