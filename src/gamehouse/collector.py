"""Presence collector that drives session reconciliation."""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from .config import TrackerSettings
from .db import SessionStoreError, SqliteSessionStore
from .models import ReconcileOutcome
from .presence import (
    PresenceEvent,
    PresenceEventKind,
    PresenceSource,
    PresenceSourceError,
)
from .reconciler import SessionReconciler
from .registry import IdentityRegistry

logger = logging.getLogger(__name__)

_MAX_EVENT_WAIT = 0.5


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class CycleReport:
    """Summary of one reconciliation cycle."""

    reconciled: int = 0
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    opened: int = 0
    closed: int = 0


class PresenceCollector:
    """Polls the presence source and applies pushed events on one thread.

    All session transitions happen on the thread that calls
    ``run_until_stopped`` (or, in tests, the thread calling ``run_cycle``
    and ``drain_events`` directly). Other threads only enqueue events.
    """

    def __init__(
        self,
        store: SqliteSessionStore,
        source: PresenceSource,
        settings: TrackerSettings,
        registry: Optional[IdentityRegistry] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.source = source
        self.settings = settings
        self.registry = registry if registry is not None else IdentityRegistry()
        self.reconciler = SessionReconciler(store, settings.policy)
        self._clock = clock
        self._events: "queue.Queue[PresenceEvent]" = queue.Queue()

    @classmethod
    def open(
        cls,
        db_path: Path,
        source: PresenceSource,
        settings: TrackerSettings,
        registry: Optional[IdentityRegistry] = None,
    ) -> "PresenceCollector":
        store = SqliteSessionStore.open(db_path, check_same_thread=False)
        return cls(store, source, settings, registry=registry)

    def run_forever(self) -> None:
        stop_event = threading.Event()
        try:
            self._run_loop(stop_event)
        except KeyboardInterrupt:
            logger.info("Collector interrupted; applying queued events.")
        finally:
            self._shutdown()

    def run_until_stopped(self, stop_event: threading.Event) -> None:
        """Run the collector until the provided event is set."""
        try:
            self._run_loop(stop_event)
        finally:
            self._shutdown()

    def submit_event(self, event: PresenceEvent) -> None:
        """Queue a pushed presence transition; safe from any thread."""
        self._events.put(event)

    def pending_events(self) -> int:
        return self._events.qsize()

    def refresh_identities(self) -> bool:
        try:
            identities = self.source.list_identities()
        except PresenceSourceError:
            logger.exception("Failed to refresh tracked identities; keeping %d.", len(self.registry))
            return False
        self.registry.replace(identities)
        return True

    def run_cycle(self, now: Optional[datetime] = None) -> CycleReport:
        """Reconcile every tracked identity against the presence source."""
        now = now or self._clock()
        report = CycleReport()
        for identity, display_name in sorted(self.registry.snapshot().items()):
            try:
                observed = self.source.get_observed_activities(identity)
            except LookupError:
                logger.warning(
                    "Tracked identity %s (%s) not resolvable this cycle; skipping.",
                    display_name,
                    identity,
                )
                report.skipped.append(identity)
                continue
            except PresenceSourceError:
                logger.exception("Presence source unavailable; aborting cycle.")
                report.skipped.append(identity)
                break
            except Exception:
                logger.exception("Failed to read presence for %s; retrying next cycle.", identity)
                report.failed.append(identity)
                continue

            try:
                outcome = self.reconciler.reconcile(identity, display_name, observed, now)
            except SessionStoreError:
                logger.exception("Failed to persist sessions for %s; retrying next cycle.", identity)
                report.failed.append(identity)
                continue
            except Exception:
                logger.exception("Failed to reconcile %s; retrying next cycle.", identity)
                report.failed.append(identity)
                continue

            report.reconciled += 1
            report.opened += len(outcome.opened)
            report.closed += len(outcome.closed)
        return report

    def drain_events(self, timeout: float = 0.0) -> int:
        """Apply queued events, waiting up to ``timeout`` for the first one."""
        applied = 0
        try:
            event = self._events.get(timeout=timeout) if timeout > 0 else self._events.get_nowait()
        except queue.Empty:
            return 0
        while True:
            self._apply_event(event)
            applied += 1
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                return applied

    def _apply_event(self, event: PresenceEvent) -> Optional[ReconcileOutcome]:
        display_name = self.registry.display_name(event.identity)
        if display_name is None:
            logger.debug("Ignoring %s event for untracked identity %s", event.kind.value, event.identity)
            return None
        logger.info(
            "Activity%s for %s -> %s",
            event.kind.value.capitalize(),
            display_name,
            event.activity,
        )
        try:
            if event.kind is PresenceEventKind.START:
                return self.reconciler.on_activity_start(
                    event.identity, display_name, event.activity, event.timestamp
                )
            return self.reconciler.on_activity_end(event.identity, event.activity, event.timestamp)
        except SessionStoreError:
            logger.exception("Failed to apply %s event for %s.", event.kind.value, event.identity)
            return None

    def _run_loop(self, stop_event: threading.Event) -> None:
        logger.info(
            "Starting collector; policy=%s poll=%ss",
            self.settings.policy.value,
            self.settings.poll_interval.total_seconds(),
        )
        poll = self.settings.poll_interval.total_seconds()
        refresh = self.settings.refresh_interval.total_seconds()
        next_poll = next_refresh = time.monotonic()
        while not stop_event.is_set():
            try:
                current = time.monotonic()
                if current >= next_refresh:
                    self.refresh_identities()
                    next_refresh = current + refresh
                if current >= next_poll:
                    report = self.run_cycle()
                    logger.debug(
                        "Cycle done: reconciled=%d opened=%d closed=%d skipped=%d failed=%d",
                        report.reconciled,
                        report.opened,
                        report.closed,
                        len(report.skipped),
                        len(report.failed),
                    )
                    next_poll = current + poll
                wait = min(next_poll, next_refresh) - time.monotonic()
                self.drain_events(timeout=min(max(wait, 0.0), _MAX_EVENT_WAIT))
            except Exception:
                logger.exception("Collector cycle failed; continuing with the next one.")
                stop_event.wait(min(poll, _MAX_EVENT_WAIT))

    def _shutdown(self) -> None:
        try:
            self.drain_events()
        finally:
            self.store.close()
            logger.info("Collector stopped.")
