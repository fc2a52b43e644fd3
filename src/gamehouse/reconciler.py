"""Turns observed presence into session record transitions."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from .config import ConcurrencyPolicy
from .db import SessionStore
from .models import ReconcileOutcome, SessionRecord
from .normalization import normalize_activities, normalize_activity_label

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SessionReconciler:
    """Opens and closes session records for one identity at a time.

    Callers must serialize invocations; the collector does so by running
    every transition on its single loop thread.
    """

    def __init__(
        self,
        store: SessionStore,
        policy: ConcurrencyPolicy = ConcurrencyPolicy.MULTI,
    ) -> None:
        self.store = store
        self.policy = ConcurrencyPolicy(policy)

    def reconcile(
        self,
        identity: str,
        display_name: str,
        observed_activities: Iterable[Optional[str]],
        now: datetime,
    ) -> ReconcileOutcome:
        """Bring the identity's open sessions in line with what is observed.

        A naive ``now`` is taken to be UTC, matching stored start times.
        """
        now = as_utc(now)
        observed = normalize_activities(observed_activities)
        outcome = ReconcileOutcome()

        active = self.store.find_active(identity)
        if self.policy is ConcurrencyPolicy.SINGLE:
            observed = self._narrow_to_one(observed, active)

        for record in active:
            if record.activity not in observed:
                self._close(record, now)
                outcome.closed.append(record.activity)

        still_active = {record.activity for record in self.store.find_active(identity)}
        for activity in sorted(observed - still_active):
            self._open(identity, display_name, activity, now)
            outcome.opened.append(activity)

        if outcome.changed:
            logger.debug(
                "Reconciled %s: opened=%s closed=%s",
                identity,
                outcome.opened,
                outcome.closed,
            )
        return outcome

    def on_activity_start(
        self,
        identity: str,
        display_name: str,
        activity: Optional[str],
        now: datetime,
    ) -> ReconcileOutcome:
        now = as_utc(now)
        outcome = ReconcileOutcome()
        label = normalize_activity_label(activity)
        if label is None:
            logger.debug("Ignoring blank activity start for %s", identity)
            return outcome

        active = self.store.find_active(identity)
        if self.policy is ConcurrencyPolicy.SINGLE:
            for record in active:
                self._close(record, now)
                outcome.closed.append(record.activity)
        elif any(record.activity == label for record in active):
            return outcome

        self._open(identity, display_name, label, now)
        outcome.opened.append(label)
        return outcome

    def on_activity_end(
        self,
        identity: str,
        activity: Optional[str],
        now: datetime,
    ) -> ReconcileOutcome:
        now = as_utc(now)
        outcome = ReconcileOutcome()
        label = normalize_activity_label(activity)
        if label is None:
            return outcome
        for record in self.store.find_active(identity):
            if record.activity == label:
                self._close(record, now)
                outcome.closed.append(label)
        return outcome

    @staticmethod
    def _narrow_to_one(observed: set[str], active: list[SessionRecord]) -> set[str]:
        if len(observed) <= 1:
            return observed
        for record in active:
            if record.activity in observed:
                return {record.activity}
        return {min(observed)}

    def _close(self, record: SessionRecord, now: datetime) -> None:
        elapsed = max((now - record.start_time).total_seconds(), 0.0)
        record.accumulated_seconds += elapsed
        record.active = False
        self.store.save(record)
        logger.info(
            "%s stopped playing %s. Session recorded: %d minutes",
            record.display_name,
            record.activity,
            int(elapsed // 60),
        )

    def _open(self, identity: str, display_name: str, activity: str, now: datetime) -> SessionRecord:
        record = self.store.save(
            SessionRecord(
                identity=identity,
                display_name=display_name,
                activity=activity,
                start_time=now,
            )
        )
        logger.info("Started new session for %s playing %s", display_name, activity)
        return record
