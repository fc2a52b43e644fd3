"""Registry of tracked identities and their display names."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Mapping, Optional

logger = logging.getLogger(__name__)


class IdentityRegistry:
    """Owns the identity -> display name map used by the collector.

    A refresh replaces the whole map at once; readers always see either the
    old or the new snapshot, never a mix.
    """

    def __init__(self, identities: Optional[Mapping[str, str]] = None) -> None:
        self._lock = threading.Lock()
        self._identities: dict[str, str] = dict(identities or {})
        self._refreshed_at: Optional[datetime] = None

    def replace(self, identities: Mapping[str, str]) -> None:
        snapshot = {
            str(identity): str(name).strip() or str(identity)
            for identity, name in identities.items()
        }
        with self._lock:
            added = snapshot.keys() - self._identities.keys()
            removed = self._identities.keys() - snapshot.keys()
            self._identities = snapshot
            self._refreshed_at = datetime.now(timezone.utc)
        logger.info(
            "Tracking %d identities (%d added, %d removed).",
            len(snapshot),
            len(added),
            len(removed),
        )

    def display_name(self, identity: str) -> Optional[str]:
        with self._lock:
            return self._identities.get(identity)

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return dict(self._identities)

    @property
    def refreshed_at(self) -> Optional[datetime]:
        with self._lock:
            return self._refreshed_at

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._identities

    def __len__(self) -> int:
        with self._lock:
            return len(self._identities)
