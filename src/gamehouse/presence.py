"""Presence sources that report which activities identities are engaged in."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class PresenceSourceError(RuntimeError):
    """Raised when the presence source cannot be read at all."""


class IdentityNotFoundError(LookupError):
    """Raised when an identity cannot be resolved during this cycle."""


class PresenceSource(Protocol):
    def list_identities(self) -> Mapping[str, str]: ...

    def get_observed_activities(self, identity: str) -> set[str]: ...


class PresenceEventKind(str, Enum):
    START = "start"
    END = "end"


@dataclass(frozen=True, slots=True)
class PresenceEvent:
    """A pushed activity transition for one identity."""

    kind: PresenceEventKind
    identity: str
    activity: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class StaticPresenceSource:
    """In-memory presence source; callers mutate it between cycles."""

    def __init__(
        self,
        identities: Optional[Mapping[str, str]] = None,
        activities: Optional[Mapping[str, set[str]]] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._identities = dict(identities or {})
        self._activities = {key: set(value) for key, value in (activities or {}).items()}

    def set_identity(self, identity: str, display_name: str) -> None:
        with self._lock:
            self._identities[identity] = display_name

    def remove_identity(self, identity: str) -> None:
        with self._lock:
            self._identities.pop(identity, None)
            self._activities.pop(identity, None)

    def set_activities(self, identity: str, activities: set[str]) -> None:
        with self._lock:
            self._activities[identity] = set(activities)

    def list_identities(self) -> Mapping[str, str]:
        with self._lock:
            return dict(self._identities)

    def get_observed_activities(self, identity: str) -> set[str]:
        with self._lock:
            if identity not in self._identities:
                raise IdentityNotFoundError(identity)
            return set(self._activities.get(identity, set()))


class PresenceEntry(BaseModel):
    name: str
    activities: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class FilePresenceSource:
    """Reads presence from a JSON document rewritten by an external agent.

    The file maps identity keys to ``{"name": ..., "activities": [...]}``.
    It is re-read on every call so the collector always sees fresh state.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, PresenceEntry]:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise PresenceSourceError(f"Presence file not found: {self.path}") from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise PresenceSourceError(f"Unreadable presence file: {self.path}") from exc
        if not isinstance(raw, dict):
            raise PresenceSourceError("Presence file must contain a JSON object")
        try:
            return {str(key): PresenceEntry.model_validate(value) for key, value in raw.items()}
        except ValidationError as exc:
            raise PresenceSourceError(f"Invalid presence entry in {self.path}") from exc

    def list_identities(self) -> Mapping[str, str]:
        return {identity: entry.name for identity, entry in self._load().items()}

    def get_observed_activities(self, identity: str) -> set[str]:
        entry = self._load().get(identity)
        if entry is None:
            raise IdentityNotFoundError(identity)
        return set(entry.activities)
