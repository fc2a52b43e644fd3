"""Utilities to normalize observed activity labels."""

from __future__ import annotations

import re
from typing import Iterable, Optional

_WHITESPACE_PATTERN = re.compile(r"\s+")


def normalize_activity_label(label: Optional[str]) -> Optional[str]:
    """Trim and collapse whitespace; blank labels become ``None``."""
    if not label:
        return None
    normalized = _WHITESPACE_PATTERN.sub(" ", label).strip()
    return normalized or None


def normalize_activities(labels: Iterable[Optional[str]]) -> set[str]:
    """Normalize a batch of labels, dropping the blank ones."""
    result: set[str] = set()
    for label in labels:
        normalized = normalize_activity_label(label)
        if normalized:
            result.add(normalized)
    return result
