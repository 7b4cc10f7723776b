"""Comparison helpers for refreshing a stored record against a fresh fetch.

The caller owns persistence; these functions only decide what changed for the
better. Stored records may be ``StoryRecord`` instances or their ``to_dict()``
form.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Tuple, Union

from ..core.keys import (
    K_CHAPTERS,
    K_CHAPTERS_CURRENT,
    K_CHAPTERS_TOTAL,
    K_CURRENT_CHAPTERS,
    K_LAST_UPDATED_DATE,
    K_PUBLISHED_DATE,
    K_TOTAL_CHAPTERS,
)
from .dates import normalize_date
from .fetcher_config import UNKNOWN_DATE
from .records import StoryRecord

Stored = Union[StoryRecord, Mapping[str, Any]]


def _stored_dates(stored: Stored) -> Tuple[Optional[str], Optional[str]]:
    if isinstance(stored, StoryRecord):
        return stored.published_date, stored.last_updated_date
    return stored.get(K_PUBLISHED_DATE), stored.get(K_LAST_UPDATED_DATE)


def _stored_chapters(stored: Stored) -> Tuple[int, Optional[int]]:
    if isinstance(stored, StoryRecord):
        return stored.chapters.current, stored.chapters.total
    chapters = stored.get(K_CHAPTERS)
    if isinstance(chapters, Mapping):
        return int(chapters.get(K_CHAPTERS_CURRENT) or 0), chapters.get(K_CHAPTERS_TOTAL)
    return int(stored.get(K_CURRENT_CHAPTERS) or 0), stored.get(K_TOTAL_CHAPTERS)


def _usable(value: Optional[str]) -> Optional[str]:
    """Canonical date for a stored value, or None when it needs replacing."""

    if not value or not str(value).strip():
        return None
    text = str(value).strip()
    if text == UNKNOWN_DATE or "unavailable" in text.lower():
        return None
    return normalize_date(text)


def needs_date_refresh(stored: Stored) -> bool:
    """True when either stored date is missing, a placeholder, or unparseable."""

    published, updated = _stored_dates(stored)
    return _usable(published) is None or _usable(updated) is None


def plan_refresh(stored: Stored, fresh: StoryRecord) -> Dict[str, Any]:
    """Return only the strictly-improving changes ``fresh`` offers over ``stored``.

    Keys follow the stored-record naming: ``publishedDate``, ``lastUpdatedDate``,
    ``currentChapters`` and ``totalChapters``. ``Unknown`` never overwrites.
    """

    changes: Dict[str, Any] = {}
    old_published, old_updated = (_usable(value) for value in _stored_dates(stored))

    new_published = _usable(fresh.published_date)
    if new_published and (old_published is None or new_published < old_published):
        changes[K_PUBLISHED_DATE] = new_published

    new_updated = _usable(fresh.last_updated_date)
    if new_updated and (old_updated is None or new_updated > old_updated):
        changes[K_LAST_UPDATED_DATE] = new_updated

    old_current, old_total = _stored_chapters(stored)
    if fresh.chapters.current > old_current:
        changes[K_CURRENT_CHAPTERS] = fresh.chapters.current
    new_total = fresh.chapters.total
    if new_total is not None and (old_total is None or new_total > int(old_total)):
        changes[K_TOTAL_CHAPTERS] = new_total
    return changes


__all__ = ["needs_date_refresh", "plan_refresh"]
