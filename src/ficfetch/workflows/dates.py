"""Date normalization and published/updated reconciliation.

Archive pages print dates in several shapes depending on where they appear
(``2023-01-05`` in work stats, ``05 Jan 2023`` on listing rows, free text in
older skins). Everything is normalized to ``YYYY-MM-DD``; a role that cannot be
recovered ends up as the ``Unknown`` sentinel.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Iterable, List, Optional, Tuple

from bs4 import Tag
from dateutil import parser as dateutil_parser

from .fetcher_config import ARCHIVE_EPOCH, GENERIC_YEAR_MAX, GENERIC_YEAR_MIN, UNKNOWN_DATE

logger = logging.getLogger(__name__)

_MONTHS_ABBR = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}
_MONTHS_FULL = {
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11, "december": 12,
}

_RE_LABEL_PREFIX = re.compile(
    r"^\s*(?:published|updated|last updated|completed|date published|date completed|publication date)\s*:\s*",
    re.I,
)
_RE_ISO = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_RE_D_MON_Y = re.compile(r"(\d{1,2})\s+([A-Za-z]{3})\.?\s+(\d{4})")
_RE_MON_D_Y = re.compile(r"\b([A-Za-z]{3})\.?\s+(\d{1,2}),\s*(\d{4})")
_RE_MONTH_D_Y = re.compile(r"\b([A-Za-z]+)\s+(\d{1,2}),\s*(\d{4})")

# Date-shaped substrings, used for labeled captures and the page-wide scan.
_DATE_SHAPE = (
    r"\d{4}-\d{2}-\d{2}"
    r"|\d{1,2}\s+[A-Za-z]{3,9}\.?\s+\d{4}"
    r"|[A-Za-z]{3,9}\.?\s+\d{1,2},\s*\d{4}"
)
_SCAN_PATTERNS = [
    re.compile(r"\d{4}-\d{2}-\d{2}"),
    re.compile(r"\d{1,2}\s+[A-Za-z]{3}\s+\d{4}"),
    re.compile(r"[A-Za-z]{3}\s+\d{1,2},\s*\d{4}"),
]

PUBLISHED_LABELS = ("Published", "Publication date", "Date published")
UPDATED_LABELS = ("Updated", "Last updated", "Completed", "Date completed")


def _label_pattern(label: str) -> re.Pattern:
    return re.compile(rf"\b{re.escape(label)}\s*:\s*({_DATE_SHAPE})", re.I)


_RE_PUBLISHED = [_label_pattern(label) for label in PUBLISHED_LABELS]
_RE_UPDATED = [_label_pattern(label) for label in UPDATED_LABELS]

STATS_SELECTORS = (".stats", ".work-stats", ".metadata")
TERM_SELECTORS = (".stats dt", ".work-stats dt", ".metadata dt")
PUBLISHED_SELECTORS = (
    ".stats .published",
    ".work-stats .published",
    ".metadata .published",
)
UPDATED_SELECTORS = (
    ".stats .updated",
    ".stats .completed",
    ".work-stats .updated",
    ".work-stats .completed",
    ".metadata .updated",
    ".metadata .completed",
    "p.datetime",
)


def _safe_date(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def normalize_date(text: Optional[str]) -> Optional[str]:
    """Return ``YYYY-MM-DD`` for a recognized date string, else ``None``.

    Formats are tried in order: ISO, ``D Mon YYYY``, ``Mon D, YYYY``,
    ``Month D, YYYY``, then a generic parse accepted only for years strictly
    between 2000 and 2100.
    """

    if not text:
        return None
    cleaned = _RE_LABEL_PREFIX.sub("", text).strip()
    if not cleaned:
        return None

    match = _RE_ISO.search(cleaned)
    if match:
        parsed = _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        if parsed:
            return parsed

    match = _RE_D_MON_Y.search(cleaned)
    if match:
        month = _MONTHS_ABBR.get(match.group(2).lower())
        if month:
            parsed = _safe_date(int(match.group(3)), month, int(match.group(1)))
            if parsed:
                return parsed

    match = _RE_MON_D_Y.search(cleaned)
    if match:
        month = _MONTHS_ABBR.get(match.group(1).lower())
        if month:
            parsed = _safe_date(int(match.group(3)), month, int(match.group(2)))
            if parsed:
                return parsed

    match = _RE_MONTH_D_Y.search(cleaned)
    if match:
        month = _MONTHS_FULL.get(match.group(1).lower())
        if month:
            parsed = _safe_date(int(match.group(3)), month, int(match.group(2)))
            if parsed:
                return parsed

    try:
        generic = dateutil_parser.parse(cleaned)
    except (ValueError, OverflowError):
        logger.debug("Could not parse date %r", cleaned)
        return None
    if GENERIC_YEAR_MIN < generic.year < GENERIC_YEAR_MAX:
        return generic.date().isoformat()
    return None


def _node_text(node: Tag, selectors: Iterable[str]) -> str:
    parts: List[str] = []
    for selector in selectors:
        for el in node.select(selector):
            parts.append(el.get_text(" ", strip=True))
    return " ".join(part for part in parts if part)


def _from_labels(text: str, patterns: List[re.Pattern]) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            parsed = normalize_date(match.group(1))
            if parsed:
                return parsed
    return None


def _from_terms(node: Tag) -> Tuple[Optional[str], Optional[str]]:
    published: Optional[str] = None
    updated: Optional[str] = None
    for selector in TERM_SELECTORS:
        for dt in node.select(selector):
            label = dt.get_text(" ", strip=True).lower()
            dd = dt.find_next_sibling("dd")
            if dd is None:
                continue
            value = dd.get_text(" ", strip=True)
            if ("published" in label or "publication" in label) and not published:
                published = normalize_date(value)
            elif ("updated" in label or "completed" in label) and not updated:
                updated = normalize_date(value)
    return published, updated


def _from_selectors(node: Tag, selectors: Iterable[str]) -> Optional[str]:
    for selector in selectors:
        for el in node.select(selector):
            parsed = normalize_date(el.get_text(" ", strip=True))
            if parsed:
                return parsed
    return None


def _scan_any(node: Tag, today: date) -> Optional[str]:
    text = node.get_text(" ", strip=True)
    lower, upper = ARCHIVE_EPOCH.isoformat(), today.isoformat()
    for pattern in _SCAN_PATTERNS:
        for match in pattern.finditer(text):
            parsed = normalize_date(match.group(0))
            if parsed and lower <= parsed <= upper:
                return parsed
    return None


def find_dates(node: Tag, *, today: Optional[date] = None) -> Tuple[Optional[str], Optional[str]]:
    """Locate raw published/updated dates in a story page or listing row."""

    stats_text = _node_text(node, STATS_SELECTORS)
    published = _from_labels(stats_text, _RE_PUBLISHED)
    updated = _from_labels(stats_text, _RE_UPDATED)

    if not published or not updated:
        term_published, term_updated = _from_terms(node)
        published = published or term_published
        updated = updated or term_updated

    if not published:
        published = _from_selectors(node, PUBLISHED_SELECTORS)
    if not updated:
        updated = _from_selectors(node, UPDATED_SELECTORS)

    if not published and not updated:
        fallback = _scan_any(node, today or date.today())
        if fallback:
            logger.debug("Using page-wide date fallback %s", fallback)
            published = updated = fallback
    return published, updated


def reconcile_dates(published: Optional[str], updated: Optional[str]) -> Tuple[str, str]:
    """Mirror a lone date, swap an inverted pair, or fall back to ``Unknown``."""

    if not published and not updated:
        return UNKNOWN_DATE, UNKNOWN_DATE
    if not published:
        published = updated
    elif not updated:
        updated = published
    if published > updated:  # type: ignore[operator]
        logger.debug("Published %s after updated %s; swapping", published, updated)
        published, updated = updated, published
    return published, updated  # type: ignore[return-value]


def resolve_dates(node: Tag, *, today: Optional[date] = None) -> Tuple[str, str]:
    published, updated = find_dates(node, today=today)
    if not published and not updated:
        logger.warning("No dates found; recording %s", UNKNOWN_DATE)
    return reconcile_dates(published, updated)


def is_known_date(value: Optional[str]) -> bool:
    return bool(value) and value != UNKNOWN_DATE and normalize_date(value) == value


__all__ = [
    "normalize_date",
    "find_dates",
    "reconcile_dates",
    "resolve_dates",
    "is_known_date",
    "PUBLISHED_LABELS",
    "UPDATED_LABELS",
]
