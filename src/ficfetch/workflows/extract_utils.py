"""Field extraction for work pages and listing rows.

Every field is an ordered list of strategies and the first success wins. Only a
missing title is fatal; all other fields fall back to empty defaults because the
archive's markup drifts between skins and over time.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from .dates import resolve_dates
from .errors import MalformedResult, NotFound
from .fetcher_config import BASE_URL
from .fetcher_utils import build_work_url, work_id_from_href
from .html_normalize import clean_inline, markup_to_text
from .records import ChapterCursor, StoryRecord

logger = logging.getLogger(__name__)

TITLE_SELECTORS = [
    "h2.title.heading",
    ".title.heading",
    "h2.title",
    ".work h2",
    "#workskin h2",
]
ROW_TITLE_SELECTORS = [".header h4.heading a", "h4.heading a"]
AUTHOR_SELECTORS = ['a[rel="author"]', ".byline a"]
SUMMARY_SELECTORS = [
    ".summary blockquote.userstuff",
    ".summary blockquote",
    ".summary .userstuff",
    ".summary",
]
STATS_SELECTORS = [".stats", ".work-stats", "#workskin .stats"]
TAG_SELECTORS: Dict[str, List[str]] = {
    "fandom": [
        "dd.fandom.tags .tag",
        ".fandom .tag",
        ".fandoms .tag",
        '[class*="fandom"] .tag',
    ],
    "relationship": [
        "dd.relationship.tags .tag",
        ".relationship .tag",
        ".relationships .tag",
        '[class*="relationship"] .tag',
    ],
    "character": [
        "dd.character.tags .tag",
        ".character .tag",
        ".characters .tag",
        '[class*="character"] .tag',
    ],
    "freeform": [
        "dd.freeform.tags .tag",
        ".freeform .tag",
        ".freeforms .tag",
        '[class*="freeform"] .tag',
        ".additional .tag",
    ],
}
ROW_SELECTORS = ["li.work.blurb", ".work.blurb"]

_NUMBER = r"(\d+(?:,\d{3})*)"
_RE_WORDS = [
    re.compile(rf"Words?:\s*{_NUMBER}", re.I),
    re.compile(rf"{_NUMBER}\s*words?\b", re.I),
]
_RE_KUDOS = [re.compile(rf"Kudos?:\s*{_NUMBER}", re.I)]
_RE_BOOKMARKS = [re.compile(rf"Bookmarks?:\s*{_NUMBER}", re.I)]
_RE_HITS = [re.compile(rf"Hits?:\s*{_NUMBER}", re.I)]
_RE_CHAPTERS = re.compile(r"Chapters?:\s*(\d+)(?:\s*/\s*(\d+|\?))?", re.I)
_RE_BYLINE = re.compile(r"\s*\bby\s.*$", re.I | re.S)
_RE_ROW_ID = re.compile(r"^work_(\d+)$")


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "lxml")


def extract_title(node: Tag, selectors: List[str] = TITLE_SELECTORS) -> Optional[str]:
    for selector in selectors:
        el = node.select_one(selector)
        if el is None:
            continue
        title = clean_inline(el.get_text(" ", strip=True))
        if title:
            return title
    for heading in node.find_all("h2"):
        text = heading.get_text(" ", strip=True)
        if " by " in text:
            title = clean_inline(_RE_BYLINE.sub("", text))
            if title:
                return title
    return None


def extract_author(node: Tag) -> str:
    for selector in AUTHOR_SELECTORS:
        el = node.select_one(selector)
        if el is not None:
            author = clean_inline(el.get_text(" ", strip=True))
            if author:
                return author
    return ""


def extract_summary(node: Tag) -> str:
    for selector in SUMMARY_SELECTORS:
        el = node.select_one(selector)
        if el is None:
            continue
        summary = markup_to_text(el.decode_contents())
        if summary:
            return summary
    fallback = node.select_one(".summary")
    if fallback is not None:
        return clean_inline(fallback.get_text(" ", strip=True))
    return ""


def stats_text(node: Tag) -> str:
    """Stats region text; falls back to ``.metadata`` and then the whole node."""

    parts = [el.get_text(" ", strip=True) for sel in STATS_SELECTORS for el in node.select(sel)]
    text = " ".join(part for part in parts if part)
    if text:
        return text
    metadata = node.select_one(".metadata")
    if metadata is not None:
        text = metadata.get_text(" ", strip=True)
        if text:
            return text
    return node.get_text(" ", strip=True)


def _first_number(text: str, patterns: List[re.Pattern]) -> int:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return int(match.group(1).replace(",", ""))
    return 0


def extract_stats(text: str) -> Dict[str, int]:
    return {
        "words": _first_number(text, _RE_WORDS),
        "kudos": _first_number(text, _RE_KUDOS),
        "bookmarks": _first_number(text, _RE_BOOKMARKS),
        "hits": _first_number(text, _RE_HITS),
    }


def extract_chapters(text: str) -> ChapterCursor:
    match = _RE_CHAPTERS.search(text or "")
    if not match:
        return ChapterCursor()
    current = max(1, int(match.group(1)))
    total_raw = match.group(2)
    total = int(total_raw) if total_raw and total_raw != "?" else None
    return ChapterCursor(current=current, total=total)


def extract_tags(node: Tag, category: str) -> List[str]:
    for selector in TAG_SELECTORS[category]:
        values = [clean_inline(el.get_text(" ", strip=True)) for el in node.select(selector)]
        values = [value for value in values if value]
        if values:
            return values
    return []


def _build_record(node: Tag, work_id: str, url: str, title: str) -> StoryRecord:
    text = stats_text(node)
    stats = extract_stats(text)
    published, updated = resolve_dates(node)
    return StoryRecord(
        work_id=work_id,
        title=title,
        url=url,
        author=extract_author(node),
        summary=extract_summary(node),
        word_count=stats["words"],
        chapters=extract_chapters(text),
        fandom=extract_tags(node, "fandom"),
        relationships=extract_tags(node, "relationship"),
        characters=extract_tags(node, "character"),
        additional_tags=extract_tags(node, "freeform"),
        published_date=published,
        last_updated_date=updated,
        kudos=stats["kudos"],
        bookmarks=stats["bookmarks"],
        hits=stats["hits"],
    )


def extract_story(node: Tag, work_id: str, url: str) -> StoryRecord:
    """Build a record from a full work page; raises ``NotFound`` without a title."""

    title = extract_title(node)
    if not title:
        headings = [h.get_text(" ", strip=True) for h in node.find_all(["h1", "h2", "h3"])][:5]
        logger.error("No title for work %s; headings seen: %s", work_id, headings)
        raise NotFound(
            f"Could not extract story title for work {work_id} - "
            "story may be deleted, restricted, or require login",
            work_id=work_id,
            url=url,
        )
    record = _build_record(node, work_id, url, title)
    logger.debug(
        "Extracted work %s: words=%s chapters=%s/%s kudos=%s",
        work_id,
        record.word_count,
        record.chapters.current,
        record.chapters.total,
        record.kudos,
    )
    return record


def row_work_id(row: Tag) -> Optional[str]:
    match = _RE_ROW_ID.match(row.get("id") or "")
    if match:
        return match.group(1)
    data_id = (row.get("data-work-id") or "").strip()
    if data_id.isdigit():
        return data_id
    link = row.select_one(".header h4 a")
    return work_id_from_href(link.get("href") if link is not None else None)


def extract_row(row: Tag, base_url: str = BASE_URL) -> StoryRecord:
    """Build a record from one listing row; raises ``MalformedResult`` without a work id."""

    work_id = row_work_id(row)
    if not work_id:
        raise MalformedResult("Search result row has no work id")
    title = extract_title(row, ROW_TITLE_SELECTORS) or ""
    return _build_record(row, work_id, build_work_url(work_id, base_url), title)


def find_rows(soup: Tag) -> List[Tag]:
    for selector in ROW_SELECTORS:
        rows = soup.select(selector)
        if rows:
            return rows
    return []


def extract_rows(soup: Tag, base_url: str = BASE_URL) -> Tuple[List[StoryRecord], int]:
    """Return ``(records, skipped)`` for every listing row on a page."""

    records: List[StoryRecord] = []
    skipped = 0
    for row in find_rows(soup):
        try:
            records.append(extract_row(row, base_url))
        except MalformedResult as exc:
            skipped += 1
            logger.debug("Skipping row: %s", exc)
    return records, skipped


__all__ = [
    "TITLE_SELECTORS",
    "ROW_TITLE_SELECTORS",
    "AUTHOR_SELECTORS",
    "SUMMARY_SELECTORS",
    "TAG_SELECTORS",
    "parse_html",
    "extract_title",
    "extract_author",
    "extract_summary",
    "stats_text",
    "extract_stats",
    "extract_chapters",
    "extract_tags",
    "extract_story",
    "row_work_id",
    "extract_row",
    "find_rows",
    "extract_rows",
]
