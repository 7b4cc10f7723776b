"""Plain value types returned to callers (story records, queries, result pages)."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..core.keys import (
    K_ADDITIONAL_TAGS,
    K_AUTHOR,
    K_BOOKMARKS,
    K_CHAPTERS,
    K_CHAPTERS_CURRENT,
    K_CHAPTERS_TOTAL,
    K_CHARACTERS,
    K_CURRENT_PAGE,
    K_ERRORS,
    K_FANDOM,
    K_HITS,
    K_IS_COMPLETE,
    K_KUDOS,
    K_LAST_UPDATED_DATE,
    K_PUBLISHED_DATE,
    K_RELATIONSHIPS,
    K_SKIPPED_ROWS,
    K_STORIES,
    K_STRATEGY,
    K_SUMMARY,
    K_TITLE,
    K_TOTAL_PAGES,
    K_URL,
    K_WORD_COUNT,
    K_WORK_ID,
)
from .fetcher_config import SORT_REVISED_AT, UNKNOWN_DATE


@dataclass(frozen=True)
class ChapterCursor:
    """Chapters published so far and the planned total (None while open-ended)."""

    current: int = 1
    total: Optional[int] = None

    @property
    def is_complete(self) -> bool:
        return self.total is not None and self.current == self.total


@dataclass
class StoryRecord:
    work_id: str
    title: str
    url: str
    author: str = ""
    summary: str = ""
    word_count: int = 0
    chapters: ChapterCursor = field(default_factory=ChapterCursor)
    fandom: List[str] = field(default_factory=list)
    relationships: List[str] = field(default_factory=list)
    characters: List[str] = field(default_factory=list)
    additional_tags: List[str] = field(default_factory=list)
    published_date: str = UNKNOWN_DATE
    last_updated_date: str = UNKNOWN_DATE
    kudos: int = 0
    bookmarks: int = 0
    hits: int = 0

    def __post_init__(self) -> None:
        if not self.work_id:
            raise ValueError("StoryRecord.work_id must be non-empty")

    @property
    def is_complete(self) -> bool:
        return self.chapters.is_complete

    def to_dict(self) -> Dict[str, Any]:
        return {
            K_WORK_ID: self.work_id,
            K_TITLE: self.title,
            K_AUTHOR: self.author,
            K_SUMMARY: self.summary,
            K_WORD_COUNT: self.word_count,
            K_CHAPTERS: {
                K_CHAPTERS_CURRENT: self.chapters.current,
                K_CHAPTERS_TOTAL: self.chapters.total,
            },
            K_IS_COMPLETE: self.is_complete,
            K_FANDOM: list(self.fandom),
            K_RELATIONSHIPS: list(self.relationships),
            K_CHARACTERS: list(self.characters),
            K_ADDITIONAL_TAGS: list(self.additional_tags),
            K_PUBLISHED_DATE: self.published_date,
            K_LAST_UPDATED_DATE: self.last_updated_date,
            K_KUDOS: self.kudos,
            K_BOOKMARKS: self.bookmarks,
            K_HITS: self.hits,
            K_URL: self.url,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


@dataclass(frozen=True)
class SearchQuery:
    """Filters for one search; derive variants with ``dataclasses.replace``."""

    query: str = ""
    fandoms: Tuple[str, ...] = ()
    characters: Tuple[str, ...] = ()
    relationships: Tuple[str, ...] = ()
    complete: Optional[bool] = None
    words_from: Optional[int] = None
    words_to: Optional[int] = None
    kudos_from: Optional[int] = None
    sort_column: str = SORT_REVISED_AT
    page: int = 1

    def __post_init__(self) -> None:
        # Accept lists from callers but keep the dataclass hashable.
        for name in ("fandoms", "characters", "relationships"):
            value = getattr(self, name)
            if not isinstance(value, tuple):
                object.__setattr__(self, name, tuple(value or ()))
        if self.page < 1:
            object.__setattr__(self, "page", 1)


@dataclass
class SearchResultPage:
    stories: List[StoryRecord] = field(default_factory=list)
    current_page: int = 1
    total_pages: int = 1
    strategy: str = "single"
    errors: List[str] = field(default_factory=list)
    skipped_rows: int = 0

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            K_STORIES: [story.to_dict() for story in self.stories],
            K_CURRENT_PAGE: self.current_page,
            K_TOTAL_PAGES: self.total_pages,
            K_STRATEGY: self.strategy,
        }
        if self.errors:
            payload[K_ERRORS] = list(self.errors)
        if self.skipped_rows:
            payload[K_SKIPPED_ROWS] = self.skipped_rows
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


__all__ = [
    "ChapterCursor",
    "StoryRecord",
    "SearchQuery",
    "SearchResultPage",
]
