"""Shared record keys to avoid magic strings across ficfetch modules."""

from __future__ import annotations

# Story record keys (camelCase matches what downstream stores already persist)
K_WORK_ID = "workId"
K_TITLE = "title"
K_AUTHOR = "author"
K_SUMMARY = "summary"
K_WORD_COUNT = "wordCount"
K_CHAPTERS = "chapters"
K_CHAPTERS_CURRENT = "current"
K_CHAPTERS_TOTAL = "total"
K_IS_COMPLETE = "isComplete"
K_FANDOM = "fandom"
K_RELATIONSHIPS = "relationships"
K_CHARACTERS = "characters"
K_ADDITIONAL_TAGS = "additionalTags"
K_PUBLISHED_DATE = "publishedDate"
K_LAST_UPDATED_DATE = "lastUpdatedDate"
K_KUDOS = "kudos"
K_BOOKMARKS = "bookmarks"
K_HITS = "hits"
K_URL = "url"

# Search page keys
K_STORIES = "stories"
K_CURRENT_PAGE = "currentPage"
K_TOTAL_PAGES = "totalPages"
K_STRATEGY = "strategy"
K_ERRORS = "errors"
K_SKIPPED_ROWS = "skippedRows"

# Stored-record keys used by the refresh comparison
K_CURRENT_CHAPTERS = "currentChapters"
K_TOTAL_CHAPTERS = "totalChapters"
