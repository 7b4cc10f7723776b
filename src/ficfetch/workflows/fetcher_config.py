"""Fetcher defaults (endpoints, headers, intervals, selectors).

Centralizes static defaults so the fetch and search modules have no embedded
magic strings. These are baseline constants used to construct a FetchConfig
or AggregatorPolicy; callers can inject their own to override any of them.
"""

from __future__ import annotations

from datetime import date

# Endpoints
BASE_URL = "https://archiveofourown.org"
WORKS_PATH = "/works"
WORK_URL_PATTERN = r"archiveofourown\.org/works/(\d+)"

# Politeness (the archive's terms ask for at least 5 s between requests)
MIN_REQUEST_INTERVAL = 5.0
REQUEST_TIMEOUT = 30.0
BYPASS_RETRY_DELAY = 1.0
CATEGORY_PAGE_DELAY = 0.5
RESULTS_PER_PAGE = 20

# Headers
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)
HDR_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8"
HDR_ACCEPT_LANGUAGE = "en-US,en;q=0.5"
HDR_ACCEPT_ENCODING = "gzip, deflate"

# Content-warning bypass variants, tried in order
BYPASS_VARIANTS = (
    "view_adult=true",
    "view_full_work=true",
    "view_adult=true&view_full_work=true",
)

# Search wire contract
PARAM_QUERY = "work_search[query]"
PARAM_TAG_ID = "tag_id"
PARAM_COMPLETE = "work_search[complete]"
PARAM_WORDS_FROM = "work_search[words_from]"
PARAM_WORDS_TO = "work_search[words_to]"
PARAM_SORT_COLUMN = "work_search[sort_column]"
PARAM_PAGE = "page"
PARAM_COMMIT = "commit"
COMMIT_VALUE = "Sort and Filter"

SORT_REVISED_AT = "revised_at"
SORT_KUDOS = "kudos_count"
SORT_HITS = "hits"
SORT_BOOKMARKS = "bookmarks_count"
SORT_COMMENTS = "comments_count"
SORT_COLUMNS = (SORT_REVISED_AT, SORT_KUDOS, SORT_HITS, SORT_BOOKMARKS, SORT_COMMENTS)

# Dates
UNKNOWN_DATE = "Unknown"
ARCHIVE_EPOCH = date(2008, 1, 1)
GENERIC_YEAR_MIN = 2000
GENERIC_YEAR_MAX = 2100

# Aggregation heuristics
FANDOM_OVERLAP = 0.6
RELATIONSHIP_OVERLAP = 0.7
TOTAL_ESTIMATE_RATIO = 0.1
