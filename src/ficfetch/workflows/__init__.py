"""High-level exports for the archive fetch and search workflows."""

from .aggregator import DEFAULT_POLICY, AggregatorPolicy, MultiFandomAggregator
from .errors import (
    AggregationDegraded,
    FetchError,
    Forbidden,
    MalformedResult,
    NotFound,
    Timeout,
    UpstreamHttpError,
)
from .fetcher import ArchiveClient, StoryFetcher, fetch_story_sync, search_sync
from .fetcher_utils import extract_work_id
from .records import ChapterCursor, SearchQuery, SearchResultPage, StoryRecord
from .refresh import needs_date_refresh, plan_refresh
from .search import SearchClient, build_search_params, parse_search_page
from .web_fetch import FetchConfig, FetchResult, PolitenessGate, URLFetcher

__all__ = [
    "DEFAULT_POLICY",
    "AggregatorPolicy",
    "MultiFandomAggregator",
    "AggregationDegraded",
    "FetchError",
    "Forbidden",
    "MalformedResult",
    "NotFound",
    "Timeout",
    "UpstreamHttpError",
    "ArchiveClient",
    "StoryFetcher",
    "fetch_story_sync",
    "search_sync",
    "extract_work_id",
    "ChapterCursor",
    "SearchQuery",
    "SearchResultPage",
    "StoryRecord",
    "needs_date_refresh",
    "plan_refresh",
    "SearchClient",
    "build_search_params",
    "parse_search_page",
    "FetchConfig",
    "FetchResult",
    "PolitenessGate",
    "URLFetcher",
]
