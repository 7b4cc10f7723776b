"""Multi-fandom search emulation on top of single-source listing queries.

The archive cannot OR fandom tags together, so a combined search first tries a
quoted free-text OR query and then walks each fandom's listing separately,
merging, deduplicating, sorting and re-paginating the rows locally. Totals are
estimates; the full corpus is never fetched.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Sequence, Tuple

from .errors import AggregationDegraded, FetchError, describe
from .fetcher_config import (
    CATEGORY_PAGE_DELAY,
    FANDOM_OVERLAP,
    RELATIONSHIP_OVERLAP,
    RESULTS_PER_PAGE,
    SORT_BOOKMARKS,
    SORT_COMMENTS,
    SORT_HITS,
    SORT_KUDOS,
    TOTAL_ESTIMATE_RATIO,
    UNKNOWN_DATE,
)
from .records import SearchQuery, SearchResultPage, StoryRecord

logger = logging.getLogger(__name__)

_RE_FANDOM_SPLIT = re.compile(r"[\s\-_:()]+")
_RE_RELATIONSHIP_SPLIT = re.compile(r"[\s\-_:/&]+")


@dataclass(frozen=True, slots=True)
class AggregatorPolicy:
    fandom_overlap: float = FANDOM_OVERLAP
    character_overlap: float = FANDOM_OVERLAP
    relationship_overlap: float = RELATIONSHIP_OVERLAP
    total_estimate_ratio: float = TOTAL_ESTIMATE_RATIO
    page_size: int = RESULTS_PER_PAGE
    page_delay: float = CATEGORY_PAGE_DELAY


DEFAULT_POLICY = AggregatorPolicy()


class AggregationState(str, Enum):
    OR_ATTEMPT = "or_attempt"
    POST_FILTER = "post_filter"
    ACCEPT_SINGLE = "accept_single"
    FALLBACK_SEQUENTIAL = "fallback_sequential"
    PER_CATEGORY_FETCH = "per_category_fetch"
    DEDUP = "dedup"
    SORT = "sort"
    PAGINATE = "paginate"
    DONE = "done"


# ---------------- Tag matching ------------------


def _tokens(text: str, splitter: re.Pattern) -> List[str]:
    return [word for word in splitter.split(text) if len(word) > 1]


def tag_matches(
    candidate: str,
    target: str,
    threshold: float,
    splitter: re.Pattern = _RE_FANDOM_SPLIT,
) -> bool:
    """Loose tag comparison: exact, substring either way, or enough shared words."""

    story_tag = (candidate or "").lower().strip()
    wanted = (target or "").lower().strip()
    if not story_tag or not wanted:
        return False
    if story_tag == wanted or wanted in story_tag or story_tag in wanted:
        return True
    story_words = _tokens(story_tag, splitter)
    target_words = _tokens(wanted, splitter)
    if not target_words:
        return False
    matched = sum(
        1 for word in target_words if any(word in other or other in word for other in story_words)
    )
    return matched >= min(2, len(target_words) * threshold)


def _any_match(
    values: Iterable[str],
    targets: Sequence[str],
    threshold: float,
    splitter: re.Pattern,
) -> bool:
    return any(tag_matches(value, target, threshold, splitter) for value in values for target in targets)


def filter_by_fandom(
    stories: List[StoryRecord],
    fandoms: Sequence[str],
    policy: AggregatorPolicy = DEFAULT_POLICY,
) -> List[StoryRecord]:
    if not fandoms:
        return list(stories)
    return [s for s in stories if _any_match(s.fandom, fandoms, policy.fandom_overlap, _RE_FANDOM_SPLIT)]


def filter_by_characters(
    stories: List[StoryRecord],
    characters: Sequence[str],
    policy: AggregatorPolicy = DEFAULT_POLICY,
) -> List[StoryRecord]:
    if not characters:
        return list(stories)
    return [
        s for s in stories if _any_match(s.characters, characters, policy.character_overlap, _RE_FANDOM_SPLIT)
    ]


def filter_by_relationships(
    stories: List[StoryRecord],
    relationships: Sequence[str],
    policy: AggregatorPolicy = DEFAULT_POLICY,
) -> List[StoryRecord]:
    if not relationships:
        return list(stories)
    return [
        s
        for s in stories
        if _any_match(s.relationships, relationships, policy.relationship_overlap, _RE_RELATIONSHIP_SPLIT)
    ]


def post_filter(
    stories: List[StoryRecord],
    query: SearchQuery,
    policy: AggregatorPolicy = DEFAULT_POLICY,
) -> List[StoryRecord]:
    """Apply the character and relationship filters the upstream query could not."""

    kept = filter_by_characters(stories, query.characters, policy)
    kept = filter_by_relationships(kept, query.relationships, policy)
    if len(kept) != len(stories):
        logger.info("Post-filter kept %d of %d stories", len(kept), len(stories))
    return kept


# ---------------- Merge helpers ------------------


def dedupe_stories(stories: Iterable[StoryRecord]) -> List[StoryRecord]:
    """Drop repeated work ids, keeping the first occurrence."""

    seen = set()
    unique: List[StoryRecord] = []
    for story in stories:
        if story.work_id in seen:
            continue
        seen.add(story.work_id)
        unique.append(story)
    return unique


def sort_stories(stories: List[StoryRecord], sort_column: str) -> List[StoryRecord]:
    """Stable descending sort by the requested column.

    ``revised_at`` (and anything unrecognized) orders by last-updated date with
    unknown dates last. The archive exposes no comment counts on listings, so
    ``comments_count`` orders by kudos.
    """

    if sort_column in (SORT_KUDOS, SORT_COMMENTS):
        return sorted(stories, key=lambda s: s.kudos, reverse=True)
    if sort_column == SORT_HITS:
        return sorted(stories, key=lambda s: s.hits, reverse=True)
    if sort_column == SORT_BOOKMARKS:
        return sorted(stories, key=lambda s: s.bookmarks, reverse=True)
    known = [s for s in stories if s.last_updated_date and s.last_updated_date != UNKNOWN_DATE]
    unknown = [s for s in stories if not s.last_updated_date or s.last_updated_date == UNKNOWN_DATE]
    return sorted(known, key=lambda s: s.last_updated_date, reverse=True) + unknown


def paginate(stories: List[StoryRecord], page: int, page_size: int = RESULTS_PER_PAGE) -> List[StoryRecord]:
    start = (max(1, page) - 1) * page_size
    return stories[start : start + page_size]


def pages_per_category(page: int, category_count: int, page_size: int = RESULTS_PER_PAGE) -> int:
    """Listing pages to walk per category; never fewer than two."""

    needed = page * page_size + page_size
    return max(2, math.ceil(needed / max(1, category_count) / page_size))


def estimate_total_pages(
    deduped_count: int,
    summed_estimate: int,
    policy: AggregatorPolicy = DEFAULT_POLICY,
) -> int:
    size = policy.page_size
    return max(
        1,
        math.ceil(deduped_count / size),
        math.ceil(summed_estimate * policy.total_estimate_ratio / size),
    )


def build_or_query(fandoms: Sequence[str], existing: str = "") -> str:
    clause = " OR ".join(f'"{fandom}"' for fandom in fandoms)
    if existing and existing.strip():
        return f"({clause}) AND ({existing.strip()})"
    return clause


# ---------------- Aggregator ------------------


class MultiFandomAggregator:
    """Combine several single-fandom listings into one sorted, paginated page."""

    def __init__(
        self,
        search_client: Any,
        policy: AggregatorPolicy = DEFAULT_POLICY,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.client = search_client
        self.policy = policy
        self._sleep = sleep
        self.state = AggregationState.OR_ATTEMPT
        self.transitions: List[AggregationState] = []

    def _enter(self, state: AggregationState) -> None:
        logger.info("Aggregation %s -> %s", self.state.value, state.value)
        self.state = state
        self.transitions.append(state)

    async def search(self, query: SearchQuery) -> SearchResultPage:
        self.state = AggregationState.OR_ATTEMPT
        self.transitions = [AggregationState.OR_ATTEMPT]
        errors: List[str] = []
        try:
            accepted = await self._or_attempt(query, errors)
            if accepted is not None:
                self._enter(AggregationState.DONE)
                return accepted
            self._enter(AggregationState.FALLBACK_SEQUENTIAL)
            return await self._sequential(query, errors)
        except Exception as exc:  # every fallback exhausted; callers get an empty page
            logger.exception("Multi-fandom search failed")
            errors.append(describe(exc))
            self._enter(AggregationState.DONE)
            return SearchResultPage(stories=[], current_page=1, total_pages=1, strategy="failed", errors=errors)

    async def _or_attempt(self, query: SearchQuery, errors: List[str]) -> Optional[SearchResultPage]:
        fandoms = list(query.fandoms)
        or_query = replace(
            query,
            query=build_or_query(fandoms, query.query),
            fandoms=(),
            characters=(),
            relationships=(),
        )
        logger.info("Multi-fandom OR query: %s", or_query.query)
        try:
            result = await self.client.search(or_query)
        except FetchError as exc:
            logger.warning("OR query failed, falling back to sequential: %s", describe(exc))
            errors.append(describe(exc))
            return None

        self._enter(AggregationState.POST_FILTER)
        stories = filter_by_fandom(result.stories, fandoms, self.policy)
        stories = post_filter(stories, query, self.policy)
        logger.info("OR query kept %d of %d stories", len(stories), len(result.stories))
        if len(fandoms) > 1:
            return None

        self._enter(AggregationState.ACCEPT_SINGLE)
        return SearchResultPage(
            stories=stories,
            current_page=result.current_page,
            total_pages=result.total_pages,
            strategy="or_query",
            errors=errors,
            skipped_rows=result.skipped_rows,
        )

    def _category_query(self, query: SearchQuery, fandom: str, page: int) -> SearchQuery:
        return replace(query, fandoms=(fandom,), characters=(), relationships=(), page=page)

    async def _probe(self, query: SearchQuery, fandom: str) -> Tuple[int, Optional[SearchResultPage], Optional[str]]:
        try:
            first = await self.client.search(self._category_query(query, fandom, 1))
        except FetchError as exc:
            degraded = AggregationDegraded(f"size probe failed for {fandom}: {exc}", category=fandom)
            logger.warning("%s", describe(degraded))
            return 0, None, describe(degraded)
        estimate = first.total_pages * self.policy.page_size
        logger.info("Fandom %s: %d pages, estimated %d stories", fandom, first.total_pages, estimate)
        return estimate, first, None

    async def _walk(
        self,
        query: SearchQuery,
        fandom: str,
        pages: int,
        first: Optional[SearchResultPage],
    ) -> Tuple[List[StoryRecord], int, Optional[str]]:
        collected: List[StoryRecord] = []
        skipped = 0
        for page in range(1, pages + 1):
            if page == 1 and first is not None:
                result = first
            else:
                if page > 1:
                    await self._sleep(self.policy.page_delay)
                try:
                    result = await self.client.search(self._category_query(query, fandom, page))
                except FetchError as exc:
                    degraded = AggregationDegraded(
                        f"page {page} failed for {fandom}: {exc}", category=fandom
                    )
                    logger.warning("%s", describe(degraded))
                    return collected, skipped, describe(degraded)
            collected.extend(result.stories)
            skipped += result.skipped_rows
            if not result.stories:
                break
        logger.info("Collected %d stories from %s", len(collected), fandom)
        return collected, skipped, None

    async def _sequential(self, query: SearchQuery, errors: List[str]) -> SearchResultPage:
        fandoms = list(query.fandoms)
        self._enter(AggregationState.PER_CATEGORY_FETCH)
        probes = await asyncio.gather(*(self._probe(query, fandom) for fandom in fandoms))
        summed_estimate = sum(estimate for estimate, _, _ in probes)
        errors.extend(error for _, _, error in probes if error)

        pages = pages_per_category(query.page, len(fandoms), self.policy.page_size)
        logger.info(
            "Fetching %d page(s) from each of %d fandoms for page %d", pages, len(fandoms), query.page
        )
        walks = await asyncio.gather(
            *(self._walk(query, fandom, pages, first) for fandom, (_, first, _) in zip(fandoms, probes))
        )
        failed_categories = 0
        flattened: List[StoryRecord] = []
        skipped = 0
        for stories, walk_skipped, error in walks:
            flattened.extend(stories)
            skipped += walk_skipped
            if error:
                errors.append(error)
                if not stories:
                    failed_categories += 1

        if fandoms and failed_categories == len(fandoms):
            raise AggregationDegraded("every category failed", category=", ".join(fandoms))

        filtered = post_filter(flattened, query, self.policy)

        self._enter(AggregationState.DEDUP)
        unique = dedupe_stories(filtered)

        self._enter(AggregationState.SORT)
        ordered = sort_stories(unique, query.sort_column)

        self._enter(AggregationState.PAGINATE)
        window = paginate(ordered, query.page, self.policy.page_size)
        total_pages = estimate_total_pages(len(ordered), summed_estimate, self.policy)
        logger.info(
            "Page %d: %d of %d sorted stories, estimated %d pages",
            query.page,
            len(window),
            len(ordered),
            total_pages,
        )
        self._enter(AggregationState.DONE)
        return SearchResultPage(
            stories=window,
            current_page=query.page,
            total_pages=total_pages,
            strategy="sequential",
            errors=errors,
            skipped_rows=skipped,
        )


__all__ = [
    "AggregatorPolicy",
    "DEFAULT_POLICY",
    "AggregationState",
    "tag_matches",
    "filter_by_fandom",
    "filter_by_characters",
    "filter_by_relationships",
    "post_filter",
    "dedupe_stories",
    "sort_stories",
    "paginate",
    "pages_per_category",
    "estimate_total_pages",
    "build_or_query",
    "MultiFandomAggregator",
]
