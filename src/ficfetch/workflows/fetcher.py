"""Story fetching and the client that wires the gate, fetcher and search layers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Awaitable, Callable, Optional

from dotenv import load_dotenv

from .aggregator import DEFAULT_POLICY, AggregatorPolicy, MultiFandomAggregator, post_filter, sort_stories
from .errors import Forbidden, NotFound, Timeout, UpstreamHttpError
from .extract_utils import extract_story, extract_title, parse_html
from .fetcher_utils import build_work_url, extract_work_id
from .records import SearchQuery, SearchResultPage, StoryRecord
from .search import SearchClient
from .warning_detector import detect_content_warning, detect_restriction, negotiate_content_warning
from .web_fetch import FetchConfig, PolitenessGate, URLFetcher

logger = logging.getLogger(__name__)


class StoryFetcher:
    """Fetch one work page, negotiate content warnings, and extract a record."""

    def __init__(self, fetcher: Any, config: Optional[FetchConfig] = None) -> None:
        self.fetcher = fetcher
        self.config = config or FetchConfig()

    async def fetch_story(self, work_id: str) -> StoryRecord:
        url = build_work_url(work_id, self.config.base_url)
        logger.info("Fetching story %s", url)
        try:
            result = await self.fetcher.get(url)
        except Timeout as exc:
            raise Timeout(
                f"Request timed out while fetching story {work_id} - the archive may be slow or unavailable",
                work_id=work_id,
                url=url,
            ) from exc
        except UpstreamHttpError as exc:
            exc.work_id = work_id
            raise

        if result.status == 404:
            raise NotFound(f"Story with ID {work_id} not found", work_id=work_id, url=url)
        if result.status == 403:
            raise Forbidden(f"Story with ID {work_id} is restricted or requires login", work_id=work_id, url=url)
        if not result.ok:
            raise UpstreamHttpError(
                f"Failed to fetch story {work_id}: HTTP {result.status}",
                status=result.status,
                work_id=work_id,
                url=url,
            )

        html = result.text
        soup = parse_html(html)
        warning = detect_content_warning(html, soup)
        if warning["needs_bypass"]:
            logger.info("Archive warning page detected for work %s, proceeding automatically", work_id)
            html, soup, _ = await negotiate_content_warning(
                self.fetcher, url, html, soup, delay=self.config.bypass_delay
            )

        if extract_title(soup) is None:
            reason = detect_restriction(html, soup)
            if reason:
                logger.warning("Work %s looks restricted (%s)", work_id, reason)
                raise Forbidden(
                    f"Story with ID {work_id} is restricted or requires login",
                    work_id=work_id,
                    url=url,
                )
        return extract_story(soup, work_id, url)


class ArchiveClient:
    """Composition root: one gate and one HTTP session shared by every request.

    Use as an async context manager so the session is closed on exit.
    """

    def __init__(
        self,
        config: Optional[FetchConfig] = None,
        *,
        gate: Optional[PolitenessGate] = None,
        fetcher: Any = None,
        policy: Optional[AggregatorPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config or FetchConfig.from_env()
        self.gate = gate or PolitenessGate(self.config.min_interval)
        self.fetcher = fetcher if fetcher is not None else URLFetcher(self.config, gate=self.gate)
        self.policy = policy or replace(
            DEFAULT_POLICY,
            page_size=self.config.page_size,
            page_delay=self.config.page_delay,
        )
        self._sleep = sleep
        self.stories = StoryFetcher(self.fetcher, self.config)
        self.search_client = SearchClient(self.fetcher, self.config.base_url)

    async def __aenter__(self) -> "ArchiveClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        closer = getattr(self.fetcher, "close", None)
        if closer is not None:
            await closer()

    async def fetch_story(self, work_id_or_url: str) -> StoryRecord:
        return await self.stories.fetch_story(extract_work_id(work_id_or_url))

    async def search(self, query: SearchQuery) -> SearchResultPage:
        """Route to a single listing query or to the multi-fandom aggregator."""

        if len(query.fandoms) > 1:
            aggregator = MultiFandomAggregator(self.search_client, self.policy, sleep=self._sleep)
            return await aggregator.search(query)
        page = await self.search_client.search(query)
        page.stories = sort_stories(post_filter(page.stories, query, self.policy), query.sort_column)
        return page


# ---------------- Single event loop helper for this module ------------------
_FETCH_LOOP: asyncio.AbstractEventLoop | None = None


def _run_in_fetch_loop(coro: "asyncio.coroutines.Coroutine"):
    global _FETCH_LOOP
    if _FETCH_LOOP is None or _FETCH_LOOP.is_closed():
        _FETCH_LOOP = asyncio.new_event_loop()
    return _FETCH_LOOP.run_until_complete(coro)


def fetch_story_sync(
    work_id_or_url: str,
    *,
    config: Optional[FetchConfig] = None,
    gate: Optional[PolitenessGate] = None,
) -> StoryRecord:
    """Fetch a single work using the shared defaults."""

    load_dotenv()

    async def _go() -> StoryRecord:
        async with ArchiveClient(config, gate=gate) as client:
            return await client.fetch_story(work_id_or_url)

    return _run_in_fetch_loop(_go())


def search_sync(
    query: SearchQuery,
    *,
    config: Optional[FetchConfig] = None,
    gate: Optional[PolitenessGate] = None,
) -> SearchResultPage:
    load_dotenv()

    async def _go() -> SearchResultPage:
        async with ArchiveClient(config, gate=gate) as client:
            return await client.search(query)

    return _run_in_fetch_loop(_go())


__all__ = [
    "StoryFetcher",
    "ArchiveClient",
    "fetch_story_sync",
    "search_sync",
]
