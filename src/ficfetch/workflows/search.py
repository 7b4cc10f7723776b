"""Single-source search: query-string building, execution and listing parsing."""

from __future__ import annotations

import logging
import re
from typing import Any, List, Optional, Tuple

from .errors import UpstreamHttpError
from .extract_utils import extract_rows, find_rows, parse_html
from .fetcher_config import (
    BASE_URL,
    COMMIT_VALUE,
    PARAM_COMMIT,
    PARAM_COMPLETE,
    PARAM_PAGE,
    PARAM_QUERY,
    PARAM_SORT_COLUMN,
    PARAM_TAG_ID,
    PARAM_WORDS_FROM,
    PARAM_WORDS_TO,
)
from .fetcher_utils import build_works_url
from .records import SearchQuery, SearchResultPage

logger = logging.getLogger(__name__)

_RE_PAGE_PARAM = re.compile(r"[?&]page=(\d+)")


def kudos_clause(kudos_from: Optional[int]) -> str:
    """The archive only filters kudos through its query language."""

    if not kudos_from:
        return ""
    return f"kudos > {int(kudos_from) - 1}"


def build_search_params(query: SearchQuery) -> List[Tuple[str, str]]:
    """Ordered ``(name, value)`` pairs for the works listing endpoint."""

    params: List[Tuple[str, str]] = []
    text = " ".join(part for part in ((query.query or "").strip(), kudos_clause(query.kudos_from)) if part)
    if text:
        params.append((PARAM_QUERY, text))
    for tag in (*query.fandoms, *query.characters, *query.relationships):
        tag = (tag or "").strip()
        if tag:
            params.append((PARAM_TAG_ID, tag))
    if query.complete is not None:
        params.append((PARAM_COMPLETE, "true" if query.complete else "false"))
    if query.words_from is not None:
        params.append((PARAM_WORDS_FROM, str(query.words_from)))
    if query.words_to is not None:
        params.append((PARAM_WORDS_TO, str(query.words_to)))
    if query.sort_column:
        params.append((PARAM_SORT_COLUMN, query.sort_column))
    params.append((PARAM_PAGE, str(query.page)))
    params.append((PARAM_COMMIT, COMMIT_VALUE))
    return params


def build_search_url(query: SearchQuery, base_url: str = BASE_URL) -> str:
    return build_works_url(build_search_params(query), base_url)


def _int_or(text: str, default: int) -> int:
    digits = re.sub(r"[^\d]", "", text or "")
    return int(digits) if digits else default


def parse_search_page(html: str, base_url: str = BASE_URL) -> SearchResultPage:
    """Parse a works listing into a result page.

    ``total_pages`` is the highest page number linked from this page, which is
    a lower bound on the real count, never an exact figure.
    """

    soup = parse_html(html)
    current_el = soup.select_one(".pagination .current")
    current_page = max(1, _int_or(current_el.get_text(" ", strip=True) if current_el else "", 1))

    total_pages = 1
    linked = []
    for link in soup.select(".pagination a"):
        match = _RE_PAGE_PARAM.search(link.get("href") or "")
        if match:
            linked.append(int(match.group(1)))
    if linked:
        total_pages = max(linked)
    if find_rows(soup):
        total_pages = max(total_pages, current_page)

    stories, skipped = extract_rows(soup, base_url)
    if skipped:
        logger.warning("Skipped %d listing rows without a work id", skipped)
    return SearchResultPage(
        stories=stories,
        current_page=current_page,
        total_pages=total_pages,
        strategy="single",
        skipped_rows=skipped,
    )


class SearchClient:
    """Runs one listing query through a gated fetcher."""

    def __init__(self, fetcher: Any, base_url: str = BASE_URL) -> None:
        self.fetcher = fetcher
        self.base_url = base_url

    async def search(self, query: SearchQuery) -> SearchResultPage:
        url = build_search_url(query, self.base_url)
        logger.info("Searching archive: %s", url)
        result = await self.fetcher.get(url)
        if not result.ok:
            raise UpstreamHttpError(
                f"Failed to search archive: HTTP {result.status}",
                status=result.status,
                url=url,
            )
        page = parse_search_page(result.text, self.base_url)
        logger.info(
            "Search page %d/%d returned %d stories",
            page.current_page,
            page.total_pages,
            len(page.stories),
        )
        return page


__all__ = [
    "kudos_clause",
    "build_search_params",
    "build_search_url",
    "parse_search_page",
    "SearchClient",
]
