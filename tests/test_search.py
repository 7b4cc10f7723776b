import asyncio
from urllib.parse import parse_qsl, urlsplit

import pytest
from conftest import FakeFetcher, make_result

from ficfetch.workflows.errors import UpstreamHttpError
from ficfetch.workflows.records import SearchQuery
from ficfetch.workflows.search import (
    SearchClient,
    build_search_params,
    build_search_url,
    kudos_clause,
    parse_search_page,
)


def test_build_search_params_order_and_names():
    query = SearchQuery(
        query="time travel",
        fandoms=["Harry Potter - J. K. Rowling"],
        characters=["Hermione Granger"],
        relationships=["Hermione Granger/Ron Weasley"],
        complete=True,
        words_from=1000,
        kudos_from=100,
        sort_column="kudos_count",
        page=2,
    )

    assert build_search_params(query) == [
        ("work_search[query]", "time travel kudos > 99"),
        ("tag_id", "Harry Potter - J. K. Rowling"),
        ("tag_id", "Hermione Granger"),
        ("tag_id", "Hermione Granger/Ron Weasley"),
        ("work_search[complete]", "true"),
        ("work_search[words_from]", "1000"),
        ("work_search[sort_column]", "kudos_count"),
        ("page", "2"),
        ("commit", "Sort and Filter"),
    ]


def test_minimal_query_still_carries_page_and_commit():
    params = build_search_params(SearchQuery())
    assert params == [
        ("work_search[sort_column]", "revised_at"),
        ("page", "1"),
        ("commit", "Sort and Filter"),
    ]


def test_incomplete_filter_and_kudos_only_query():
    params = dict(build_search_params(SearchQuery(complete=False, kudos_from=1)))
    assert params["work_search[complete]"] == "false"
    assert params["work_search[query]"] == "kudos > 0"


def test_kudos_clause():
    assert kudos_clause(None) == ""
    assert kudos_clause(0) == ""
    assert kudos_clause(50) == "kudos > 49"


def test_build_search_url_round_trips_params():
    query = SearchQuery(query="a & b", fandoms=["Star Wars"], words_to=5000)
    url = build_search_url(query, "https://archiveofourown.org")
    parts = urlsplit(url)
    assert parts.path == "/works"
    assert parse_qsl(parts.query) == build_search_params(query)


def test_parse_search_page(search_html):
    page = parse_search_page(search_html)
    assert page.current_page == 1
    assert page.total_pages == 3
    assert page.strategy == "single"
    assert page.skipped_rows == 1
    assert [s.work_id for s in page.stories] == ["111", "222"]


def test_parse_search_page_without_pagination_uses_current_page():
    html = """
    <ol class="work index group">
      <li id="work_5" class="work blurb group"><div class="header"><h4 class="heading"><a href="/works/5">Solo</a></h4></div></li>
    </ol>
    """
    page = parse_search_page(html)
    assert page.current_page == 1
    assert page.total_pages == 1
    assert len(page.stories) == 1


def test_parse_empty_listing():
    page = parse_search_page("<html><body><p>No results found.</p></body></html>")
    assert page.stories == []
    assert page.total_pages == 1


def test_search_client_executes_through_fetcher(search_html):
    query = SearchQuery(fandoms=["Harry Potter"])
    url = build_search_url(query)
    fetcher = FakeFetcher({url: make_result(url, search_html)})

    page = asyncio.run(SearchClient(fetcher).search(query))

    assert fetcher.calls == [(url, None)]
    assert len(page.stories) == 2


def test_search_client_raises_on_http_error():
    fetcher = FakeFetcher(default=make_result("x", status=502))
    with pytest.raises(UpstreamHttpError) as excinfo:
        asyncio.run(SearchClient(fetcher).search(SearchQuery(query="x")))
    assert excinfo.value.status == 502
