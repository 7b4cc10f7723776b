import asyncio
from datetime import date, timedelta

from ficfetch.workflows.aggregator import (
    AggregationState,
    AggregatorPolicy,
    MultiFandomAggregator,
    build_or_query,
    dedupe_stories,
    estimate_total_pages,
    filter_by_fandom,
    filter_by_relationships,
    paginate,
    pages_per_category,
    sort_stories,
    tag_matches,
)
from ficfetch.workflows.errors import UpstreamHttpError
from ficfetch.workflows.records import SearchQuery, SearchResultPage, StoryRecord

HP = "Harry Potter - J. K. Rowling"
SW = "Star Wars - All Media Types"


def _story(work_id, fandom=HP, *, kudos=0, updated="2023-01-01", characters=(), relationships=(), title=None):
    return StoryRecord(
        work_id=str(work_id),
        title=title or f"Work {work_id}",
        url=f"https://archiveofourown.org/works/{work_id}",
        fandom=[fandom],
        characters=list(characters),
        relationships=list(relationships),
        kudos=kudos,
        published_date=updated,
        last_updated_date=updated,
    )


class FakeSearchClient:
    def __init__(self, pages=None, totals=None, or_stories=(), failing=(), or_error=None):
        self.pages = pages or {}
        self.totals = totals or {}
        self.or_stories = list(or_stories)
        self.failing = set(failing)
        self.or_error = or_error
        self.calls = []

    async def search(self, query):
        fandom = query.fandoms[0] if query.fandoms else None
        self.calls.append((fandom, query.page, query.query))
        if fandom is None:
            if self.or_error is not None:
                raise self.or_error
            return SearchResultPage(stories=list(self.or_stories), total_pages=1, strategy="single")
        if fandom in self.failing:
            raise UpstreamHttpError(f"HTTP 503 for {fandom}", status=503)
        return SearchResultPage(
            stories=list(self.pages.get((fandom, query.page), [])),
            current_page=query.page,
            total_pages=self.totals.get(fandom, 1),
        )


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def test_tag_matches_rules():
    assert tag_matches(HP, "Harry Potter", 0.6)
    assert tag_matches("Marvel", "Marvel Cinematic Universe", 0.6)
    assert tag_matches("Sherlock (TV)", "Sherlock Holmes TV", 0.6)
    assert not tag_matches(SW, "Harry Potter", 0.6)
    assert not tag_matches("", "Harry Potter", 0.6)


def test_relationship_filter_ignores_pairing_order():
    stories = [
        _story(1, relationships=["Hermione Granger/Ron Weasley"]),
        _story(2, relationships=["Draco Malfoy/Harry Potter"]),
    ]
    kept = filter_by_relationships(stories, ["Ron Weasley/Hermione Granger"])
    assert [s.work_id for s in kept] == ["1"]


def test_filter_by_fandom():
    stories = [_story(1, HP), _story(2, SW)]
    assert [s.work_id for s in filter_by_fandom(stories, ["Harry Potter"])] == ["1"]


def test_dedupe_keeps_first_occurrence():
    stories = [_story(1, title="first"), _story(2), _story(1, title="second")]
    unique = dedupe_stories(stories)
    assert [s.work_id for s in unique] == ["1", "2"]
    assert unique[0].title == "first"


def test_sort_by_date_puts_unknown_last():
    stories = [
        _story(1, updated="Unknown"),
        _story(2, updated="2021-01-01"),
        _story(3, updated="2023-05-05"),
    ]
    assert [s.work_id for s in sort_stories(stories, "revised_at")] == ["3", "2", "1"]


def test_sort_by_comments_falls_back_to_kudos():
    stories = [_story(1, kudos=5), _story(2, kudos=50), _story(3, kudos=5)]
    assert [s.work_id for s in sort_stories(stories, "comments_count")] == ["2", "1", "3"]


def test_paginate_window():
    stories = [_story(i) for i in range(45)]
    assert [s.work_id for s in paginate(stories, 2, 20)] == [str(i) for i in range(20, 40)]
    assert [s.work_id for s in paginate(stories, 3, 20)] == [str(i) for i in range(40, 45)]
    assert paginate(stories, 4, 20) == []


def test_pages_per_category():
    assert pages_per_category(1, 2, 20) == 2
    assert pages_per_category(2, 2, 20) == 2
    assert pages_per_category(1, 1, 20) == 2
    assert pages_per_category(3, 4, 20) == 2
    assert pages_per_category(1, 3, 20) == 2
    assert pages_per_category(5, 2, 20) == 3
    assert pages_per_category(4, 1, 20) == 5



def test_first_page_walks_two_pages_per_fandom():
    pages = {
        (HP, 1): [_story(1, HP)],
        (HP, 2): [_story(3, HP)],
        (SW, 1): [_story(2, SW)],
        (SW, 2): [_story(4, SW)],
    }
    client = FakeSearchClient(pages=pages, or_error=UpstreamHttpError("HTTP 500", status=500))
    sleep = RecordingSleep()
    aggregator = MultiFandomAggregator(client, sleep=sleep)

    page = asyncio.run(aggregator.search(SearchQuery(fandoms=[HP, SW])))

    assert sorted(s.work_id for s in page.stories) == ["1", "2", "3", "4"]
    assert sorted((fandom, n) for fandom, n, _ in client.calls if fandom) == [(HP, 1), (HP, 2), (SW, 1), (SW, 2)]
    assert len(sleep.delays) == 2


def test_estimate_total_pages_is_conservative():
    assert estimate_total_pages(45, 60) == 3
    assert estimate_total_pages(0, 0) == 1
    assert estimate_total_pages(10, 1000) == 5
    assert estimate_total_pages(10, 1000, AggregatorPolicy(total_estimate_ratio=0.2)) == 10


def test_build_or_query():
    assert build_or_query(["A", "B"]) == '"A" OR "B"'
    assert build_or_query(["A", "B"], "slow burn") == '("A" OR "B") AND (slow burn)'


def test_single_fandom_or_query_is_accepted():
    client = FakeSearchClient(or_stories=[_story(1, HP), _story(2, SW)])
    aggregator = MultiFandomAggregator(client, sleep=RecordingSleep())

    page = asyncio.run(aggregator.search(SearchQuery(fandoms=["Harry Potter"])))

    assert page.strategy == "or_query"
    assert [s.work_id for s in page.stories] == ["1"]
    assert client.calls == [(None, 1, '"Harry Potter"')]
    assert aggregator.transitions == [
        AggregationState.OR_ATTEMPT,
        AggregationState.POST_FILTER,
        AggregationState.ACCEPT_SINGLE,
        AggregationState.DONE,
    ]


def test_sequential_merge_returns_requested_window():
    base = date(2023, 6, 1)
    stories = [_story(i, HP if i < 25 else SW, updated=(base - timedelta(days=i)).isoformat()) for i in range(45)]
    pages = {
        (HP, 1): stories[0:20],
        (HP, 2): stories[20:25],
        (SW, 1): stories[25:45],
    }
    client = FakeSearchClient(pages=pages, totals={HP: 2, SW: 1}, or_stories=[_story(999, HP)])
    sleep = RecordingSleep()
    aggregator = MultiFandomAggregator(client, sleep=sleep)

    page = asyncio.run(aggregator.search(SearchQuery(fandoms=[HP, SW], page=2)))

    assert page.strategy == "sequential"
    assert page.current_page == 2
    assert [s.work_id for s in page.stories] == [str(i) for i in range(20, 40)]
    assert page.total_pages == 3
    assert page.errors == []
    assert sleep.delays == [0.5, 0.5]
    assert aggregator.transitions == [
        AggregationState.OR_ATTEMPT,
        AggregationState.POST_FILTER,
        AggregationState.FALLBACK_SEQUENTIAL,
        AggregationState.PER_CATEGORY_FETCH,
        AggregationState.DEDUP,
        AggregationState.SORT,
        AggregationState.PAGINATE,
        AggregationState.DONE,
    ]


def test_sequential_dedupes_crossovers_and_sorts_by_kudos():
    pages = {
        (HP, 1): [_story(1, HP, kudos=10, title="from hp"), _story(2, HP, kudos=300)],
        (SW, 1): [_story(1, SW, kudos=10, title="from sw"), _story(3, SW, kudos=42)],
    }
    client = FakeSearchClient(pages=pages)
    aggregator = MultiFandomAggregator(client, sleep=RecordingSleep())

    page = asyncio.run(aggregator.search(SearchQuery(fandoms=[HP, SW], sort_column="kudos_count")))

    assert [s.work_id for s in page.stories] == ["2", "3", "1"]
    kudos = [s.kudos for s in page.stories]
    assert kudos == sorted(kudos, reverse=True)
    assert page.stories[-1].title == "from hp"


def test_sequential_applies_character_post_filter():
    pages = {
        (HP, 1): [_story(1, HP, characters=["Hermione Granger"]), _story(2, HP, characters=["Draco Malfoy"])],
        (SW, 1): [_story(3, SW, characters=["Rey (Star Wars)"])],
    }
    client = FakeSearchClient(pages=pages)
    aggregator = MultiFandomAggregator(client, sleep=RecordingSleep())

    page = asyncio.run(aggregator.search(SearchQuery(fandoms=[HP, SW], characters=["Hermione Granger"])))

    assert [s.work_id for s in page.stories] == ["1"]


def test_failed_category_degrades_without_failing_search():
    pages = {(HP, 1): [_story(1, HP), _story(2, HP)]}
    client = FakeSearchClient(pages=pages, failing=[SW])
    aggregator = MultiFandomAggregator(client, sleep=RecordingSleep())

    page = asyncio.run(aggregator.search(SearchQuery(fandoms=[HP, SW])))

    assert page.strategy == "sequential"
    assert [s.work_id for s in page.stories] == ["1", "2"]
    assert page.errors
    assert all(error.startswith("aggregation_degraded") for error in page.errors)


def test_or_query_failure_falls_back_to_sequential():
    pages = {(HP, 1): [_story(1, HP)], (SW, 1): [_story(2, SW)]}
    client = FakeSearchClient(pages=pages, or_error=UpstreamHttpError("HTTP 500", status=500))
    aggregator = MultiFandomAggregator(client, sleep=RecordingSleep())

    page = asyncio.run(aggregator.search(SearchQuery(fandoms=[HP, SW])))

    assert page.strategy == "sequential"
    assert sorted(s.work_id for s in page.stories) == ["1", "2"]
    assert page.errors[0].startswith("upstream_http_error")


def test_total_failure_returns_empty_page():
    client = FakeSearchClient(failing=[HP, SW])
    aggregator = MultiFandomAggregator(client, sleep=RecordingSleep())

    page = asyncio.run(aggregator.search(SearchQuery(fandoms=[HP, SW], page=3)))

    assert page.stories == []
    assert page.current_page == 1
    assert page.total_pages == 1
    assert page.strategy == "failed"
    assert page.errors
    assert aggregator.state is AggregationState.DONE
