import asyncio

from conftest import FakeFetcher, make_result

from ficfetch.workflows.errors import Timeout
from ficfetch.workflows.extract_utils import parse_html
from ficfetch.workflows.warning_detector import (
    detect_content_warning,
    detect_restriction,
    has_work_title,
    negotiate_content_warning,
)

URL = "https://archiveofourown.org/works/123456"


def test_warning_interstitial_needs_bypass(warning_html):
    verdict = detect_content_warning(warning_html)
    assert verdict["matched"] is True
    assert verdict["has_title"] is False
    assert verdict["needs_bypass"] is True
    assert 'a[href*="view_adult=true"]' in verdict["indicators"]["selectors"]


def test_regular_work_page_is_not_treated_as_interstitial(work_html):
    # The rating/warning tag block matches the fingerprints, but the title is present.
    verdict = detect_content_warning(work_html)
    assert verdict["matched"] is True
    assert verdict["indicators"]["interstitial"] == []
    assert verdict["has_title"] is True
    assert verdict["needs_bypass"] is False


def test_detect_restriction(restricted_html, work_html):
    reason = detect_restriction(restricted_html)
    assert reason is not None
    assert "registered users" in reason
    assert detect_restriction("<html><body><p>Nothing to see</p></body></html>") is None


def test_negotiation_stops_at_first_working_variant(warning_html, work_html):
    fetcher = FakeFetcher(
        {
            f"{URL}?view_adult=true": make_result(f"{URL}?view_adult=true", warning_html),
            f"{URL}?view_full_work=true": make_result(f"{URL}?view_full_work=true", work_html),
        }
    )

    html, soup, variant = asyncio.run(negotiate_content_warning(fetcher, URL, warning_html, delay=1.0))

    assert variant == "view_full_work=true"
    assert html == work_html
    assert soup.select_one("h2.title.heading") is not None
    assert [url for url, _ in fetcher.calls] == [f"{URL}?view_adult=true", f"{URL}?view_full_work=true"]
    assert all(interval == 1.0 for _, interval in fetcher.calls)


def test_negotiation_never_raises_and_returns_original(warning_html):
    fetcher = FakeFetcher(
        {f"{URL}?view_adult=true": Timeout("slow", url=URL)},
        default=make_result(URL, "", status=500),
    )

    html, _, variant = asyncio.run(negotiate_content_warning(fetcher, URL, warning_html))

    assert variant is None
    assert html == warning_html
    assert len(fetcher.calls) == 3


def test_interstitial_with_embedded_listing_entry_needs_bypass(interstitial_html):
    verdict = detect_content_warning(interstitial_html)

    assert verdict["has_title"] is False
    assert verdict["needs_bypass"] is True
    assert "p.caution" in verdict["indicators"]["interstitial"]


def test_warning_tag_markup_alone_does_not_need_bypass():
    html = (
        '<html><body><ul class="tags"><li class="warning"><a class="tag">No Archive Warnings Apply</a></li>'
        "</ul><dt>Archive Warning:</dt></body></html>"
    )
    verdict = detect_content_warning(html)

    assert verdict["matched"] is True
    assert verdict["needs_bypass"] is False


def test_has_work_title_ignores_listing_entries(interstitial_html, work_html):
    assert has_work_title(parse_html(interstitial_html)) is False
    assert has_work_title(parse_html(work_html)) is True


def test_negotiation_rejects_variants_that_return_the_interstitial(interstitial_html):
    fetcher = FakeFetcher(default=make_result(URL, interstitial_html))

    html, _, variant = asyncio.run(negotiate_content_warning(fetcher, URL, interstitial_html))

    assert variant is None
    assert html == interstitial_html
    assert len(fetcher.calls) == 3


def test_negotiation_keys_retries_to_the_work_page(warning_html, work_html):
    fetcher = FakeFetcher({f"{URL}?view_adult=true": make_result(f"{URL}?view_adult=true", work_html)})

    asyncio.run(negotiate_content_warning(fetcher, URL, warning_html, delay=1.0))

    assert fetcher.keys == [URL]
