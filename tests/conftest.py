from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import pytest

from ficfetch.workflows.web_fetch import FetchResult

FIXTURES = Path(__file__).parent / "fixtures"

Outcome = Union[FetchResult, Exception]


def load_fixture(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


def make_result(url: str, text: str = "", status: int = 200) -> FetchResult:
    return FetchResult(url=url, status=status, text=text, fetched_at="2024-01-01T00:00:00+00:00")


class FakeFetcher:
    """Stands in for URLFetcher: maps URLs to canned results or exceptions."""

    def __init__(self, responses: Optional[Dict[str, Outcome]] = None, default: Optional[Outcome] = None):
        self.responses = dict(responses or {})
        self.default = default
        self.calls: List[Tuple[str, Optional[float]]] = []
        self.keys: List[Optional[str]] = []
        self.closed = False

    async def get(self, url: str, *, interval: Optional[float] = None, key: Optional[str] = None) -> FetchResult:
        self.calls.append((url, interval))
        self.keys.append(key)
        outcome = self.responses.get(url, self.default)
        if outcome is None:
            return make_result(url, status=404)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def work_html() -> str:
    return load_fixture("work_page.html")


@pytest.fixture
def warning_html() -> str:
    return load_fixture("warning_page.html")


@pytest.fixture
def interstitial_html() -> str:
    return load_fixture("interstitial_page.html")


@pytest.fixture
def restricted_html() -> str:
    return load_fixture("restricted_page.html")


@pytest.fixture
def search_html() -> str:
    return load_fixture("search_page.html")
