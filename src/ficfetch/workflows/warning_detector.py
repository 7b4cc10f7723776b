"""Content-warning and restriction detection for archive work pages."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup

from .errors import FetchError, describe
from .extract_utils import extract_title, parse_html
from .fetcher_config import BYPASS_RETRY_DELAY, BYPASS_VARIANTS

logger = logging.getLogger(__name__)

WARNING_SELECTORS = [
    ".warning",
    'form[action*="proceed"]',
    'input[name="commit"][value="Proceed"]',
    'a[href*="view_adult=true"]',
]
WARNING_PHRASES = [
    r"Archive Warning",
    r"view_adult=true",
    r"proceed\?",
]
# Markers of the caution interstitial itself; tag-list ``.warning`` markup and
# the "Archive Warning" label also appear on ordinary work pages.
INTERSTITIAL_SELECTORS = [
    "p.caution",
    'form[action*="proceed"]',
    'input[name="commit"][value="Proceed"]',
    'a[href*="view_adult=true"]',
]
INTERSTITIAL_PHRASES = [
    r"could have adult content",
    r"If you (?:proceed|continue)",
]
WORK_TITLE_SELECTORS = ["h2.title.heading", ".title.heading"]
RESTRICTION_SELECTORS = [
    ".error",
    'form[action*="user_sessions"]',
    'form[action*="/login"]',
]
RESTRICTION_PHRASES = [
    r"only available to registered users",
    r"restricted to registered users",
    r"log in to (?:view|read|continue)",
]

_RE_WARNING = [re.compile(p, re.I) for p in WARNING_PHRASES]
_RE_INTERSTITIAL = [re.compile(p, re.I) for p in INTERSTITIAL_PHRASES]
_RE_RESTRICTION = [re.compile(p, re.I) for p in RESTRICTION_PHRASES]


def _unique_hits(patterns: List[re.Pattern], text: str) -> List[str]:
    return sorted({pat.pattern for pat in patterns if pat.search(text)})


def _selector_hits(soup: BeautifulSoup, selectors: List[str]) -> List[str]:
    return [selector for selector in selectors if soup.select_one(selector) is not None]


def has_work_title(soup: BeautifulSoup) -> bool:
    """True when the page carries a work heading, not just an embedded listing entry."""

    return extract_title(soup, WORK_TITLE_SELECTORS) is not None


def detect_content_warning(html: str, soup: Optional[BeautifulSoup] = None) -> Dict[str, Any]:
    """Return warning-page fingerprints found in a fetched work page.

    ``matched`` reports any warning marker. Ordinary work pages carry ``.warning``
    tag markup too, so ``needs_bypass`` requires a caution/proceed marker of the
    interstitial and no work heading.
    """

    soup = soup if soup is not None else parse_html(html)
    selector_hits = _selector_hits(soup, WARNING_SELECTORS)
    phrase_hits = _unique_hits(_RE_WARNING, html or "")
    interstitial_hits = _selector_hits(soup, INTERSTITIAL_SELECTORS) + _unique_hits(
        _RE_INTERSTITIAL, soup.get_text(" ", strip=True)
    )
    has_title = has_work_title(soup)
    matched = bool(selector_hits or phrase_hits or interstitial_hits)
    return {
        "matched": matched,
        "needs_bypass": bool(interstitial_hits) and not has_title,
        "has_title": has_title,
        "indicators": {
            "selectors": selector_hits,
            "phrases": phrase_hits,
            "interstitial": interstitial_hits,
        },
    }


def detect_restriction(html: str, soup: Optional[BeautifulSoup] = None) -> Optional[str]:
    """Return a short reason when the page is an explicit restriction/login page."""

    soup = soup if soup is not None else parse_html(html)
    text = soup.get_text(" ", strip=True)
    phrase_hits = _unique_hits(_RE_RESTRICTION, text)
    if phrase_hits:
        return f"restriction text: {phrase_hits[0]}"
    selector_hits = _selector_hits(soup, RESTRICTION_SELECTORS)
    if selector_hits:
        return f"restriction markup: {selector_hits[0]}"
    return None


async def negotiate_content_warning(
    fetcher: Any,
    url: str,
    html: str,
    soup: Optional[BeautifulSoup] = None,
    *,
    delay: float = BYPASS_RETRY_DELAY,
    variants: Tuple[str, ...] = BYPASS_VARIANTS,
) -> Tuple[str, BeautifulSoup, Optional[str]]:
    """Retry ``url`` with each bypass variant until a work heading appears.

    Returns ``(html, soup, variant)``; ``variant`` is None when every attempt
    failed and the original page is handed back. Never raises for fetch errors.
    """

    soup = soup if soup is not None else parse_html(html)
    for variant in variants:
        bypass_url = f"{url}?{variant}"
        logger.info("Trying content-warning bypass %s", bypass_url)
        try:
            result = await fetcher.get(bypass_url, interval=delay, key=url)
        except FetchError as exc:
            logger.info("Bypass %s failed: %s", bypass_url, describe(exc))
            continue
        if not result.ok:
            logger.info("Bypass %s failed with status %s", bypass_url, result.status)
            continue
        candidate = parse_html(result.text)
        if has_work_title(candidate):
            logger.info("Bypassed content warning for %s using %s", url, variant)
            return result.text, candidate, variant
        logger.info("Bypass %s did not expose a work heading", bypass_url)
    logger.warning("All content-warning bypasses failed for %s; using original page", url)
    return html, soup, None


__all__ = [
    "has_work_title",
    "detect_content_warning",
    "detect_restriction",
    "negotiate_content_warning",
    "WARNING_SELECTORS",
    "INTERSTITIAL_SELECTORS",
    "RESTRICTION_SELECTORS",
]
