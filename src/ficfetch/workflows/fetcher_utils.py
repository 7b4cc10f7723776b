"""Shared helper functions used by the fetch and search workflows."""

from __future__ import annotations

import os
import re
from typing import Dict, List, Optional
from urllib.parse import urlencode

from .fetcher_config import BASE_URL, MIN_REQUEST_INTERVAL, REQUEST_TIMEOUT, WORK_URL_PATTERN, WORKS_PATH

_WORK_URL_RE = re.compile(WORK_URL_PATTERN, re.I)
_WORK_PATH_RE = re.compile(r"/works/(\d+)")
_NUMERIC_RE = re.compile(r"^\d+$")


def _env_int(name: str, default: int = 0) -> int:
    try:
        raw = os.getenv(name, "")
        return int(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float = 0.0) -> float:
    try:
        raw = os.getenv(name, "")
        return float(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def extract_work_id(value: str) -> str:
    """Return the numeric work id from a bare id or any work/chapter URL."""

    raw = (value or "").strip()
    if _NUMERIC_RE.match(raw):
        return raw
    match = _WORK_URL_RE.search(raw)
    if match:
        return match.group(1)
    raise ValueError(
        "Invalid work URL format. Use a URL like https://archiveofourown.org/works/12345 "
        "or https://archiveofourown.org/works/12345/chapters/67890"
    )


def work_id_from_href(href: Optional[str]) -> Optional[str]:
    """Pull ``N`` out of a relative or absolute ``/works/N`` link."""

    if not href:
        return None
    match = _WORK_PATH_RE.search(href)
    return match.group(1) if match else None


def build_work_url(work_id: str, base_url: str = BASE_URL, query: str = "") -> str:
    url = f"{base_url.rstrip('/')}{WORKS_PATH}/{work_id}"
    return f"{url}?{query}" if query else url


def build_works_url(params, base_url: str = BASE_URL) -> str:
    """Encode ordered ``(name, value)`` pairs onto the works listing URL."""

    return f"{base_url.rstrip('/')}{WORKS_PATH}?{urlencode(list(params))}"


def collect_environment_warnings() -> List[Dict[str, str]]:
    """Flag environment overrides that would make the client impolite or unusable."""

    warnings: List[Dict[str, str]] = []
    interval = _env_float("FICFETCH_MIN_INTERVAL", MIN_REQUEST_INTERVAL)
    if interval < MIN_REQUEST_INTERVAL:
        warnings.append(
            {
                "code": "min_interval_below_floor",
                "message": f"FICFETCH_MIN_INTERVAL={interval:g}s is below the archive's {MIN_REQUEST_INTERVAL:g}s floor",
                "remedy": f"Unset FICFETCH_MIN_INTERVAL or set it to at least {MIN_REQUEST_INTERVAL:g}.",
            }
        )
    timeout = _env_float("FICFETCH_TIMEOUT", REQUEST_TIMEOUT)
    if timeout <= 0:
        warnings.append(
            {
                "code": "timeout_invalid",
                "message": f"FICFETCH_TIMEOUT={timeout:g}s disables the request deadline",
                "remedy": f"Set FICFETCH_TIMEOUT to a positive value (default {REQUEST_TIMEOUT:g}).",
            }
        )
    base_url = os.getenv("FICFETCH_BASE_URL", BASE_URL)
    if not base_url.startswith("https://"):
        warnings.append(
            {
                "code": "base_url_insecure",
                "message": f"FICFETCH_BASE_URL={base_url} is not an https URL",
                "remedy": f"Use {BASE_URL} unless testing against a local mirror.",
            }
        )
    return warnings


def sanity_check() -> None:
    assert extract_work_id("12345") == "12345"
    assert extract_work_id("https://archiveofourown.org/works/42/chapters/7") == "42"
    assert work_id_from_href("/works/99?view_adult=true") == "99"
    assert build_work_url("7", "https://example.org/") == "https://example.org/works/7"


sanity_check()

__all__ = [
    "extract_work_id",
    "work_id_from_href",
    "build_work_url",
    "build_works_url",
    "collect_environment_warnings",
    "sanity_check",
]
