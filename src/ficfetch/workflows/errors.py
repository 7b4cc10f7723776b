"""Failure kinds raised (or absorbed) by the fetch, search and aggregation layers."""

from __future__ import annotations

from typing import Optional


class FetchError(RuntimeError):
    """Base class; ``kind`` is a stable machine-readable tag, ``str()`` is for people."""

    kind = "fetch_error"

    def __init__(self, message: str, *, work_id: Optional[str] = None, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.work_id = work_id
        self.url = url


class NotFound(FetchError):
    kind = "not_found"


class Forbidden(FetchError):
    kind = "forbidden"


class UpstreamHttpError(FetchError):
    kind = "upstream_http_error"

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        work_id: Optional[str] = None,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(message, work_id=work_id, url=url)
        self.status = status


class Timeout(FetchError):
    kind = "timeout"


class MalformedResult(FetchError):
    """A search row without a recoverable work id; skipped by the parser."""

    kind = "malformed_result"


class AggregationDegraded(FetchError):
    """One category's contribution was truncated during a multi-category search."""

    kind = "aggregation_degraded"

    def __init__(self, message: str, *, category: str, url: Optional[str] = None) -> None:
        super().__init__(message, url=url)
        self.category = category


def describe(exc: BaseException) -> str:
    """Return ``kind: message`` for absorbed failures."""

    kind = getattr(exc, "kind", type(exc).__name__)
    return f"{kind}: {exc}"


__all__ = [
    "FetchError",
    "NotFound",
    "Forbidden",
    "UpstreamHttpError",
    "Timeout",
    "MalformedResult",
    "AggregationDegraded",
    "describe",
]
