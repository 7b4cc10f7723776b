from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp

from .errors import Timeout, UpstreamHttpError
from .fetcher_config import (
    BASE_URL,
    BYPASS_RETRY_DELAY,
    CATEGORY_PAGE_DELAY,
    HDR_ACCEPT,
    HDR_ACCEPT_ENCODING,
    HDR_ACCEPT_LANGUAGE,
    MIN_REQUEST_INTERVAL,
    REQUEST_TIMEOUT,
    RESULTS_PER_PAGE,
    USER_AGENT,
)
from .fetcher_utils import _env_float, _env_int
from .html_normalize import decode_body

logger = logging.getLogger(__name__)


@dataclass
class FetchConfig:
    """Configuration parameters for polite archive fetching."""

    base_url: str = BASE_URL
    min_interval: float = MIN_REQUEST_INTERVAL
    timeout: float = REQUEST_TIMEOUT
    bypass_delay: float = BYPASS_RETRY_DELAY
    page_delay: float = CATEGORY_PAGE_DELAY
    page_size: int = RESULTS_PER_PAGE
    user_agent: str = USER_AGENT
    accept: str = HDR_ACCEPT
    accept_language: str = HDR_ACCEPT_LANGUAGE
    accept_encoding: str = HDR_ACCEPT_ENCODING

    @classmethod
    def from_env(cls) -> "FetchConfig":
        return cls(
            base_url=os.getenv("FICFETCH_BASE_URL", BASE_URL).rstrip("/") or BASE_URL,
            min_interval=_env_float("FICFETCH_MIN_INTERVAL", MIN_REQUEST_INTERVAL),
            timeout=_env_float("FICFETCH_TIMEOUT", REQUEST_TIMEOUT),
            bypass_delay=_env_float("FICFETCH_BYPASS_DELAY", BYPASS_RETRY_DELAY),
            page_delay=_env_float("FICFETCH_PAGE_DELAY", CATEGORY_PAGE_DELAY),
            page_size=max(1, _env_int("FICFETCH_PAGE_SIZE", RESULTS_PER_PAGE)),
            user_agent=os.getenv("FICFETCH_USER_AGENT", USER_AGENT) or USER_AGENT,
        )

    def headers(self) -> Dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept": self.accept,
            "Accept-Language": self.accept_language,
            "Accept-Encoding": self.accept_encoding,
            "Upgrade-Insecure-Requests": "1",
        }


@dataclass
class FetchResult:
    """Container for a single fetch attempt."""

    url: str
    status: int
    text: str
    fetched_at: str
    method: str = "aiohttp"
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "url": self.url,
            "status": self.status,
            "text_length": len(self.text),
            "fetched_at": self.fetched_at,
            "method": self.method,
        }
        if self.metadata:
            payload.update(self.metadata)
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


class PolitenessGate:
    """Spaces outbound requests at least ``interval`` seconds apart.

    One gate is shared by every fetch issued through a client, so callers on the
    same event loop queue behind each other instead of bursting. The timestamp is
    taken once a caller's wait is over, which is when its request goes out.
    ``clock`` and ``sleep`` are injectable so tests never sleep for real.
    """

    def __init__(
        self,
        interval: float = MIN_REQUEST_INTERVAL,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.interval = max(0.0, float(interval))
        self._clock = clock
        self._sleep = sleep
        self._last: Optional[float] = None
        self._last_key: Optional[str] = None
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def last_request_at(self) -> Optional[float]:
        return self._last

    def _get_lock(self) -> asyncio.Lock:
        # A lock is bound to the loop it first waits on; sync helpers may run
        # several loops over the life of one gate.
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    def remaining(self, interval: Optional[float] = None, key: Optional[str] = None) -> float:
        """Seconds left before the next request may go out.

        A shorter ``interval`` is honoured only when ``key`` matches the key of
        the previous request; anything else waits the full spacing.
        """

        spacing = self.interval
        if interval is not None and key is not None and key == self._last_key:
            spacing = min(spacing, max(0.0, float(interval)))
        if self._last is None:
            return 0.0
        return max(0.0, spacing - (self._clock() - self._last))

    async def wait(self, interval: Optional[float] = None, key: Optional[str] = None) -> float:
        """Block until the request may go out; return the seconds slept."""

        async with self._get_lock():
            delay = self.remaining(interval, key)
            if delay > 0:
                logger.debug("Politeness gate sleeping %.2fs", delay)
                await self._sleep(delay)
            self._last = self._clock()
            self._last_key = key
            return delay


class URLFetcher:
    """Async fetcher over one shared aiohttp session, gated by a PolitenessGate."""

    def __init__(
        self,
        config: Optional[FetchConfig] = None,
        gate: Optional[PolitenessGate] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.config = config or FetchConfig()
        self.gate = gate or PolitenessGate(self.config.min_interval)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "URLFetcher":
        await self._ensure_session()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self.config.headers(),
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def get(self, url: str, *, interval: Optional[float] = None, key: Optional[str] = None) -> FetchResult:
        """Fetch ``url`` after the gate clears.

        ``key`` names the resource for the gate and defaults to ``url`` without
        its query, so a work page and its ?view_adult=true retry share one key.

        Raises ``Timeout`` when the deadline expires and ``UpstreamHttpError`` on
        connection failures. Non-2xx responses are returned, not raised; the
        caller decides what a status means for its resource.
        """

        await self.gate.wait(interval, key if key is not None else url.split("?", 1)[0])
        logger.info("GET %s", url)
        try:
            return await self._fetch_once(url)
        except asyncio.TimeoutError as exc:
            raise Timeout(
                f"Request timed out after {self.config.timeout:.0f}s while fetching {url}",
                url=url,
            ) from exc
        except aiohttp.ClientError as exc:
            raise UpstreamHttpError(f"Connection failed for {url}: {exc}", url=url) from exc

    async def _fetch_once(self, url: str) -> FetchResult:
        session = await self._ensure_session()
        async with session.get(url) as resp:
            status = resp.status
            raw_bytes = await resp.read()
            headers = {k.lower(): v for k, v in resp.headers.items()}
        text = decode_body(raw_bytes, headers.get("content-type", ""))
        return FetchResult(
            url=url,
            status=status,
            text=text,
            fetched_at=datetime.now(timezone.utc).isoformat(),
            metadata={"content_type": headers.get("content-type", "").split(";")[0]},
        )


__all__ = ["FetchConfig", "FetchResult", "PolitenessGate", "URLFetcher"]
