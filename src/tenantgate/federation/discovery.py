"""
OIDC discovery and JWKS document cache.

Documents are cached by address. A fresh entry is served directly; a stale
entry is served while one background task refreshes it; a missing entry is
fetched inline. Concurrent callers for the same address share a single
in-flight fetch.

Forced refreshes of one address are throttled to one per
``min_refresh_interval`` seconds; inside that interval the cached copy is
returned.

Fetching is idempotent, so it retries on timeouts, transport errors, 5xx and
429 with exponential backoff. Exhausting the budget raises
FederationUnavailable.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from tenantgate.common.exceptions import FederationUnavailable

logger = logging.getLogger(__name__)

WELL_KNOWN_PATH = "/.well-known/openid-configuration"


@dataclass(frozen=True)
class DiscoveryDocument:
    """The subset of an OpenID provider configuration the broker uses."""

    issuer: Optional[str] = None
    authorization_endpoint: Optional[str] = None
    token_endpoint: Optional[str] = None
    jwks_uri: Optional[str] = None
    end_session_endpoint: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DiscoveryDocument":
        def _text(name: str) -> Optional[str]:
            value = data.get(name)
            return value if isinstance(value, str) and value else None

        return cls(
            issuer=_text("issuer"),
            authorization_endpoint=_text("authorization_endpoint"),
            token_endpoint=_text("token_endpoint"),
            jwks_uri=_text("jwks_uri"),
            end_session_endpoint=_text("end_session_endpoint"),
        )


@dataclass
class _Entry:
    value: dict[str, Any]
    fetched_at: float


async def fetch_json(
    http: httpx.AsyncClient,
    url: str,
    *,
    timeout: float = 10.0,
    max_retries: int = 3,
    backoff_base: float = 0.5,
) -> dict[str, Any]:
    """GET a JSON document with bounded retries.

    Retries on:
    - httpx.TimeoutException and other transport errors
    - 5xx status codes
    - 429 (rate limit)

    No retry on other 4xx responses or on a body that is not a JSON object.
    """
    last_error = None
    for attempt in range(max_retries):
        try:
            resp = await http.get(url, timeout=timeout, headers={"Accept": "application/json"})
            if resp.status_code >= 500 or resp.status_code == 429:
                last_error = f"HTTP {resp.status_code}"
            elif resp.status_code >= 400:
                raise FederationUnavailable(
                    f"Document fetch from {url} failed: HTTP {resp.status_code}"
                )
            else:
                try:
                    data = resp.json()
                except (json.JSONDecodeError, ValueError) as exc:
                    raise FederationUnavailable(f"Document at {url} is not valid JSON") from exc
                if not isinstance(data, dict):
                    raise FederationUnavailable(f"Document at {url} is not a JSON object")
                return data
        except httpx.TimeoutException:
            last_error = "timeout"
        except httpx.HTTPError as e:
            last_error = str(e) or type(e).__name__
        if attempt < max_retries - 1:
            await asyncio.sleep(backoff_base * (2 ** attempt))

    logger.warning(
        "Document fetch failed",
        extra={"url": url, "attempts": max_retries, "error": last_error},
    )
    raise FederationUnavailable(
        f"All {max_retries} attempts to fetch {url} failed: {last_error}"
    )


class DocumentCache:
    """Shared, read-mostly cache of provider documents keyed by address."""

    def __init__(
        self,
        http_factory: Callable[[], httpx.AsyncClient],
        ttl: float = 3600,
        timeout: float = 10.0,
        max_retries: int = 3,
        backoff_base: float = 0.5,
        min_refresh_interval: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._http_factory = http_factory
        self.ttl = ttl
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.min_refresh_interval = min_refresh_interval
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._forced_at: dict[str, float] = {}
        self._inflight: dict[str, asyncio.Task] = {}

    async def _load(self, address: str) -> dict[str, Any]:
        data = await fetch_json(
            self._http_factory(),
            address,
            timeout=self.timeout,
            max_retries=self.max_retries,
            backoff_base=self.backoff_base,
        )
        self._entries[address] = _Entry(value=data, fetched_at=self._clock())
        return data

    def _start_refresh(self, address: str) -> asyncio.Task:
        task = self._inflight.get(address)
        if task is None:
            task = asyncio.ensure_future(self._load(address))
            self._inflight[address] = task

            def _done(t: asyncio.Task) -> None:
                self._inflight.pop(address, None)
                if not t.cancelled() and t.exception() is not None:
                    logger.warning(
                        "Document refresh failed",
                        extra={"url": address, "error": str(t.exception())},
                    )

            task.add_done_callback(_done)
        return task

    def _allow_forced_refresh(self, address: str) -> bool:
        now = self._clock()
        last = self._forced_at.get(address)
        if last is not None and now - last < self.min_refresh_interval:
            logger.debug("Forced refresh throttled", extra={"url": address})
            return False
        self._forced_at[address] = now
        return True

    async def get(self, address: str, *, force_refresh: bool = False) -> dict[str, Any]:
        """Return the document at ``address``.

        Raises:
            FederationUnavailable: no cached copy and the fetch failed
        """
        entry = self._entries.get(address)
        if entry is not None and force_refresh:
            force_refresh = self._allow_forced_refresh(address)
        if entry is None or force_refresh:
            # shield: a cancelled caller must not cancel the shared fetch
            return await asyncio.shield(self._start_refresh(address))
        if self._clock() - entry.fetched_at > self.ttl:
            self._start_refresh(address)
        return entry.value

    async def get_discovery(self, address: str) -> DiscoveryDocument:
        return DiscoveryDocument.from_dict(await self.get(address))

    def invalidate(self, address: str) -> None:
        self._entries.pop(address, None)

    def clear(self) -> None:
        self._entries.clear()
        self._forced_at.clear()
