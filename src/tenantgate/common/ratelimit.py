"""Per-client sliding-window rate limiting for anonymous endpoints."""

import logging
import time
from collections import OrderedDict, deque
from typing import Callable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from tenantgate.common.schemas import MessageResponse

logger = logging.getLogger(__name__)

TOO_MANY_REGISTRATIONS = "Too many registration attempts. Please try again later."


class SlidingWindowLimiter:
    """Allow at most ``limit`` hits per client within ``window`` seconds.

    Memory is bounded: at most ``max_clients`` clients are tracked, the
    least recently seen one is evicted first, and idle clients are swept
    once per window.
    """

    def __init__(
        self,
        limit: int,
        window: float,
        max_clients: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window = window
        self.max_clients = max_clients
        self._clock = clock
        self._hits: OrderedDict[str, deque[float]] = OrderedDict()
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._hits)

    def _sweep(self, now: float) -> None:
        cutoff = now - self.window
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]
        self._last_sweep = now

    def hit(self, key: str) -> bool:
        """Record a hit for ``key``; False when the client is over its limit."""
        now = self._clock()
        if now - self._last_sweep >= self.window:
            self._sweep(now)

        hits = self._hits.get(key)
        if hits is None:
            hits = deque()
            self._hits[key] = hits
            while len(self._hits) > self.max_clients:
                self._hits.popitem(last=False)
        else:
            self._hits.move_to_end(key)

        cutoff = now - self.window
        while hits and hits[0] <= cutoff:
            hits.popleft()
        if len(hits) >= self.limit:
            return False
        hits.append(now)
        return True


class RegistrationRateLimitMiddleware(BaseHTTPMiddleware):
    """Throttle tenant registration by client address."""

    def __init__(self, app, limiter: SlidingWindowLimiter, path: str):
        super().__init__(app)
        self.limiter = limiter
        self.path = path

    async def dispatch(self, request: Request, call_next):
        if request.method != "POST" or request.url.path != self.path:
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        if not self.limiter.hit(client):
            logger.warning("Registration rate limit exceeded", extra={"client": client})
            return JSONResponse(
                status_code=429,
                content=MessageResponse(message=TOO_MANY_REGISTRATIONS).model_dump(),
            )
        return await call_next(request)
