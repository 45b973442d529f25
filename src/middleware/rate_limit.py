"""Per-client sliding-window rate limiting.

Each client IP keeps a deque of request timestamps from the last minute.
Twilio voice webhooks are exempt: throttling an operator's answer
mid-call would drop the emergency conversation.  State is in-process,
so limits apply per worker.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Final

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_EXEMPT_PATHS: Final[frozenset[str]] = frozenset({
    "/api",
    "/api/v1/health",
    "/api/v1/health/ready",
    "/api/v1/emergency/ivr",
    "/api/v1/emergency/ivr/timeout",
    "/api/v1/emergency/call-status",
    "/metrics",
    "/docs",
    "/redoc",
    "/openapi.json",
})

_WINDOW_SECONDS: Final[float] = 60.0
_SWEEP_EVERY: Final[int] = 1000


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Reject clients that exceed *max_requests_per_minute* with HTTP 429.

    Parameters
    ----------
    trusted_proxy_count:
        Reverse proxies in front of the app.  The client address is read
        from ``X-Forwarded-For`` at position ``-(trusted_proxy_count + 1)``;
        0 means the header is not trusted beyond its leftmost entry.
    """

    def __init__(
        self,
        app: object,
        max_requests_per_minute: int = 60,
        trusted_proxy_count: int = 1,
    ) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._limit = max_requests_per_minute
        self._trusted_proxy_count = trusted_proxy_count
        self._hits: dict[str, deque[float]] = {}
        self._lock = asyncio.Lock()
        self._since_sweep = 0

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in _EXEMPT_PATHS:
            return await call_next(request)

        client = self._client_ip(request)
        now = time.monotonic()

        async with self._lock:
            self._since_sweep += 1
            if self._since_sweep >= _SWEEP_EVERY:
                self._since_sweep = 0
                self._sweep(now)

            hits = self._hits.setdefault(client, deque())
            while hits and hits[0] < now - _WINDOW_SECONDS:
                hits.popleft()

            if len(hits) >= self._limit:
                retry_after = max(1, int(_WINDOW_SECONDS - (now - hits[0])) + 1)
                logger.warning("rate_limit.exceeded", client_ip=client, limit=self._limit)
                return JSONResponse(
                    status_code=429,
                    content={
                        "detail": "Rate limit exceeded. Please try again later.",
                        "retry_after_seconds": retry_after,
                    },
                    headers={
                        "Retry-After": str(retry_after),
                        "X-RateLimit-Limit": str(self._limit),
                        "X-RateLimit-Remaining": "0",
                    },
                )

            hits.append(now)
            remaining = self._limit - len(hits)

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self._limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response

    def _client_ip(self, request: Request) -> str:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            chain = [part.strip() for part in forwarded.split(",") if part.strip()]
            if chain:
                if self._trusted_proxy_count > 0 and len(chain) > self._trusted_proxy_count:
                    return chain[-(self._trusted_proxy_count + 1)]
                return chain[0]

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()
        return request.client.host if request.client else "unknown"

    def _sweep(self, now: float) -> None:
        cutoff = now - _WINDOW_SECONDS
        stale = [ip for ip, hits in self._hits.items() if not hits or hits[-1] < cutoff]
        for ip in stale:
            del self._hits[ip]
        if stale:
            logger.debug("rate_limit.swept", removed_ips=len(stale))
