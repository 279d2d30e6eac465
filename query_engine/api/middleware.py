"""
API Middleware - Rate Limiting, Request Tracking

Middleware for the FastAPI application:
- Rate limiting per client address (upstream systems are expensive to query)
- Request ID tracking (correlates API logs with engine logs)
"""

import time
import uuid
from collections import defaultdict
from collections.abc import Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from query_engine.core.logging_config import get_logger

logger = get_logger(__name__)

MINUTE = 60.0
HOUR = 3600.0
CLEANUP_INTERVAL = 300.0


# ============================================================
# Rate Limiting Middleware
# ============================================================


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding window rate limiter per client address.

    Configuration:
        - requests_per_minute: Maximum requests per minute per client
        - requests_per_hour: Maximum requests per hour per client
    """

    def __init__(self, app, requests_per_minute: int = 60, requests_per_hour: int = 1000, clock=time.monotonic):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.requests_per_hour = requests_per_hour
        self.clock = clock

        # {client: [request timestamps within the last hour]}
        self.requests: dict[str, list[float]] = defaultdict(list)
        self.last_cleanup = clock()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request with rate limiting."""
        if request.url.path == "/health":
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        now = self.clock()
        if now - self.last_cleanup >= CLEANUP_INTERVAL:
            self._cleanup_stale_clients(now)
        self._prune(client, now)

        is_allowed, reason = self._check_rate_limit(client, now)
        if not is_allowed:
            logger.warning("Rate limit exceeded", extra={"client": client, "path": request.url.path, "reason": reason})
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": f"Rate limit exceeded: {reason}", "retry_after": int(MINUTE)},
                headers={"Retry-After": str(int(MINUTE))},
            )

        self.requests[client].append(now)
        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(self.requests_per_minute)
        response.headers["X-RateLimit-Remaining"] = str(self._remaining(client, now))
        return response

    def _prune(self, client: str, now: float) -> None:
        self.requests[client] = [timestamp for timestamp in self.requests[client] if now - timestamp < HOUR]

    def _cleanup_stale_clients(self, now: float) -> None:
        """Forget clients with no requests in the last hour."""
        stale = [client for client, timestamps in self.requests.items() if not timestamps or now - timestamps[-1] >= HOUR]
        for client in stale:
            del self.requests[client]
        self.last_cleanup = now
        if stale:
            logger.debug("Removed stale rate limit entries", extra={"removed": len(stale), "tracked": len(self.requests)})

    def _last_minute(self, client: str, now: float) -> int:
        return sum(1 for timestamp in self.requests[client] if now - timestamp < MINUTE)

    def _check_rate_limit(self, client: str, now: float) -> tuple[bool, str]:
        """
        Returns:
            Tuple of (is_allowed, reason)
        """
        if self._last_minute(client, now) >= self.requests_per_minute:
            return False, f"{self.requests_per_minute} requests per minute exceeded"

        if len(self.requests[client]) >= self.requests_per_hour:
            return False, f"{self.requests_per_hour} requests per hour exceeded"

        return True, ""

    def _remaining(self, client: str, now: float) -> int:
        return max(0, self.requests_per_minute - self._last_minute(client, now))


# ============================================================
# Request ID Middleware
# ============================================================


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Add a unique request ID to each request for tracing.

    Adds X-Request-ID header to both request state and response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        logger.info(
            "API request",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "client_ip": request.client.host if request.client else "unknown",
            },
        )

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        response.headers["X-Request-ID"] = request_id

        logger.info(
            "API response",
            extra={"request_id": request_id, "status_code": response.status_code, "duration_ms": round(duration_ms, 2)},
        )
        return response
