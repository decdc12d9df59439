"""
TalentDesk Backend: Rate Limiting Middleware
============================================

What:  Per-IP sliding window rate limiter with two budgets.
How:   Each (bucket, IP) pair keeps a list of request timestamps. Timestamps
       older than the bucket's window are dropped on every request; when the
       remaining count reaches the limit the request is answered with 429.

Buckets:
    general  every non-excluded path    RATE_LIMIT_REQUESTS per RATE_LIMIT_WINDOW
    login    POST /api/auth/login only  LOGIN_RATE_LIMIT_REQUESTS per LOGIN_RATE_LIMIT_WINDOW

A login attempt counts against both buckets.

State lives in process memory, so limits are per worker. A multi-worker
deployment needs a shared store (Redis) to enforce one global budget.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from talentdesk.config import settings

logger = logging.getLogger(__name__)

LOGIN_PATH = "/api/auth/login"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """In-memory sliding window limiter keyed by bucket and client IP."""

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self._requests: Dict[Tuple[str, str], List[float]] = defaultdict(list)
        self._recorded = 0

    def _budgets(self, request: Request) -> List[Tuple[str, int, int]]:
        budgets = [("general", settings.rate_limit_requests, settings.rate_limit_window)]
        if request.method == "POST" and request.url.path == LOGIN_PATH:
            budgets.append(
                ("login", settings.login_rate_limit_requests, settings.login_rate_limit_window)
            )
        return budgets

    def _check(self, key: Tuple[str, str], limit: int, window: int, now: float) -> Optional[int]:
        """Drops expired timestamps; returns retry-after seconds when over the limit."""
        window_start = now - window
        timestamps = [ts for ts in self._requests[key] if ts > window_start]
        self._requests[key] = timestamps
        if len(timestamps) >= limit:
            return int(timestamps[0] + window - now) + 1
        return None

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.time()
        budgets = self._budgets(request)

        for bucket, limit, window in budgets:
            retry_after = self._check((bucket, client_ip), limit, window, now)
            if retry_after is not None:
                logger.warning(
                    "Rate limit exceeded for IP %s on %s bucket: %d requests in %ds window",
                    client_ip,
                    bucket,
                    len(self._requests[(bucket, client_ip)]),
                    window,
                )
                return JSONResponse(
                    status_code=429,
                    content={
                        "error": "rate_limit_exceeded",
                        "message": (
                            f"Too many requests. Please wait {retry_after} seconds before retrying."
                        ),
                        "details": {"retry_after": retry_after},
                    },
                    headers={"Retry-After": str(retry_after)},
                )

        for bucket, _, _ in budgets:
            self._requests[(bucket, client_ip)].append(now)
            self._recorded += 1

        if self._recorded >= 1000:
            self._recorded = 0
            self._cleanup_inactive(now)

        return await call_next(request)

    def _cleanup_inactive(self, now: float) -> None:
        """Forgets IPs with no request inside the longest configured window."""
        horizon = now - max(settings.rate_limit_window, settings.login_rate_limit_window)
        inactive = [
            key for key, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] < horizon
        ]
        for key in inactive:
            del self._requests[key]
        if inactive:
            logger.debug("Cleaned up %d inactive rate limit entries", len(inactive))
