"""
Mindak Reservations Backend — Submission Rate Limiting
======================================================

What:  Per-IP sliding-window limit on anonymous reservation submissions.
How:   Each client IP keeps the timestamps of its accepted submissions inside
       the window (settings.rate_limit_window seconds). When
       settings.rate_limit_requests are already inside the window the request
       is answered 429 with a Retry-After header; nothing reaches the router.

State is in process memory, so limits are per worker.
"""

import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from mindak.config import settings
from mindak.exceptions import RateLimitExceededError
from mindak.middleware.logging import client_address
from mindak.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

LIMITED_PREFIX = "/api/public/reservations"


def is_limited(request: Request) -> bool:
    return request.method == "POST" and request.url.path.startswith(LIMITED_PREFIX)


class RateLimitMiddleware(BaseHTTPMiddleware):

    # Stale IPs are dropped every this many accepted submissions
    SWEEP_EVERY = 1000

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._accepted = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not is_limited(request):
            return await call_next(request)

        ip = client_address(request)
        now = time.monotonic()
        window_start = now - settings.rate_limit_window

        hits = self._hits[ip]
        while hits and hits[0] <= window_start:
            hits.popleft()

        if len(hits) >= settings.rate_limit_requests:
            retry_after = int(hits[0] + settings.rate_limit_window - now) + 1
            logger.warning(
                "Rate limit exceeded for %s: %d submissions in %ds",
                ip, len(hits), settings.rate_limit_window,
            )
            return self._reject(RateLimitExceededError(retry_after=retry_after))

        hits.append(now)
        self._accepted += 1
        if self._accepted % self.SWEEP_EVERY == 0:
            self._sweep(window_start)
        return await call_next(request)

    @staticmethod
    def _reject(exc: RateLimitExceededError) -> JSONResponse:
        # Middleware runs outside the router, so the app's exception handlers never see this
        return JSONResponse(
            status_code=429,
            content={
                "error": "rate_limit_exceeded",
                "message": exc.message,
                "details": exc.context,
                "request_id": request_id_var.get(""),
            },
            headers={"Retry-After": str(exc.retry_after)},
        )

    def _sweep(self, window_start: float) -> None:
        stale = [ip for ip, hits in self._hits.items() if not hits or hits[-1] <= window_start]
        for ip in stale:
            del self._hits[ip]
        if stale:
            logger.debug("Dropped %d idle rate-limit entries", len(stale))
