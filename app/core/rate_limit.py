"""
In-memory rate limiting per client address.

Two limiters guard the API: a broad one for every /api request and a
strict one for /api/auth that only counts failed attempts.
"""
import logging
import math
import time
from collections import defaultdict
from typing import Dict, List, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from app.core.config import settings

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Sliding-window request counter keyed by client.

    Args:
        max_requests: Requests allowed per window.
        window_seconds: Window length in seconds.
    """

    def __init__(self, max_requests: int, window_seconds: int):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.hits: Dict[str, List[float]] = defaultdict(list)

    def _recent(self, key: str, now: float) -> List[float]:
        window_start = now - self.window_seconds
        recent = [t for t in self.hits.get(key, []) if t > window_start]
        if recent:
            self.hits[key] = recent
        else:
            self.hits.pop(key, None)
        return recent

    def is_limited(self, key: str, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return len(self._recent(key, now)) >= self.max_requests

    def hit(self, key: str, now: Optional[float] = None) -> None:
        now = time.time() if now is None else now
        self._recent(key, now)
        self.hits[key].append(now)

    def remaining(self, key: str, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        return max(0, self.max_requests - len(self._recent(key, now)))

    def retry_after(self, key: str, now: Optional[float] = None) -> int:
        """Seconds until the oldest counted request leaves the window."""
        now = time.time() if now is None else now
        recent = self._recent(key, now)
        if not recent:
            return 0
        return max(0, math.ceil(min(recent) + self.window_seconds - now))

    def reset(self) -> None:
        self.hits.clear()


api_limiter = RateLimiter(settings.API_RATE_LIMIT, settings.RATE_LIMIT_WINDOW_SECONDS)
auth_limiter = RateLimiter(settings.AUTH_RATE_LIMIT, settings.RATE_LIMIT_WINDOW_SECONDS)


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _limited_response(limiter: RateLimiter, key: str, message: str) -> JSONResponse:
    retry_after = limiter.retry_after(key)
    return JSONResponse(
        status_code=429,
        content={"error": "rate_limit_exceeded", "message": message, "retry_after": retry_after},
        headers={
            "Retry-After": str(retry_after),
            "X-RateLimit-Limit": str(limiter.max_requests),
            "X-RateLimit-Remaining": "0",
        },
    )


async def rate_limit_middleware(request: Request, call_next):
    path = request.url.path
    if not settings.RATE_LIMIT_ENABLED or not path.startswith(settings.API_PREFIX):
        return await call_next(request)

    key = client_key(request)
    if api_limiter.is_limited(key):
        logger.warning(f"API rate limit hit for {key}")
        return _limited_response(api_limiter, key, "API rate limit exceeded, please try again later.")

    is_auth = path.startswith(f"{settings.API_PREFIX}/auth")
    if is_auth and auth_limiter.is_limited(key):
        logger.warning(f"Auth rate limit hit for {key}")
        return _limited_response(
            auth_limiter, key, "Too many authentication attempts, please try again after 15 minutes."
        )

    api_limiter.hit(key)
    response = await call_next(request)
    if is_auth and response.status_code >= 400:
        auth_limiter.hit(key)

    response.headers["X-RateLimit-Limit"] = str(api_limiter.max_requests)
    response.headers["X-RateLimit-Remaining"] = str(api_limiter.remaining(key))
    return response
