"""
API rate limiting per client IP.

Two fixed-window scopes: general API calls, and the endpoints that call the
reasoning service (concept creation, path validation, estimation).
"""

import re
import time
from typing import Callable, Optional, Tuple

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from learnpath.api.deps import get_client_ip
from learnpath.config import get_settings
from learnpath.logging_config import get_logger

logger = get_logger(__name__)

WINDOW_SECONDS = 60

# Paths relative to the API prefix; POST only
_AI_PATHS = (
    re.compile(r"^/nodes/?$"),
    re.compile(r"^/validate-path/?$"),
    re.compile(r"^/estimate-nodes/?$"),
    re.compile(r"^/workflows/[^/]+/(estimate|schedule|implement)/?$"),
)


def is_ai_request(method: str, relative_path: str) -> bool:
    if method != "POST":
        return False
    return any(p.match(relative_path) for p in _AI_PATHS)


class InMemoryRateLimitStore:
    """Fixed-window in-memory store. Key -> (count, window_start_ts)."""

    def __init__(self):
        self._data: dict[str, Tuple[int, float]] = {}

    def check_and_incr(
        self,
        scope: str,
        identifier: str,
        limit: int,
        window_seconds: int = WINDOW_SECONDS,
    ) -> bool:
        """Returns True if under limit (and increments). False if over limit (no increment)."""
        key = f"{scope}:{identifier}"
        now = time.monotonic()
        count, start = self._data.get(key, (0, now))
        if now - start >= window_seconds:
            count, start = 0, now
        if count >= limit:
            return False
        self._data[key] = (count + 1, start)
        return True

    def cleanup_old(self, max_age_seconds: int = 3600) -> None:
        """Remove entries older than max_age_seconds to avoid unbounded growth."""
        now = time.monotonic()
        stale = [k for k, (_, start) in self._data.items() if now - start > max_age_seconds]
        for key in stale:
            self._data.pop(key, None)

    def reset(self) -> None:
        self._data.clear()


# Module-level store (single process)
_store: Optional[InMemoryRateLimitStore] = None


def get_store() -> InMemoryRateLimitStore:
    global _store
    if _store is None:
        _store = InMemoryRateLimitStore()
    return _store


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Rate limit by scope, per client IP:
    - ai: reasoning-backed POSTs, rate_limit_ai_per_minute
    - api: everything else under the API prefix, rate_limit_api_per_minute
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        settings = get_settings()
        if not settings.rate_limit_enabled:
            return await call_next(request)

        path = request.url.path or ""
        if not path.startswith(settings.api_prefix):
            return await call_next(request)

        store = get_store()
        store.cleanup_old(max_age_seconds=WINDOW_SECONDS * 10)

        identifier = get_client_ip(request) or "unknown"
        relative = path[len(settings.api_prefix):] or "/"
        if is_ai_request(request.method, relative):
            scope, limit = "ai", settings.rate_limit_ai_per_minute
        else:
            scope, limit = "api", settings.rate_limit_api_per_minute

        if not store.check_and_incr(scope, identifier, limit):
            logger.warning("Rate limit exceeded", extra={"scope": scope, "client_ip": identifier})
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"success": False, "error": "Too many requests. Please try again later."},
                headers={"Retry-After": str(WINDOW_SECONDS)},
            )
        return await call_next(request)
