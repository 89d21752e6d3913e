"""Fixed-window, in-memory request admission.

State lives in this process only. Running several instances needs a shared
counter store behind the same ``check_limit`` contract.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable

from fastapi import Depends, Request

from counsel_service.auth import current_user
from counsel_service.config import get_settings
from counsel_service.errors import RateLimitedError
from counsel_service.models.user import User

logger = logging.getLogger(__name__)


@dataclass
class RateLimitEntry:
    """Counter for one identity in its current window."""

    count: int
    reset_at: float


class RateLimiter:
    """Counts requests per identity in discrete, non-overlapping windows."""

    def __init__(
        self,
        window_seconds: float = 15 * 60,
        max_requests: int = 200,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(identity: str, endpoint: str | None) -> str:
        return f"{identity}:{endpoint}" if endpoint else identity

    def check_limit(self, identity: str, endpoint: str | None = None) -> None:
        """Admit one request or raise.

        Args:
            identity: Client identity (origin address)
            endpoint: Optional scope so endpoints get separate budgets

        Raises:
            RateLimitedError: If the identity used up its window
        """
        key = self._key(identity, endpoint)

        with self._lock:
            now = self._clock()
            self._purge_expired(now)

            entry = self._entries.get(key)
            if entry is None or now > entry.reset_at:
                self._entries[key] = RateLimitEntry(
                    count=1, reset_at=now + self.window_seconds
                )
                return

            if entry.count >= self.max_requests:
                retry_after = max(1, math.ceil(entry.reset_at - now))
                logger.warning(f"Rate limit exceeded for {key}, retry in {retry_after}s")
                raise RateLimitedError(retry_after)

            entry.count += 1

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if now > entry.reset_at]
        for key in expired:
            del self._entries[key]

    def get_stats(self, identity: str, endpoint: str | None = None) -> RateLimitEntry | None:
        """Current counter for an identity, or None if it has no live window."""
        with self._lock:
            entry = self._entries.get(self._key(identity, endpoint))
            if entry is None:
                return None
            return RateLimitEntry(count=entry.count, reset_at=entry.reset_at)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def reset(self) -> None:
        """Forget every counter."""
        with self._lock:
            self._entries.clear()


@lru_cache(maxsize=1)
def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter, created once from settings."""
    settings = get_settings()
    logger.info(
        f"Rate limiter: {settings.rate_limit_max_requests} requests per "
        f"{settings.rate_limit_window_seconds}s window"
    )
    return RateLimiter(
        window_seconds=settings.rate_limit_window_seconds,
        max_requests=settings.rate_limit_max_requests,
    )


def client_identity(request: Request) -> str:
    """Identity used for rate limiting, derived from the request origin."""
    if get_settings().trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


async def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency gating every API route.

    Raises:
        RateLimitedError: If the client exhausted its window
    """
    get_rate_limiter().check_limit(client_identity(request))


@dataclass
class ScopedRateLimiters:
    """Per-user budgets for the expensive operation groups."""

    message: RateLimiter
    session: RateLimiter
    search: RateLimiter


@lru_cache(maxsize=1)
def get_scoped_rate_limiters() -> ScopedRateLimiters:
    """Process-wide scoped limiters, created once from settings."""
    settings = get_settings()
    window = settings.scoped_window_seconds
    return ScopedRateLimiters(
        message=RateLimiter(window, settings.message_rate_limit),
        session=RateLimiter(window, settings.session_rate_limit),
        search=RateLimiter(window, settings.search_rate_limit),
    )


def scoped_rate_limit(scope: str):
    """Build a route dependency charging the caller's budget for ``scope``.

    Each route keeps its own counter inside the scope, keyed by the name of
    the route's endpoint function.

    Args:
        scope: One of ``message``, ``session`` or ``search``
    """

    async def dependency(
        request: Request,
        user: User = Depends(current_user),
        limiters: ScopedRateLimiters = Depends(get_scoped_rate_limiters),
    ) -> None:
        route = request.scope.get("route")
        endpoint = getattr(route, "name", None) or request.url.path
        getattr(limiters, scope).check_limit(str(user.id), endpoint)

    return dependency
