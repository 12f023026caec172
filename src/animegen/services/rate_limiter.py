"""Fixed-window rate limiting over a shared key-value store.

Counts requests per identity within discrete, non-overlapping windows.
The read-then-write pair is not atomic, so concurrent bursts from one
identity can be slightly over-admitted. A burst of up to twice the limit is
possible across a window boundary.
"""

import hashlib
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import structlog

from animegen.core.config import Settings
from animegen.models.generation_job import Quality

logger = structlog.get_logger(__name__)


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def put(self, key: str, value: str, ttl_seconds: int) -> None: ...


@dataclass(frozen=True)
class RateLimitPolicy:
    """Request budget per window."""

    requests: int
    window_ms: int


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_time_ms: int  # epoch milliseconds when the window ends


def hash_ip(ip: str, salt: str) -> str:
    """Salted SHA-256 of a client IP, hex encoded."""
    return hashlib.sha256(f"{ip}{salt}".encode("utf-8")).hexdigest()


def rate_limit_key(scope: str, identity: str, window: int) -> str:
    """Compose rate_limit:{scope}:{identity}:{window}."""
    return f"rate_limit:{scope}:{identity}:{window}"


class FixedWindowRateLimiter:
    """Fixed-window counter with distinct anonymous and per-tier user budgets."""

    def __init__(
        self,
        store: KeyValueStore,
        anonymous: RateLimitPolicy,
        fast: RateLimitPolicy,
        quality: RateLimitPolicy,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize rate limiter.

        Args:
            store: Shared key-value store holding the counters
            anonymous: Budget for anonymous callers (keyed by hashed IP)
            fast: Budget for authenticated users on the fast tier
            quality: Budget for authenticated users on the quality tier
            clock: Returns current time in seconds (injectable for tests)
        """
        self.store = store
        self.anonymous = anonymous
        self.fast = fast
        self.quality = quality
        self.clock = clock

    @classmethod
    def from_settings(
        cls, store: KeyValueStore, settings: Settings, clock: Callable[[], float] = time.time
    ) -> "FixedWindowRateLimiter":
        user_window_ms = settings.rate_limit_user_window_seconds * 1000
        return cls(
            store,
            anonymous=RateLimitPolicy(
                settings.rate_limit_anonymous_requests,
                settings.rate_limit_anonymous_window_seconds * 1000,
            ),
            fast=RateLimitPolicy(settings.rate_limit_fast_requests, user_window_ms),
            quality=RateLimitPolicy(settings.rate_limit_quality_requests, user_window_ms),
            clock=clock,
        )

    def policy_for(self, is_anonymous: bool, quality: Quality) -> RateLimitPolicy:
        if is_anonymous:
            return self.anonymous
        if quality == Quality.QUALITY:
            return self.quality
        return self.fast

    async def check(self, scope: str, identity: str, policy: RateLimitPolicy) -> RateLimitResult:
        """Count one request against identity's current window.

        Args:
            scope: "anon" or "user"
            identity: Hashed IP (anonymous) or "<user_id>:<tier>"
            policy: Budget to enforce

        Returns:
            RateLimitResult; allowed=False with remaining=0 once the budget is spent
        """
        now_ms = int(self.clock() * 1000)
        window = now_ms // policy.window_ms
        reset_time_ms = (window + 1) * policy.window_ms
        key = rate_limit_key(scope, identity, window)

        current = await self.store.get(key)
        count = int(current) if current else 0

        if count >= policy.requests:
            logger.info("rate_limit.rejected", scope=scope, limit=policy.requests, window=window)
            return RateLimitResult(
                allowed=False, limit=policy.requests, remaining=0, reset_time_ms=reset_time_ms
            )

        ttl_seconds = max(1, math.ceil((reset_time_ms - now_ms) / 1000))
        await self.store.put(key, str(count + 1), ttl_seconds)

        return RateLimitResult(
            allowed=True,
            limit=policy.requests,
            remaining=policy.requests - count - 1,
            reset_time_ms=reset_time_ms,
        )

    async def check_submission(
        self,
        user_id: Optional[str],
        is_anonymous: bool,
        client_ip_hash: str,
        quality: Quality,
    ) -> RateLimitResult:
        """Apply the budget for a generation submission.

        Anonymous callers are keyed by hashed IP (first 16 hex chars);
        authenticated callers by user id and quality tier.
        """
        policy = self.policy_for(is_anonymous, quality)
        if is_anonymous or user_id is None:
            return await self.check("anon", client_ip_hash[:16], policy)
        return await self.check("user", f"{user_id}:{quality.value}", policy)
