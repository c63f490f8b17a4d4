"""Storage-backed sliding window rate limiting.

Each limiter instance owns a bucket (prefix) so endpoints with different
quotas never share a counter, even though they use the same store. The
window for `identity` lives at `rate-limit:<bucket>:<identity>` as a list of
request timestamps in milliseconds and is pruned on every check.

The check is a read-modify-write without a lock. Under concurrent bursts an
update can be lost and a few extra requests admitted; the limiter only has
to bound abuse, not count exactly.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional

import structlog
from fastapi import Request

from core.storage import KeyValueStorage

logger = structlog.get_logger(__name__)

# Quota for this bucket: WEBHOOK_RATE_LIMIT per WEBHOOK_RATE_WINDOW_MS
CONFIG_REFRESH_BUCKET = "config-refresh"


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a rate limit check."""

    allowed: bool
    remaining: int
    reset_at: int  # unix time in milliseconds


def rate_limit_key(bucket: str, identity: str) -> str:
    return f"rate-limit:{bucket}:{identity}"


class RateLimiter:
    """Sliding window limiter persisted in a shared key-value store."""

    def __init__(
        self,
        storage: KeyValueStorage,
        limit: int,
        window_ms: int,
        prefix: str,
        clock: Optional[Callable[[], float]] = None,
    ):
        if limit <= 0 or window_ms <= 0:
            raise ValueError("limit and window_ms must be positive")
        self.storage = storage
        self.limit = limit
        self.window_ms = window_ms
        self.prefix = prefix
        self._clock = clock or time.time

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _key(self, identity: str) -> str:
        return rate_limit_key(self.prefix, identity)

    async def _recent(self, identity: str, now_ms: int) -> list[int]:
        window_start = now_ms - self.window_ms
        timestamps = await self.storage.get_item(self._key(identity)) or []
        return [t for t in timestamps if t > window_start]

    async def check(self, identity: str) -> RateLimitResult:
        """Record a request for `identity` if it fits in the window.

        Returns:
            RateLimitResult; allowed=False once `limit` requests are in the window
        """
        now_ms = self._now_ms()
        recent = await self._recent(identity, now_ms)

        if len(recent) >= self.limit:
            reset_at = min(recent) + self.window_ms
            logger.warning(
                "Rate limit exceeded",
                bucket=self.prefix,
                identity=identity,
                reset_at=reset_at,
            )
            return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at)

        recent.append(now_ms)
        await self.storage.set_item(
            self._key(identity),
            recent,
            ttl=max(1, -(-self.window_ms // 1000)),
        )

        return RateLimitResult(
            allowed=True,
            remaining=self.limit - len(recent),
            reset_at=now_ms + self.window_ms,
        )

    async def get_request_count(self, identity: str) -> int:
        """Number of requests from `identity` still inside the window."""
        return len(await self._recent(identity, self._now_ms()))

    async def reset(self, identity: Optional[str] = None) -> None:
        """Forget one identity's window, or every window in this bucket."""
        if identity is not None:
            await self.storage.remove_item(self._key(identity))
            return
        for key in await self.storage.get_keys(f"rate-limit:{self.prefix}:"):
            await self.storage.remove_item(key)


def retry_after_seconds(reset_at_ms: int, now_ms: Optional[int] = None) -> int:
    """Seconds until a rejected caller may retry (rounded up, at least 1)."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return max(1, -(-(reset_at_ms - now_ms) // 1000))


def get_client_ip(request: Request, trust_proxy_headers: bool = True) -> str:
    """Get the caller's network identity.

    Proxy headers are checked in the order common load balancers and CDNs
    set them: X-Forwarded-For (first hop), X-Real-IP, CF-Connecting-IP.
    They are ignored unless the service runs behind a trusted proxy.
    """
    if trust_proxy_headers:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            first_ip = forwarded.split(",")[0].strip()
            if first_ip:
                return first_ip

        for header in ("X-Real-IP", "CF-Connecting-IP"):
            value = request.headers.get(header)
            if value and value.strip():
                return value.strip()

    if request.client and request.client.host:
        return request.client.host

    return "unknown"
