"""
In-memory rate limiting keyed by client identifier.

Each key gets a fixed window of ``points`` that opens on its first request and
lasts ``duration`` seconds. A request that exhausts the window blocks the key
for ``block_duration`` seconds (or until the window closes when no block is
configured).
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

PRUNE_INTERVAL_SECONDS = 60.0


@dataclass
class RateLimitResult:
    allowed: bool
    remaining_points: int
    retry_after: float

    @property
    def retry_after_seconds(self) -> int:
        """Whole seconds until the next request will be accepted."""
        return max(1, math.ceil(self.retry_after))


@dataclass
class _Window:
    consumed: int
    expires_at: float
    blocked: bool = False


class RateLimiter:
    """Fixed-window request counter with an optional lockout period."""

    def __init__(
        self,
        points: int,
        duration: float,
        block_duration: float = 0,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ):
        if points < 1:
            raise ValueError("points must be at least 1")
        if duration <= 0:
            raise ValueError("duration must be positive")

        self.points = points
        self.duration = duration
        self.block_duration = block_duration
        self.name = name
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._last_prune = clock()

    def consume(self, key: str, points: int = 1) -> RateLimitResult:
        """
        Spend ``points`` for ``key``.

        Rejected requests still count against the window.
        """
        now = self._clock()
        self._prune(now)

        window = self._windows.get(key)
        if window is None or now >= window.expires_at:
            window = _Window(consumed=0, expires_at=now + self.duration)
            self._windows[key] = window

        window.consumed += points
        if window.consumed <= self.points:
            return RateLimitResult(
                allowed=True,
                remaining_points=self.points - window.consumed,
                retry_after=window.expires_at - now,
            )

        if self.block_duration > 0 and not window.blocked:
            window.blocked = True
            window.expires_at = now + self.block_duration
            logger.info(
                f"Rate limiter '{self.name}' blocking {key} for {self.block_duration}s"
            )
            return RateLimitResult(
                allowed=False, remaining_points=0, retry_after=self.block_duration
            )

        return RateLimitResult(
            allowed=False,
            remaining_points=0,
            retry_after=window.expires_at - now,
        )

    def get(self, key: str) -> Optional[RateLimitResult]:
        """Current state for ``key`` without consuming, or None if untracked."""
        now = self._clock()
        window = self._windows.get(key)
        if window is None or now >= window.expires_at:
            return None
        remaining = max(0, self.points - window.consumed)
        return RateLimitResult(
            allowed=remaining > 0,
            remaining_points=remaining,
            retry_after=window.expires_at - now,
        )

    def reset(self, key: Optional[str] = None):
        if key is None:
            self._windows.clear()
        else:
            self._windows.pop(key, None)

    def _prune(self, now: float):
        if now - self._last_prune < PRUNE_INTERVAL_SECONDS:
            return
        expired = [k for k, w in self._windows.items() if now >= w.expires_at]
        for k in expired:
            del self._windows[k]
        self._last_prune = now

    def __len__(self) -> int:
        return len(self._windows)
