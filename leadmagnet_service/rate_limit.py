"""Per-identity fixed-window limiter guarding lead submissions.

The limiter keeps its counters in memory: it is not durable, not shared
across processes and resets on restart. It throttles abuse of the public
submission endpoint and is not a security boundary.

Example::

    limiter = RateLimiter(max_attempts=3, window_seconds=3600)
    if not await limiter.allow("user@example.com"):
        return {"error": "Too many attempts. Please try again later."}
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, Optional, Tuple

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_WINDOW_SECONDS = 3600


class RateLimiter:
    """Count attempts per identity inside a window starting at the first attempt.

    Attributes:
        max_attempts: Allowed calls per identity within one window.
        window_seconds: Window length in seconds.
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Optional[Callable[[], float]] = None,
    ):
        """Initialize an empty limiter.

        Args:
            max_attempts: Allowed calls per identity within one window.
            window_seconds: Window length in seconds.
            clock: Callable returning the current time in seconds. Defaults
                to :func:`time.time`; tests pass a fake clock.
        """
        self.max_attempts = max(1, int(max_attempts))
        self.window_seconds = float(window_seconds)
        self._clock = clock or time.time
        self._entries: Dict[str, Tuple[int, float]] = {}
        self._lock = asyncio.Lock()

    async def allow(self, identity: str) -> bool:
        """Register an attempt for ``identity`` and tell whether it is allowed.

        The identity is used as given (case-sensitive). A rejected call
        leaves the stored counter untouched.
        """
        async with self._lock:
            now = self._clock()
            entry = self._entries.get(identity)
            if entry is None or now > entry[1]:
                self._entries[identity] = (1, now + self.window_seconds)
                return True
            count, reset_at = entry
            if count >= self.max_attempts:
                return False
            self._entries[identity] = (count + 1, reset_at)
            return True

    async def reset(self, identity: str | None = None) -> None:
        """Forget the counter of ``identity``, or every counter when omitted."""
        async with self._lock:
            if identity is None:
                self._entries.clear()
            else:
                self._entries.pop(identity, None)
