"""
Agent Core — Per-Agent Rate Limiting

Sliding one-request-per-interval ceiling, tracked independently for
each agent identity. A rejected request raises RateLimitError carrying
`retry_after`; whether to wait and retry is the caller's decision.

Usage:
    limiter = AgentRateLimiter(interval=1.0)
    limiter.check("devon")          # ok
    limiter.check("devon")          # RateLimitError(retry_after≈1.0)
    limiter.check("tara")           # ok, separate identity

The clock is injectable so tests can step time deterministically.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from agentcore.errors import RateLimitError

logger = logging.getLogger("agentcore.rate_limit")


class AgentRateLimiter:
    """Thread-safe last-request table keyed by agent id."""

    def __init__(self, interval: float = 1.0, clock: Callable[[], float] = time.monotonic):
        self.interval = interval
        self._clock = clock
        self._last_request: dict[str, float] = {}
        self._lock = threading.Lock()

    def check(self, agent_id: str) -> None:
        """Record a request for `agent_id` or raise RateLimitError."""
        if self.interval <= 0:
            return
        with self._lock:
            now = self._clock()
            last = self._last_request.get(agent_id)
            if last is not None:
                elapsed = now - last
                if elapsed < self.interval:
                    retry_after = self.interval - elapsed
                    logger.debug(
                        "Rate limit hit for %s (retry after %.3fs)", agent_id, retry_after
                    )
                    raise RateLimitError(agent_id, retry_after=retry_after)
            self._last_request[agent_id] = now

    def time_until_allowed(self, agent_id: str) -> float:
        with self._lock:
            last = self._last_request.get(agent_id)
            if last is None:
                return 0.0
            return max(0.0, self.interval - (self._clock() - last))

    def reset(self, agent_id: str | None = None) -> None:
        with self._lock:
            if agent_id is None:
                self._last_request.clear()
            else:
                self._last_request.pop(agent_id, None)
