"""Per-client sliding-window rate limiter for HTTP requests."""

import threading
import time
from collections import deque
from dataclasses import dataclass, field

MINUTE_SECONDS = 60.0
HOUR_SECONDS = 3600.0


@dataclass(frozen=True)
class RateLimitExceeded:
    """Which window rejected the request."""

    limit: int
    window: str  # "minute" | "hour"

    @property
    def message(self) -> str:
        return f"Rate limit exceeded. Maximum {self.limit} requests per {self.window} allowed."


@dataclass
class _ClientWindow:
    timestamps: deque[float] = field(default_factory=deque)

    def prune(self, now: float) -> None:
        while self.timestamps and now - self.timestamps[0] >= HOUR_SECONDS:
            self.timestamps.popleft()

    def count_since(self, cutoff: float) -> int:
        # timestamps are ascending; walk from the newest end
        count = 0
        for ts in reversed(self.timestamps):
            if ts <= cutoff:
                break
            count += 1
        return count


class SlidingWindowLimiter:
    """Counts each client's requests over the last minute and the last hour.

    check() records the request only when both windows still have room; a
    rejected request does not count against the client.
    """

    def __init__(self, per_minute: int, per_hour: int) -> None:
        self._per_minute = per_minute
        self._per_hour = per_hour
        self._clients: dict[str, _ClientWindow] = {}
        self._lock = threading.Lock()

    def check(self, client_key: str) -> RateLimitExceeded | None:
        """Record one request for client_key, or return the limit it would exceed."""
        now = time.monotonic()
        with self._lock:
            window = self._clients.setdefault(client_key, _ClientWindow())
            window.prune(now)
            if window.count_since(now - MINUTE_SECONDS) >= self._per_minute:
                return RateLimitExceeded(limit=self._per_minute, window="minute")
            if len(window.timestamps) >= self._per_hour:
                return RateLimitExceeded(limit=self._per_hour, window="hour")
            window.timestamps.append(now)
            return None

    def prune_idle(self) -> int:
        """Drop clients with no requests in the last hour. Returns how many were dropped."""
        now = time.monotonic()
        with self._lock:
            idle = [
                key
                for key, window in self._clients.items()
                if not window.timestamps or now - window.timestamps[-1] >= HOUR_SECONDS
            ]
            for key in idle:
                del self._clients[key]
        return len(idle)

    @property
    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._clients)
