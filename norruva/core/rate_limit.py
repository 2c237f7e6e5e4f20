import math
import time
from collections import deque
from typing import Callable, Deque, Dict

from norruva.core.exceptions import RateLimitExceeded

WINDOW_SECONDS = 60


class RateLimiter:
    """
    Sliding-window request cap keyed by API key id.
    A limit of 0 disables the check.
    """

    def __init__(self, limit: int, window_seconds: int = WINDOW_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}

    def check(self, key: str) -> None:
        if self.limit <= 0:
            return

        now = self._clock()
        hits = self._hits.setdefault(key, deque())

        # Evict timestamps that slid out of the window
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()

        if len(hits) >= self.limit:
            retry_after = math.ceil(self.window_seconds - (now - hits[0]))
            raise RateLimitExceeded(
                f"API rate limit of {self.limit} requests per minute exceeded.",
                retry_after=max(retry_after, 1),
            )

        hits.append(now)

    def reset(self, key: str) -> None:
        self._hits.pop(key, None)
