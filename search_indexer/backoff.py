from __future__ import annotations

import random
import time


class BackoffStrategy:
    """Exponential backoff with jitter between fetch retries.

    The delay for a retry is base * 2^(attempt-1), capped at max_seconds,
    plus up to ``jitter`` (a fraction of the delay) of random noise."""

    def __init__(self, base_seconds: float = 0.25, max_seconds: float = 4.0, jitter: float = 0.1) -> None:
        if base_seconds < 0 or max_seconds < 0:
            raise ValueError("backoff durations must be non-negative")
        self._base = base_seconds
        self._max = max_seconds
        self._jitter = jitter

    def get_sleep(self, attempt: int) -> float:
        """Return the delay in seconds before retry number ``attempt`` (1-based)."""
        exp = min(self._max, self._base * (2 ** max(attempt - 1, 0)))
        return exp + random.uniform(0, exp * self._jitter)

    def wait(self, attempt: int) -> None:
        time.sleep(self.get_sleep(attempt))
