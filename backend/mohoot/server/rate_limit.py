"""Per-connection message throttling."""

import time
from collections.abc import Callable


class TokenBucket:
    """Allow `burst` messages at once, refilled at `rate` messages per second."""

    def __init__(self, rate: float, burst: int, clock: Callable[[], float] = time.monotonic) -> None:
        self._rate = rate
        self._burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._updated_at = clock()

    @property
    def available(self) -> float:
        return self._tokens

    def consume(self) -> bool:
        """Take one token. False means the caller should drop the message."""
        now = self._clock()
        self._tokens = min(float(self._burst), self._tokens + (now - self._updated_at) * self._rate)
        self._updated_at = now
        if self._tokens < 1.0:
            return False
        self._tokens -= 1.0
        return True
