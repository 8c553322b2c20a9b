"""Tests for the token bucket rate limiter."""

from mohoot.server.rate_limit import TokenBucket
from mohoot.tests.helpers.quiz import FakeClock


class _SecondsClock(FakeClock):
    def __init__(self) -> None:
        super().__init__(start_ms=0)

    def __call__(self) -> float:
        return self.now / 1000


class TestTokenBucket:
    def test_burst_allowed_then_throttled(self):
        bucket = TokenBucket(rate=1.0, burst=3, clock=_SecondsClock())
        assert [bucket.consume() for _ in range(4)] == [True, True, True, False]

    def test_refill_at_rate(self):
        clock = _SecondsClock()
        bucket = TokenBucket(rate=10.0, burst=5, clock=clock)
        for _ in range(5):
            bucket.consume()
        clock.advance(200)  # 0.2s at 10/s -> 2 tokens
        assert bucket.consume() is True
        assert bucket.consume() is True
        assert bucket.consume() is False

    def test_refill_capped_at_burst(self):
        clock = _SecondsClock()
        bucket = TokenBucket(rate=10.0, burst=5, clock=clock)
        clock.advance(100_000)
        assert all(bucket.consume() for _ in range(5))
        assert bucket.consume() is False
