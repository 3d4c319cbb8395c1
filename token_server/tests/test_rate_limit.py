"""Tests for the sliding-window rate limiter."""
from token_server.rate_limit import SlidingWindowLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_allows_up_to_limit_then_blocks():
    clock = FakeClock()
    limiter = SlidingWindowLimiter(3, window_seconds=60, clock=clock)
    assert [limiter.check_and_consume("1.2.3.4")[0] for _ in range(3)] == [True, True, True]
    allowed, retry_after = limiter.check_and_consume("1.2.3.4")
    assert allowed is False
    assert retry_after == 60


def test_window_slides():
    clock = FakeClock()
    limiter = SlidingWindowLimiter(2, window_seconds=60, clock=clock)
    limiter.check_and_consume("ip")
    clock.now += 30
    limiter.check_and_consume("ip")
    clock.now += 10
    allowed, retry_after = limiter.check_and_consume("ip")
    assert not allowed
    assert retry_after == 20
    clock.now += 21
    assert limiter.check_and_consume("ip") == (True, None)


def test_keys_are_independent():
    limiter = SlidingWindowLimiter(1, clock=FakeClock())
    assert limiter.check_and_consume("a") == (True, None)
    assert limiter.check_and_consume("b") == (True, None)
    assert limiter.check_and_consume("a")[0] is False


def test_zero_limit_disables():
    limiter = SlidingWindowLimiter(0)
    for _ in range(100):
        assert limiter.check_and_consume("ip") == (True, None)


def test_idle_keys_are_dropped():
    clock = FakeClock()
    limiter = SlidingWindowLimiter(5, window_seconds=60, clock=clock)
    limiter.check_and_consume("a")
    clock.now += 30
    limiter.check_and_consume("b")
    clock.now += 31
    limiter.check_and_consume("c")
    # "a" is outside the window; "b" still has a live request
    assert "a" not in limiter._store
    assert set(limiter._store) == {"b", "c"}
    clock.now += 60
    limiter.check_and_consume("c")
    assert set(limiter._store) == {"c"}
