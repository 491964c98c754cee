from rate_limit import RateLimiter


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_limit_within_window():
    clock = Clock()
    limiter = RateLimiter(limit=2, window=60, clock=clock)
    assert limiter.allow("a")
    assert limiter.allow("a")
    assert not limiter.allow("a")
    assert limiter.allow("b")


def test_window_slides():
    clock = Clock()
    limiter = RateLimiter(limit=1, window=60, clock=clock)
    assert limiter.allow("a")
    clock.now += 30
    assert not limiter.allow("a")
    assert limiter.retry_after("a") == 31
    clock.now += 30
    assert limiter.allow("a")


def test_retry_after_unknown_key():
    assert RateLimiter().retry_after("nobody") == 0


def test_idle_keys_are_forgotten():
    clock = Clock()
    limiter = RateLimiter(limit=5, window=300, clock=clock)
    for i in range(1000):
        limiter.allow(f"10.0.{i // 256}.{i % 256}")
    assert limiter.tracked() == 1000

    clock.now += 10000
    assert limiter.allow("late")
    assert limiter.tracked() == 1


def test_active_keys_survive_a_sweep():
    clock = Clock()
    limiter = RateLimiter(limit=1, window=300, clock=clock)
    limiter.allow("old")
    clock.now += 200
    limiter.allow("busy")
    clock.now += 150
    limiter.allow("new")
    assert limiter.tracked() == 2
    assert not limiter.allow("busy")
