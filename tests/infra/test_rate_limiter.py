# tests/infra/test_rate_limiter.py
"""
Тесты для ограничителя частоты запросов.
"""

from __future__ import annotations

from src.infra.rate_limiter import RateLimiter, TokenBucket


class FakeClock:
    """Управляемые часы."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestTokenBucket:
    """Тесты для TokenBucket."""

    def test_allows_up_to_capacity(self) -> None:
        """Полный бакет пропускает ровно rate_per_minute запросов подряд."""
        clock = FakeClock()
        bucket = TokenBucket(120, clock=clock)

        results = [bucket.try_acquire() for _ in range(121)]

        assert results[:120] == [True] * 120
        assert results[120] is False

    def test_refills_over_time(self) -> None:
        """120 в минуту = 2 токена в секунду."""
        clock = FakeClock()
        bucket = TokenBucket(120, clock=clock)
        for _ in range(120):
            bucket.try_acquire()

        clock.advance(1.0)

        assert bucket.try_acquire() is True
        assert bucket.try_acquire() is True
        assert bucket.try_acquire() is False

    def test_does_not_exceed_capacity(self) -> None:
        clock = FakeClock()
        bucket = TokenBucket(2, clock=clock)
        clock.advance(3600)

        assert [bucket.try_acquire() for _ in range(3)] == [True, True, False]

    def test_is_full(self) -> None:
        clock = FakeClock()
        bucket = TokenBucket(60, clock=clock)
        assert bucket.is_full is True

        bucket.try_acquire()
        assert bucket.is_full is False

        clock.advance(1.0)
        assert bucket.is_full is True


class TestRateLimiter:
    """Тесты для RateLimiter."""

    def test_keys_are_independent(self) -> None:
        """Исчерпание лимита одним IP не влияет на другой."""
        limiter = RateLimiter(max_per_minute=3, clock=FakeClock())

        for _ in range(3):
            assert limiter.try_acquire("10.0.0.1") is True
        assert limiter.try_acquire("10.0.0.1") is False
        assert limiter.try_acquire("10.0.0.2") is True

    def test_reset_single_key(self) -> None:
        limiter = RateLimiter(max_per_minute=1, clock=FakeClock())
        limiter.try_acquire("a")
        limiter.try_acquire("b")

        limiter.reset("a")

        assert limiter.try_acquire("a") is True
        assert limiter.try_acquire("b") is False

    def test_reset_all(self) -> None:
        limiter = RateLimiter(max_per_minute=1, clock=FakeClock())
        limiter.try_acquire("a")

        limiter.reset()

        assert limiter.try_acquire("a") is True

    def test_cleanup_drops_idle_buckets(self) -> None:
        """Бакеты давно не приходивших клиентов выбрасываются."""
        clock = FakeClock()
        limiter = RateLimiter(max_per_minute=10, clock=clock)
        limiter.CLEANUP_EVERY = 3

        limiter.try_acquire("idle")
        clock.advance(60)
        limiter.try_acquire("busy")
        limiter.try_acquire("busy")  # третий вызов запускает очистку

        assert "idle" not in limiter._buckets
        assert "busy" in limiter._buckets
