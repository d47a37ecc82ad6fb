# src/infra/rate_limiter.py
"""
In-memory rate limiter (token bucket) для HTTP-запросов.

Ключ бакета — IP клиента. Запрос либо сразу получает токен,
либо отклоняется: клиент не ждёт освобождения.
"""

from __future__ import annotations

import time
from typing import Callable


class TokenBucket:
    """Token bucket с равномерным пополнением."""

    def __init__(
        self,
        rate_per_minute: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._rate = rate_per_minute / 60.0  # токенов в секунду
        self._capacity = float(rate_per_minute)
        self._tokens = float(rate_per_minute)
        self._clock = clock
        self._last_refill = clock()

    def try_acquire(self) -> bool:
        """Забрать один токен, если он есть."""
        now = self._clock()
        elapsed = now - self._last_refill
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
        self._last_refill = now

        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return True
        return False

    @property
    def is_full(self) -> bool:
        """Бакет успел пополниться до ёмкости (клиент давно не приходил)."""
        elapsed = self._clock() - self._last_refill
        return self._tokens + elapsed * self._rate >= self._capacity


class RateLimiter:
    """
    Набор бакетов по ключам.

    Вызывается только из event loop, поэтому блокировки не нужны:
    try_acquire не содержит точек переключения.
    """

    # Полные бакеты выбрасываются, чтобы словарь не рос бесконечно
    CLEANUP_EVERY = 1000

    def __init__(
        self,
        max_per_minute: int = 120,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_per_minute = max_per_minute
        self._clock = clock
        self._buckets: dict[str, TokenBucket] = {}
        self._calls = 0

    def try_acquire(self, key: str) -> bool:
        """True если запрос с ключом key разрешён."""
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = TokenBucket(self._max_per_minute, clock=self._clock)
            self._buckets[key] = bucket

        self._calls += 1
        if self._calls % self.CLEANUP_EVERY == 0:
            self._cleanup()

        return bucket.try_acquire()

    def reset(self, key: str | None = None) -> None:
        """Сбросить бакет ключа или все бакеты."""
        if key is None:
            self._buckets.clear()
        else:
            self._buckets.pop(key, None)

    def _cleanup(self) -> None:
        for key in [k for k, b in self._buckets.items() if b.is_full]:
            del self._buckets[key]
