# src/infra/__init__.py
"""
Инфраструктурный слой.
Работа с PostgreSQL и ограничение частоты запросов.
"""

from src.infra.database import DatabaseManager, get_db, init_db, close_db
from src.infra.rate_limiter import RateLimiter, TokenBucket

__all__ = [
    "DatabaseManager",
    "get_db",
    "init_db",
    "close_db",
    "RateLimiter",
    "TokenBucket",
]
