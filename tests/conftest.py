# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import asyncio
import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("LOG_LEVEL", "DEBUG")


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "Системные настройки",
        "PROJECT_NAME": "location_tracker_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "ENVIRONMENT": "test",
        "HOST": "127.0.0.1",
        "PORT": 4100,
        "CORS_ORIGINS": ["http://localhost:3000"],
        "MAX_BODY_BYTES": 1024,
        "LOG_LEVEL": "DEBUG",
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "LOG_FORMAT": "json",
        "DB_HOST": "db.local",
        "DB_PORT": 5433,
        "DB_NAME": "location_tracker_test",
        "DB_USER": "tracker",
        "DB_PASSWORD": "test_password",
        "DB_MIN_POOL_SIZE": 2,
        "DB_CONN_LIMIT": 5,
        "DB_COMMAND_TIMEOUT": 10,
        "DB_RETRY_ATTEMPTS": 2,
        "DB_RETRY_DELAY": 0.5,
        "WS_PATH": "/ws",
        "BROADCAST_SEND_QUEUE_SIZE": 16,
        "BROADCAST_SEND_TIMEOUT": 1.5,
        "HISTORY_DEFAULT_LIMIT": 100,
        "HISTORY_MAX_LIMIT": 1000,
        "RATE_LIMIT_ENABLED": False,
        "RATE_LIMIT_REQUESTS_PER_MINUTE": 60,
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

class FakeTransaction:
    """Контекстный менеджер транзакции поверх мок-соединения."""

    def __init__(self, conn: AsyncMock) -> None:
        self.conn = conn
        self.committed = False
        self.rolled_back = False

    async def __aenter__(self) -> AsyncMock:
        return self.conn

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.committed = True
        else:
            self.rolled_back = True
        return False


@pytest.fixture
def mock_connection() -> AsyncMock:
    """Мок соединения asyncpg внутри транзакции."""
    conn = AsyncMock()
    conn.fetchval = AsyncMock(return_value=datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc))
    conn.fetchrow = AsyncMock(return_value=None)
    conn.execute = AsyncMock(return_value="INSERT 0 1")
    return conn


@pytest.fixture
def mock_db(mock_connection: AsyncMock) -> MagicMock:
    """Мок менеджера базы данных с транзакциями."""
    db = MagicMock()
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.execute = AsyncMock(return_value="INSERT 0 1")
    db.fetchval = AsyncMock(return_value=None)
    db.health_check = AsyncMock(return_value=True)
    db.transactions = []

    def _transaction() -> FakeTransaction:
        tx = FakeTransaction(mock_connection)
        db.transactions.append(tx)
        return tx

    db.transaction = MagicMock(side_effect=_transaction)
    return db


class FakeWebSocket:
    """
    Наблюдатель для тестов ConnectionManager.

    Отправленные сообщения складываются в sent; можно задать ошибку
    отправки или задержку.
    """

    def __init__(self, fail_with: Exception | None = None, delay: float = 0.0) -> None:
        self.sent: list[dict[str, Any]] = []
        self.accepted = False
        self.closed = False
        self.fail_with = fail_with
        self.delay = delay

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, data: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000) -> None:
        self.closed = True

    def of_type(self, message_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m.get("type") == message_type]


@pytest.fixture
def fake_websocket_factory():
    """Фабрика фейковых WebSocket."""
    return FakeWebSocket


# =============================================================================
# ФИКСТУРЫ МОДЕЛЕЙ
# =============================================================================

@pytest.fixture
def server_now() -> datetime:
    """Время сервера БД в тестах."""
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def sample_live_row(server_now: datetime) -> dict[str, Any]:
    """Строка employee_live_location, как её возвращает asyncpg."""
    from decimal import Decimal

    return {
        "employee_id": 7,
        "latitude": Decimal("37.774900"),
        "longitude": Decimal("-122.419400"),
        "gps_status": "on",
        "last_update": server_now,
    }


@pytest.fixture
def sample_history_rows(server_now: datetime) -> list[dict[str, Any]]:
    """Строки истории, новые первыми."""
    from datetime import timedelta
    from decimal import Decimal

    return [
        {
            "employee_id": 7,
            "latitude": Decimal("37.775000"),
            "longitude": Decimal("-122.419000"),
            "gps_status": "off",
            "recorded_at": server_now + timedelta(seconds=30),
        },
        {
            "employee_id": 7,
            "latitude": Decimal("37.774900"),
            "longitude": Decimal("-122.419400"),
            "gps_status": "on",
            "recorded_at": server_now,
        },
    ]
