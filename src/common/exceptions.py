# src/common/exceptions.py
"""
Иерархия ошибок сервиса геолокации.
"""

from __future__ import annotations

from typing import Any


class LocationServiceError(Exception):
    """Базовая ошибка сервиса."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidInputError(LocationServiceError):
    """
    Некорректные входные данные (координаты вне диапазона, неверный id).
    Исправимо на стороне клиента, отдаётся как 4xx с описанием.
    """


class StorageError(LocationServiceError):
    """
    Ошибка хранилища: БД недоступна, нарушено ограничение, транзакция
    откатилась. Клиенту отдаётся только общее сообщение.
    """


class DeliveryError(LocationServiceError):
    """Не удалось доставить сообщение наблюдателю. Не покидает ConnectionManager."""
