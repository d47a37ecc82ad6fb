# src/shared/models/common.py
"""
Общие модели ответов API.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field


T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Успешный ответ: {success: true, message?, data}."""

    success: bool = True
    message: str | None = None
    data: T

    def to_body(self) -> dict[str, Any]:
        """Тело ответа без пустого message."""
        return self.model_dump(mode="json", exclude_none=True)


class ErrorResponse(BaseModel):
    """Стандартный ответ с ошибкой. Внутренние детали сюда не попадают."""

    success: bool = False
    error: str


class HealthStatus(BaseModel):
    """Статус здоровья сервиса."""

    status: str = "ok"  # ok, db_error


class StatsResponse(BaseModel):
    """Статистика приёма и рассылки."""

    ingest: dict[str, Any] = Field(default_factory=dict)
    broadcast: dict[str, Any] = Field(default_factory=dict)
