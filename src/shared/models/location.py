# src/shared/models/location.py
"""
Модели геолокации сотрудников.

- LocationReport — входящий отчёт с устройства
- CurrentPosition — текущее положение (одна запись на сотрудника)
- HistoryRecord — запись append-only истории
- LiveEvent — снимок закоммиченного отчёта для рассылки наблюдателям
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from src.common.constants import (
    COORDINATE_SCALE,
    MAX_LATITUDE,
    MAX_LONGITUDE,
    MIN_LATITUDE,
    MIN_LONGITUDE,
    GpsStatus,
    WsMessageType,
)


def to_iso_z(value: datetime) -> str:
    """ISO-8601 в UTC с суффиксом Z."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def round_coordinate(value: Any) -> Any:
    """Приводит NUMERIC(10,6) из БД к float с 6 знаками."""
    if isinstance(value, (Decimal, float)):
        return round(float(value), COORDINATE_SCALE)
    return value


class LocationReport(BaseModel):
    """Отчёт о положении, присланный устройством."""

    employee_id: int = Field(..., ge=1)
    latitude: float = Field(..., ge=MIN_LATITUDE, le=MAX_LATITUDE)
    longitude: float = Field(..., ge=MIN_LONGITUDE, le=MAX_LONGITUDE)
    gps_status: GpsStatus
    # Время устройства принимается, но не используется: источник времени сервер
    timestamp: datetime | None = None


class _PositionBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: int
    latitude: float
    longitude: float
    gps_status: GpsStatus

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def normalize_coordinate(cls, v: Any) -> Any:
        return round_coordinate(v)


class CurrentPosition(_PositionBase):
    """Текущее положение сотрудника."""

    last_update: datetime

    @field_serializer("last_update")
    def serialize_last_update(self, value: datetime) -> str:
        return to_iso_z(value)


class HistoryRecord(_PositionBase):
    """Запись истории перемещений."""

    recorded_at: datetime

    @field_serializer("recorded_at")
    def serialize_recorded_at(self, value: datetime) -> str:
        return to_iso_z(value)


class LiveEvent(CurrentPosition):
    """
    Событие для live-канала. Строится только из закоммиченной записи,
    поля совпадают с CurrentPosition.
    """

    @classmethod
    def from_position(cls, position: CurrentPosition) -> "LiveEvent":
        return cls(**position.model_dump())

    def to_message(self) -> dict[str, Any]:
        """Сообщение для отправки в WebSocket."""
        return {
            "type": WsMessageType.LOCATION.value,
            "payload": self.model_dump(mode="json"),
        }
