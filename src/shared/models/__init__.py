# src/shared/models/__init__.py
"""
Pydantic-модели сервиса геолокации.
"""

from src.shared.models.location import (
    LocationReport,
    CurrentPosition,
    HistoryRecord,
    LiveEvent,
)
from src.shared.models.common import (
    ApiResponse,
    ErrorResponse,
    HealthStatus,
)

__all__ = [
    "LocationReport",
    "CurrentPosition",
    "HistoryRecord",
    "LiveEvent",
    "ApiResponse",
    "ErrorResponse",
    "HealthStatus",
]
