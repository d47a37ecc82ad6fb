# src/common/__init__.py
"""
Общие утилиты, константы, ошибки и логгер.
"""

from src.common.logger import get_logger, log_info, log_error, log_warning, log_debug
from src.common.constants import TypeMsg, GpsStatus
from src.common.exceptions import (
    LocationServiceError,
    InvalidInputError,
    StorageError,
    DeliveryError,
)

__all__ = [
    "get_logger",
    "log_info",
    "log_error",
    "log_warning",
    "log_debug",
    "TypeMsg",
    "GpsStatus",
    "LocationServiceError",
    "InvalidInputError",
    "StorageError",
    "DeliveryError",
]
