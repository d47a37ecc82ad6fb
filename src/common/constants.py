# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class GpsStatus(str, Enum):
    """Состояние GPS на устройстве сотрудника."""
    ON = "on"
    OFF = "off"


class WsMessageType(str, Enum):
    """Типы сообщений live-канала."""
    HELLO = "hello"
    LOCATION = "location"
    PONG = "pong"


# Границы координат
MIN_LATITUDE = -90.0
MAX_LATITUDE = 90.0
MIN_LONGITUDE = -180.0
MAX_LONGITUDE = 180.0

# Лимиты выборки истории
DEFAULT_HISTORY_LIMIT = 500
MAX_HISTORY_LIMIT = 5000

# Точность хранения координат (NUMERIC(10,6))
COORDINATE_SCALE = 6
