# src/services/location_service/dependencies.py
"""
Зависимости сервиса геолокации.
Инициализация и управление ресурсами.
"""

from __future__ import annotations

from typing import Optional

from src.common.constants import TypeMsg
from src.common.logger import log_info
from src.config import settings
from src.infra.database import DatabaseManager, close_db, init_db
from src.services.location_service.repository import LocationRepository
from src.services.location_service.service import LocationIngestService, LocationQueryService
from src.services.realtime_ws.connection_manager import ConnectionManager


# Глобальные экземпляры ресурсов
_db: Optional[DatabaseManager] = None
_manager: Optional[ConnectionManager] = None

# Сервисы
_repository: Optional[LocationRepository] = None
_ingest_service: Optional[LocationIngestService] = None
_query_service: Optional[LocationQueryService] = None


def build_services(db: DatabaseManager, manager: ConnectionManager) -> None:
    """Собрать сервисы поверх готовых БД и менеджера соединений."""
    global _db, _manager, _repository, _ingest_service, _query_service

    _db = db
    _manager = manager
    _repository = LocationRepository(db, max_history_limit=settings.query.HISTORY_MAX_LIMIT)
    _ingest_service = LocationIngestService(_repository, manager)
    _query_service = LocationQueryService(
        _repository,
        default_limit=settings.query.HISTORY_DEFAULT_LIMIT,
        max_limit=settings.query.HISTORY_MAX_LIMIT,
    )


async def init_dependencies() -> None:
    """Инициализация всех зависимостей сервиса."""
    db = await init_db()
    manager = ConnectionManager(
        queue_size=settings.broadcast.SEND_QUEUE_SIZE,
        send_timeout=settings.broadcast.SEND_TIMEOUT,
    )
    build_services(db, manager)
    await log_info("Сервис геолокации инициализирован", type_msg=TypeMsg.INFO)


async def close_dependencies() -> None:
    """Закрытие всех ресурсов."""
    if _manager is not None:
        await _manager.close_all()
        await log_info("Live-соединения закрыты", type_msg=TypeMsg.DEBUG)

    await close_db()
    await log_info("PostgreSQL отключён", type_msg=TypeMsg.DEBUG)


def get_repository() -> LocationRepository:
    if _repository is None:
        raise RuntimeError("LocationRepository не инициализирован")
    return _repository


def get_connection_manager() -> ConnectionManager:
    if _manager is None:
        raise RuntimeError("ConnectionManager не инициализирован")
    return _manager


def get_ingest_service() -> LocationIngestService:
    if _ingest_service is None:
        raise RuntimeError("LocationIngestService не инициализирован")
    return _ingest_service


def get_query_service() -> LocationQueryService:
    if _query_service is None:
        raise RuntimeError("LocationQueryService не инициализирован")
    return _query_service
