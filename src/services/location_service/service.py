# src/services/location_service/service.py
"""
Бизнес-логика приёма и выдачи геолокации.
"""

from __future__ import annotations

from typing import Any

from src.common.constants import DEFAULT_HISTORY_LIMIT, MAX_HISTORY_LIMIT
from src.common.exceptions import InvalidInputError, StorageError
from src.common.logger import log_debug, log_error
from src.services.location_service.repository import LocationRepository
from src.services.realtime_ws.connection_manager import ConnectionManager
from src.shared.models.location import CurrentPosition, HistoryRecord, LiveEvent, LocationReport


class LocationIngestService:
    """
    Приём отчётов о положении сотрудников.

    Ответственности:
    - Атомарная запись отчёта (текущее положение + история)
    - Публикация LiveEvent только после коммита
    - Статистика приёма
    """

    def __init__(self, repository: LocationRepository, manager: ConnectionManager) -> None:
        self._repository = repository
        self._manager = manager

        # Статистика
        self._accepted = 0
        self._rejected = 0
        self._failed = 0
        self._employees_seen: set[int] = set()

    async def submit(self, report: LocationReport) -> LiveEvent:
        """
        Принять отчёт.

        1. Защитная проверка (основная валидация — на уровне схемы запроса)
        2. Атомарная запись в хранилище
        3. Публикация события наблюдателям

        Raises:
            InvalidInputError: отчёт некорректен, хранилище не тронуто
            StorageError: запись не закоммичена, событие не публикуется
        """
        try:
            position = await self._repository.apply_report(
                report.employee_id,
                report.latitude,
                report.longitude,
                report.gps_status,
            )
        except InvalidInputError:
            self._rejected += 1
            raise
        except StorageError:
            self._failed += 1
            await log_error(
                f"Отчёт сотрудника {report.employee_id} не сохранён",
                extra={"employee_id": report.employee_id},
            )
            raise

        self._accepted += 1
        self._employees_seen.add(position.employee_id)

        event = LiveEvent.from_position(position)
        queued = self._manager.publish(event)
        await log_debug(
            f"Положение сотрудника {event.employee_id} обновлено, разослано наблюдателям: {queued}",
        )
        return event

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            "accepted": self._accepted,
            "rejected": self._rejected,
            "failed": self._failed,
            "unique_employees": len(self._employees_seen),
        }


class LocationQueryService:
    """Чтение текущих положений и истории. Live-канал не затрагивает."""

    def __init__(
        self,
        repository: LocationRepository,
        default_limit: int = DEFAULT_HISTORY_LIMIT,
        max_limit: int = MAX_HISTORY_LIMIT,
    ) -> None:
        self._repository = repository
        self._default_limit = default_limit
        self._max_limit = max_limit

    async def list_current(self) -> list[CurrentPosition]:
        """Текущие положения всех сотрудников."""
        return await self._repository.get_all_current()

    async def get_history(self, employee_id: Any, limit: Any = None) -> list[HistoryRecord]:
        """
        История сотрудника, новые записи первыми.

        Args:
            employee_id: Положительное целое (строки из URL допускаются)
            limit: Размер выборки, по умолчанию 500, ограничен [1, 5000]
        """
        return await self._repository.get_history(
            self.parse_employee_id(employee_id),
            self.clamp_limit(limit),
        )

    @staticmethod
    def parse_employee_id(value: Any) -> int:
        """Проверяет, что id — положительное целое."""
        if isinstance(value, bool):
            raise InvalidInputError("Invalid employee_id")
        if isinstance(value, str):
            value = value.strip()
            # Только ASCII: isdigit() пропускает "²" и "٣"
            if not (value.isascii() and value.isdigit()):
                raise InvalidInputError("Invalid employee_id")
            value = int(value)
        if not isinstance(value, int) or value < 1:
            raise InvalidInputError("Invalid employee_id")
        return value

    def clamp_limit(self, limit: Any) -> int:
        """Нормализует limit: пусто или мусор → по умолчанию, затем в [1, max]."""
        if limit is None or limit == "":
            return self._default_limit
        try:
            value = int(limit)
        except (TypeError, ValueError):
            return self._default_limit
        return max(1, min(value, self._max_limit))
