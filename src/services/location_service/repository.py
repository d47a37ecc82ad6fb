# src/services/location_service/repository.py
"""
Хранилище положений сотрудников (PostgreSQL).

Две таблицы:
- employee_live_location — текущее положение, одна строка на сотрудника
- employee_location_history — append-only история всех принятых отчётов

Запись отчёта (upsert текущего + insert в историю) выполняется одной
транзакцией с одной меткой времени: либо видны обе записи, либо ни одной.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from decimal import Decimal

import asyncpg
from asyncpg import Connection

from src.common.constants import (
    COORDINATE_SCALE,
    MAX_HISTORY_LIMIT,
    MAX_LATITUDE,
    MAX_LONGITUDE,
    MIN_LATITUDE,
    MIN_LONGITUDE,
    GpsStatus,
)
from src.common.exceptions import InvalidInputError, StorageError
from src.common.logger import log_error
from src.infra.database import DatabaseManager
from src.shared.models.location import CurrentPosition, HistoryRecord

# Ошибки, которые означают «хранилище недоступно или отвергло запись»
STORAGE_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    asyncio.TimeoutError,
)

_QUANT = Decimal(1).scaleb(-COORDINATE_SCALE)


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _to_numeric(value: float) -> Decimal:
    """float -> Decimal с 6 знаками для NUMERIC(10,6)."""
    return Decimal(str(value)).quantize(_QUANT)


class LocationRepository:
    """Position Store: текущие положения и история."""

    UPSERT_CURRENT_SQL = """
        INSERT INTO employee_live_location (employee_id, latitude, longitude, gps_status, last_update)
        VALUES ($1, $2, $3, $4, $5)
        ON CONFLICT (employee_id) DO UPDATE
        SET latitude = EXCLUDED.latitude,
            longitude = EXCLUDED.longitude,
            gps_status = EXCLUDED.gps_status,
            last_update = EXCLUDED.last_update
        RETURNING employee_id, latitude, longitude, gps_status, last_update
    """

    APPEND_HISTORY_SQL = """
        INSERT INTO employee_location_history (employee_id, latitude, longitude, gps_status, recorded_at)
        VALUES ($1, $2, $3, $4, $5)
    """

    SELECT_CURRENT_SQL = """
        SELECT employee_id, latitude, longitude, gps_status, last_update
        FROM v_employee_latest
    """

    SELECT_HISTORY_SQL = """
        SELECT employee_id, latitude, longitude, gps_status, recorded_at
        FROM employee_location_history
        WHERE employee_id = $1
        ORDER BY recorded_at DESC, id DESC
        LIMIT $2
    """

    def __init__(self, db: DatabaseManager, max_history_limit: int = MAX_HISTORY_LIMIT) -> None:
        self.db = db
        self.max_history_limit = max_history_limit

    # ------------------------------------------------------------------
    # Валидация
    # ------------------------------------------------------------------

    @staticmethod
    def validate_report(employee_id: int, lat: float, lon: float, status: GpsStatus | str) -> GpsStatus:
        """
        Проверяет отчёт до любого обращения к БД.

        Returns:
            Нормализованный статус GPS
        """
        if isinstance(employee_id, bool) or not isinstance(employee_id, int) or employee_id < 1:
            raise InvalidInputError(f"Invalid employee_id: {employee_id!r}")
        if not _is_number(lat) or not (MIN_LATITUDE <= lat <= MAX_LATITUDE):
            raise InvalidInputError(f"latitude must be between {MIN_LATITUDE:g} and {MAX_LATITUDE:g}")
        if not _is_number(lon) or not (MIN_LONGITUDE <= lon <= MAX_LONGITUDE):
            raise InvalidInputError(f"longitude must be between {MIN_LONGITUDE:g} and {MAX_LONGITUDE:g}")
        try:
            return GpsStatus(status)
        except ValueError:
            raise InvalidInputError("gps_status must be one of: on, off") from None

    # ------------------------------------------------------------------
    # Запись
    # ------------------------------------------------------------------

    async def upsert_current(
        self,
        conn: Connection,
        employee_id: int,
        lat: float,
        lon: float,
        status: GpsStatus | str,
        ts: datetime,
    ) -> CurrentPosition:
        """Вставляет или полностью заменяет текущее положение сотрудника."""
        gps_status = self.validate_report(employee_id, lat, lon, status)
        row = await conn.fetchrow(
            self.UPSERT_CURRENT_SQL,
            employee_id,
            _to_numeric(lat),
            _to_numeric(lon),
            gps_status.value,
            ts,
        )
        return CurrentPosition.model_validate(dict(row))

    async def append_history(
        self,
        conn: Connection,
        employee_id: int,
        lat: float,
        lon: float,
        status: GpsStatus | str,
        ts: datetime,
    ) -> None:
        """Добавляет запись в историю. Конфликтов не бывает."""
        gps_status = self.validate_report(employee_id, lat, lon, status)
        await conn.execute(
            self.APPEND_HISTORY_SQL,
            employee_id,
            _to_numeric(lat),
            _to_numeric(lon),
            gps_status.value,
            ts,
        )

    async def apply_report(
        self,
        employee_id: int,
        lat: float,
        lon: float,
        status: GpsStatus | str,
    ) -> CurrentPosition:
        """
        Атомарно применяет отчёт: upsert текущего положения и запись в историю
        в одной транзакции, с одним чтением серверных часов.

        Raises:
            InvalidInputError: отчёт не прошёл проверку (БД не трогается)
            StorageError: транзакция не закоммичена, изменений нет
        """
        gps_status = self.validate_report(employee_id, lat, lon, status)

        try:
            async with self.db.transaction() as conn:
                ts = await conn.fetchval("SELECT now()")
                position = await self.upsert_current(conn, employee_id, lat, lon, gps_status, ts)
                await self.append_history(conn, employee_id, lat, lon, gps_status, ts)
        except STORAGE_ERRORS as e:
            await log_error(
                f"Транзакция записи положения откатилась: {e}",
                extra={"employee_id": employee_id, "error_type": type(e).__name__},
            )
            raise StorageError("Database error", details={"employee_id": employee_id}) from e

        return position

    # ------------------------------------------------------------------
    # Чтение
    # ------------------------------------------------------------------

    async def get_all_current(self) -> list[CurrentPosition]:
        """Снимок текущих положений всех сотрудников. Порядок не задан."""
        try:
            rows = await self.db.fetch(self.SELECT_CURRENT_SQL)
        except STORAGE_ERRORS as e:
            await log_error(f"Не удалось прочитать текущие положения: {e}")
            raise StorageError("Database error") from e
        return [CurrentPosition.model_validate(dict(row)) for row in rows]

    async def get_history(self, employee_id: int, limit: int) -> list[HistoryRecord]:
        """
        История сотрудника, новые записи первыми.
        limit ограничивается сверху max_history_limit независимо от запроса.
        """
        limit = max(1, min(int(limit), self.max_history_limit))
        try:
            rows = await self.db.fetch(self.SELECT_HISTORY_SQL, employee_id, limit)
        except STORAGE_ERRORS as e:
            await log_error(
                f"Не удалось прочитать историю: {e}",
                extra={"employee_id": employee_id},
            )
            raise StorageError("Database error") from e
        return [HistoryRecord.model_validate(dict(row)) for row in rows]

    async def ping(self) -> bool:
        """Доступна ли БД."""
        return await self.db.health_check()
