# tests/services/test_location_service.py
"""
Unit тесты для LocationIngestService и LocationQueryService.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.common.constants import GpsStatus
from src.common.exceptions import InvalidInputError, StorageError
from src.services.location_service.service import LocationIngestService, LocationQueryService
from src.shared.models.location import CurrentPosition, LiveEvent, LocationReport


T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _position(employee_id: int, lat: float, lon: float, status: str, ts: datetime) -> CurrentPosition:
    return CurrentPosition(
        employee_id=employee_id,
        latitude=lat,
        longitude=lon,
        gps_status=status,
        last_update=ts,
    )


@pytest.fixture
def mock_repository() -> AsyncMock:
    """Мок LocationRepository."""
    repo = AsyncMock()
    repo.apply_report = AsyncMock()
    repo.get_all_current = AsyncMock(return_value=[])
    repo.get_history = AsyncMock(return_value=[])
    return repo


@pytest.fixture
def mock_manager() -> MagicMock:
    """Мок ConnectionManager (publish синхронный)."""
    manager = MagicMock()
    manager.publish = MagicMock(return_value=1)
    return manager


@pytest.fixture
def ingest(mock_repository: AsyncMock, mock_manager: MagicMock) -> LocationIngestService:
    return LocationIngestService(mock_repository, mock_manager)


class TestLocationIngestService:
    """Тесты приёма отчётов."""

    @pytest.mark.asyncio
    async def test_submit_publishes_committed_snapshot(
        self,
        ingest: LocationIngestService,
        mock_repository: AsyncMock,
        mock_manager: MagicMock,
    ) -> None:
        """Событие строится из закоммиченной записи, а не из запроса."""
        mock_repository.apply_report.return_value = _position(7, 37.7749, -122.4194, "on", T0)
        report = LocationReport(employee_id=7, latitude=37.7749, longitude=-122.4194, gps_status="on")

        event = await ingest.submit(report)

        assert isinstance(event, LiveEvent)
        assert event.last_update == T0
        mock_repository.apply_report.assert_awaited_once_with(7, 37.7749, -122.4194, GpsStatus.ON)
        mock_manager.publish.assert_called_once_with(event)

    @pytest.mark.asyncio
    async def test_storage_failure_publishes_nothing(
        self,
        ingest: LocationIngestService,
        mock_repository: AsyncMock,
        mock_manager: MagicMock,
    ) -> None:
        mock_repository.apply_report.side_effect = StorageError("Database error")
        report = LocationReport(employee_id=7, latitude=1.0, longitude=1.0, gps_status="on")

        with pytest.raises(StorageError):
            await ingest.submit(report)

        mock_manager.publish.assert_not_called()
        assert ingest.get_stats()["failed"] == 1

    @pytest.mark.asyncio
    async def test_invalid_report_publishes_nothing(
        self,
        ingest: LocationIngestService,
        mock_repository: AsyncMock,
        mock_manager: MagicMock,
    ) -> None:
        mock_repository.apply_report.side_effect = InvalidInputError("latitude must be between -90 and 90")
        report = LocationReport(employee_id=7, latitude=1.0, longitude=1.0, gps_status="on")

        with pytest.raises(InvalidInputError):
            await ingest.submit(report)

        mock_manager.publish.assert_not_called()
        assert ingest.get_stats()["rejected"] == 1

    @pytest.mark.asyncio
    async def test_gps_off_then_on_sequence(
        self,
        ingest: LocationIngestService,
        mock_repository: AsyncMock,
        mock_manager: MagicMock,
    ) -> None:
        """Сотрудник 7: on, затем off; наблюдатель видит оба события по порядку."""
        t1 = T0 + timedelta(seconds=30)
        mock_repository.apply_report.side_effect = [
            _position(7, 37.7749, -122.4194, "on", T0),
            _position(7, 37.7750, -122.4190, "off", t1),
        ]

        await ingest.submit(LocationReport(employee_id=7, latitude=37.7749, longitude=-122.4194, gps_status="on"))
        await ingest.submit(LocationReport(employee_id=7, latitude=37.7750, longitude=-122.4190, gps_status="off"))

        published = [call.args[0] for call in mock_manager.publish.call_args_list]
        assert [e.gps_status for e in published] == [GpsStatus.ON, GpsStatus.OFF]
        assert published[1].last_update == t1
        assert ingest.get_stats() == {
            "accepted": 2,
            "rejected": 0,
            "failed": 0,
            "unique_employees": 1,
        }

    @pytest.mark.asyncio
    async def test_publish_without_observers(
        self,
        ingest: LocationIngestService,
        mock_repository: AsyncMock,
        mock_manager: MagicMock,
    ) -> None:
        """Отсутствие наблюдателей не влияет на успешный ответ."""
        mock_manager.publish.return_value = 0
        mock_repository.apply_report.return_value = _position(3, 0.0, 0.0, "on", T0)

        event = await ingest.submit(LocationReport(employee_id=3, latitude=0, longitude=0, gps_status="on"))

        assert event.employee_id == 3


class TestLocationQueryService:
    """Тесты чтения положений и истории."""

    @pytest.fixture
    def query(self, mock_repository: AsyncMock) -> LocationQueryService:
        return LocationQueryService(mock_repository, default_limit=500, max_limit=5000)

    @pytest.mark.asyncio
    async def test_list_current(self, query: LocationQueryService, mock_repository: AsyncMock) -> None:
        mock_repository.get_all_current.return_value = [_position(1, 1.0, 2.0, "on", T0)]

        positions = await query.list_current()

        assert positions[0].employee_id == 1

    @pytest.mark.asyncio
    async def test_history_default_limit(self, query: LocationQueryService, mock_repository: AsyncMock) -> None:
        await query.get_history("7")

        mock_repository.get_history.assert_awaited_once_with(7, 500)

    @pytest.mark.asyncio
    async def test_history_limit_capped(self, query: LocationQueryService, mock_repository: AsyncMock) -> None:
        await query.get_history(7, "999999")

        mock_repository.get_history.assert_awaited_once_with(7, 5000)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("employee_id", ["abc", "0", "-3", "", "7.5", "²", "٣", "１２", 0, True])
    async def test_history_invalid_employee_id(
        self,
        query: LocationQueryService,
        mock_repository: AsyncMock,
        employee_id: Any,
    ) -> None:
        with pytest.raises(InvalidInputError, match="Invalid employee_id"):
            await query.get_history(employee_id)

        mock_repository.get_history.assert_not_called()

    @pytest.mark.parametrize(
        "limit, expected",
        [(None, 500), ("", 500), ("abc", 500), ("10", 10), (0, 1), (-1, 1), (5001, 5000)],
    )
    def test_clamp_limit(self, query: LocationQueryService, limit: Any, expected: int) -> None:
        assert query.clamp_limit(limit) == expected
