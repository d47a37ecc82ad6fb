# src/services/location_service/routes.py
"""
HTTP API приёма и чтения геолокации.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from src.services.location_service.dependencies import get_ingest_service, get_query_service
from src.services.location_service.service import LocationIngestService, LocationQueryService
from src.shared.models.common import ApiResponse
from src.shared.models.location import LocationReport

router = APIRouter(prefix="/api", tags=["Location"])


@router.post("/location", summary="Обновить положение сотрудника")
async def update_location(
    report: LocationReport,
    service: LocationIngestService = Depends(get_ingest_service),
) -> JSONResponse:
    """
    Принять отчёт о положении.

    Текущее положение и история записываются одной транзакцией,
    после коммита событие уходит в live-канал.
    """
    event = await service.submit(report)
    return JSONResponse(ApiResponse(message="Location updated", data=event).to_body())


@router.get("/locations", summary="Текущие положения всех сотрудников")
async def list_locations(
    service: LocationQueryService = Depends(get_query_service),
) -> JSONResponse:
    positions = await service.list_current()
    return JSONResponse(ApiResponse(data=positions).to_body())


@router.get("/locations/{employee_id}/history", summary="История перемещений сотрудника")
async def get_location_history(
    employee_id: str,
    limit: str | None = Query(default=None, description="По умолчанию 500, максимум 5000"),
    service: LocationQueryService = Depends(get_query_service),
) -> JSONResponse:
    """История сотрудника, новые записи первыми."""
    records = await service.get_history(employee_id, limit)
    return JSONResponse(ApiResponse(data=records).to_body())
