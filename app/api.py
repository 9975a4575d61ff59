"""HTTP route definitions for reading ingestion and queries."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.schemas import (
    ReadingIn,
    ReadingOut,
    ReadingPageOut,
    ReadingStatisticsOut,
    SensorIn,
    SensorOut,
)
from errors import SensorNotFoundError, StorageUnavailableError, ValidationError
from models.records import Sensor
from services.ingestion import ReadingSink, build_default_sink
from services.queries import ReadingQueries, build_default_queries, parse_date_bound
from services.registry import SensorRegistry, build_default_registry
from settings import get_settings

router = APIRouter()


def get_sink() -> ReadingSink:
    return build_default_sink()


def get_queries() -> ReadingQueries:
    return build_default_queries()


def get_registry() -> SensorRegistry:
    return build_default_registry()


@router.post(
    "/lecturas",
    status_code=status.HTTP_201_CREATED,
    response_model=ReadingOut,
    summary="Ingest one sensor reading.",
)
async def create_reading(
    payload: ReadingIn,
    sink: ReadingSink = Depends(get_sink),
) -> ReadingOut:
    require_sensor = get_settings().ingest_require_known_sensor
    try:
        reading = sink.submit(payload.to_draft(), require_active_sensor=require_sensor)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except SensorNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except StorageUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return ReadingOut.from_reading(reading)


@router.get(
    "/lecturas/ultimas/{sensor_id}",
    response_model=List[ReadingOut],
    summary="Latest readings for one sensor, newest first.",
)
async def latest_readings(
    sensor_id: str,
    limit: Optional[int] = Query(default=None),
    queries: ReadingQueries = Depends(get_queries),
) -> List[ReadingOut]:
    return [ReadingOut.from_reading(item) for item in queries.latest(sensor_id, limit)]


@router.get(
    "/lecturas/estadisticas",
    response_model=List[ReadingStatisticsOut],
    summary="Aggregates per sensor and reading type.",
)
async def reading_statistics(
    sensor_id: Optional[str] = Query(default=None, alias="sensorId"),
    queries: ReadingQueries = Depends(get_queries),
) -> List[ReadingStatisticsOut]:
    return [ReadingStatisticsOut.from_summary(item) for item in queries.statistics(sensor_id)]


@router.get(
    "/lecturas",
    response_model=ReadingPageOut,
    summary="Filtered, paginated reading listing.",
)
async def list_readings(
    sensor_id: Optional[str] = Query(default=None, alias="sensorId"),
    kind: Optional[str] = Query(default=None, alias="tipo"),
    start: Optional[str] = Query(default=None, alias="fechaInicio"),
    end: Optional[str] = Query(default=None, alias="fechaFin"),
    limit: Optional[int] = Query(default=None),
    page: int = Query(default=1),
    queries: ReadingQueries = Depends(get_queries),
) -> ReadingPageOut:
    try:
        result = queries.list(
            sensor_id=sensor_id,
            kind=kind,
            start=parse_date_bound(start),
            end=parse_date_bound(end, end_of_day=True),
            page=page,
            limit=limit,
        )
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return ReadingPageOut.from_page(result)


@router.post(
    "/sensores",
    status_code=status.HTTP_201_CREATED,
    response_model=SensorOut,
    summary="Register or replace a sensor in the registry.",
)
async def register_sensor(
    payload: SensorIn,
    registry: SensorRegistry = Depends(get_registry),
) -> SensorOut:
    sensor = Sensor(
        id=payload.id,
        zone_id=payload.zone_id,
        type=payload.type,
        model=payload.model,
        status=payload.status,
        description=payload.description,
    )
    try:
        registry.register(sensor)
    except StorageUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return SensorOut(
        id=sensor.id,
        type=sensor.type,
        zone_id=sensor.zone_id,
        model=sensor.model,
        status=sensor.status,
        installed_at=sensor.installed_at,
    )


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
