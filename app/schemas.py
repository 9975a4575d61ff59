"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.records import Reading, ReadingDraft, SensorStatus
from services.queries import ReadingPage
from services.statistics import KindSummary


class ApiModel(BaseModel):
    """Base schema accepting both camelCase wire names and field names."""

    model_config = ConfigDict(populate_by_name=True)


class ReadingIn(ApiModel):
    """Ingestion payload. Required-field checks happen in the ingestion sink."""

    id: Optional[str] = Field(default=None, max_length=64)
    sensor_id: Optional[str] = Field(default=None, alias="sensorId")
    kind: Optional[str] = Field(default=None, alias="tipo")
    value: Optional[float] = Field(default=None, alias="valor")
    unit: Optional[str] = Field(default=None, alias="unidad")
    timestamp: Optional[datetime] = Field(default=None, alias="fechaHora")

    def to_draft(self) -> ReadingDraft:
        return ReadingDraft(
            id=self.id,
            sensor_id=self.sensor_id,
            kind=self.kind,
            value=self.value,
            unit=self.unit,
            timestamp=self.timestamp,
        )


class ReadingOut(ApiModel):
    """A stored reading."""

    id: str
    sensor_id: str = Field(..., alias="sensorId")
    kind: str = Field(..., alias="tipo")
    value: float = Field(..., alias="valor")
    unit: str = Field(..., alias="unidad")
    timestamp: datetime = Field(..., alias="fechaHora")

    @classmethod
    def from_reading(cls, reading: Reading) -> "ReadingOut":
        return cls(
            id=reading.id,
            sensor_id=reading.sensor_id,
            kind=reading.kind.value,
            value=reading.value,
            unit=reading.unit,
            timestamp=reading.timestamp,
        )


class Pagination(ApiModel):
    current_page: int = Field(..., ge=1, alias="currentPage")
    total_pages: int = Field(..., ge=0, alias="totalPages")
    total_records: int = Field(..., ge=0, alias="totalRecords")
    page_size: int = Field(..., ge=1, alias="pageSize")


class ReadingPageOut(ApiModel):
    data: List[ReadingOut]
    pagination: Pagination

    @classmethod
    def from_page(cls, page: ReadingPage) -> "ReadingPageOut":
        return cls(
            data=[ReadingOut.from_reading(item) for item in page.items],
            pagination=Pagination(
                current_page=page.current_page,
                total_pages=page.total_pages,
                total_records=page.total_records,
                page_size=page.page_size,
            ),
        )


class ReadingStatisticsOut(ApiModel):
    """Aggregates for one (sensor, kind) group."""

    sensor_id: str = Field(..., alias="sensorId")
    kind: str = Field(..., alias="tipo")
    last_reading_at: Optional[datetime] = Field(default=None, alias="ultimaLectura")
    mean_value: Optional[float] = Field(default=None, alias="promedio")
    min_value: Optional[float] = Field(default=None, alias="minimo")
    max_value: Optional[float] = Field(default=None, alias="maximo")
    count: int = Field(..., ge=0, alias="total")

    @classmethod
    def from_summary(cls, summary: KindSummary) -> "ReadingStatisticsOut":
        return cls(
            sensor_id=summary.sensor_id,
            kind=summary.kind.value,
            last_reading_at=summary.last_timestamp,
            mean_value=summary.mean_value,
            min_value=summary.min_value,
            max_value=summary.max_value,
            count=summary.count,
        )


class SensorRequest(ApiModel):
    sensor_id: Optional[str] = Field(default=None, alias="sensorId")


class SensorIn(ApiModel):
    id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1, alias="tipo")
    zone_id: Optional[str] = Field(default=None, alias="zonaId")
    model: str = Field(default="", alias="modelo")
    status: SensorStatus = Field(default=SensorStatus.active, alias="estado")
    description: str = Field(default="", alias="descripcion")


class SensorOut(ApiModel):
    id: str
    type: str = Field(..., alias="tipo")
    zone_id: Optional[str] = Field(default=None, alias="zonaId")
    model: str = Field(default="", alias="modelo")
    status: SensorStatus = Field(..., alias="estado")
    installed_at: datetime = Field(..., alias="fechaInstalacion")
    simulator_active: bool = Field(default=False, alias="simuladorActivo")


class SimulatorStartResponse(ApiModel):
    success: bool = True
    message: str
    sensor_id: str = Field(..., alias="sensorId")
    interval_seconds: float = Field(..., alias="intervaloSegundos")
    timestamp: datetime


class SimulatorStopResponse(ApiModel):
    success: bool = True
    message: str
    sensor_id: str = Field(..., alias="sensorId")
    stopped_cleanly: bool = Field(..., alias="detenidoLimpiamente")
    timestamp: datetime


class SimulatorStatus(ApiModel):
    sensor_id: str = Field(..., alias="sensorId")
    active: bool


class StartOutcomeOut(ApiModel):
    sensor_id: str = Field(..., alias="sensorId")
    success: bool
    error: Optional[str] = None


class StartAllResponse(ApiModel):
    success: bool = True
    message: str
    results: List[StartOutcomeOut] = Field(default_factory=list, alias="resultados")
    total_sensors: int = Field(..., alias="totalSensores")
    succeeded: int = Field(..., alias="exitosos")


class StopAllResponse(ApiModel):
    success: bool = True
    message: str
    stopped: List[str] = Field(default_factory=list, alias="detenidos")
    timestamp: datetime


class SensorListResponse(ApiModel):
    sensors: List[SensorOut] = Field(default_factory=list, alias="sensores")
    total: int
    active: int = Field(..., alias="activos")


class ConnectionCheckResponse(ApiModel):
    success: bool = True
    sensors: int = Field(..., alias="sensores")
    readings: int = Field(..., alias="lecturas")
    timestamp: datetime


class BufferedReadingOut(ApiModel):
    buffered_at: int = Field(..., alias="encoladoEn")
    reading: ReadingOut = Field(..., alias="lectura")


class BufferStateResponse(ApiModel):
    pending: List[BufferedReadingOut] = Field(default_factory=list, alias="pendientes")
    rejected: List[BufferedReadingOut] = Field(default_factory=list, alias="rechazadas")
