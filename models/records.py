"""Domain documents shared across services."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ReadingKind(str, Enum):
    """Physical quantity measured by a reading."""

    temperature = "temperatura"
    humidity = "humedad"

    @property
    def unit(self) -> str:
        return _UNITS[self]


_UNITS = {
    ReadingKind.temperature: "°C",
    ReadingKind.humidity: "%",
}


class SensorStatus(str, Enum):
    active = "activo"
    inactive = "inactivo"


class ReadingStatus(str, Enum):
    """Dashboard classification of a reading value."""

    optimal = "optimo"
    moderate = "moderado"
    suboptimal = "suboptimo"
    critical = "critico"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Sensor(BaseModel):
    """A physical (or simulated) sensor installed in a zone."""

    id: str
    zone_id: Optional[str] = None
    type: str
    model: str = ""
    status: SensorStatus = SensorStatus.active
    installed_at: datetime = Field(default_factory=utcnow)
    description: str = ""

    @property
    def is_active(self) -> bool:
        return self.status == SensorStatus.active


class Reading(BaseModel):
    """A single persisted sensor measurement."""

    id: str
    sensor_id: str
    timestamp: datetime
    kind: ReadingKind
    value: float
    unit: str


class ReadingDraft(BaseModel):
    """A reading that has not been validated or stored yet.

    Every field is optional so that missing values surface as ingestion
    validation errors rather than schema errors.
    """

    id: Optional[str] = None
    sensor_id: Optional[str] = None
    kind: Optional[str] = None
    value: Optional[float] = None
    unit: Optional[str] = None
    timestamp: Optional[datetime] = None
