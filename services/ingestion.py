"""Validation and persistence boundary for sensor readings."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional, Tuple, Union
from uuid import uuid4

from datastore.document_store import DocumentCollection, build_default_readings
from errors import SensorNotFoundError, ValidationError
from models.records import Reading, ReadingDraft, ReadingKind, utcnow
from services.registry import SensorRegistry, build_default_registry
from settings import get_settings

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_HUMIDITY_RANGE = (0.0, 100.0)


def parse_kind(raw: Union[str, ReadingKind, None]) -> ReadingKind:
    if isinstance(raw, ReadingKind):
        return raw
    candidate = (raw or "").strip().lower()
    if not candidate:
        raise ValidationError("tipo is required.")
    for kind in ReadingKind:
        if candidate in {kind.value, kind.name}:
            return kind
    allowed = ", ".join(kind.value for kind in ReadingKind)
    raise ValidationError(f"Unknown reading type {raw!r}; expected one of: {allowed}.")


def _normalize_timestamp(value: Optional[datetime]) -> datetime:
    if value is None:
        return utcnow()
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    if value <= _EPOCH:
        return utcnow()
    return value


class ReadingSink:
    """Validates readings and appends them to the readings collection."""

    def __init__(
        self,
        readings: DocumentCollection[Reading],
        registry: SensorRegistry,
        temperature_range: Tuple[float, float] = (-50.0, 100.0),
    ) -> None:
        self.readings = readings
        self.registry = registry
        self.temperature_range = temperature_range

    def submit(
        self,
        reading: Union[Reading, ReadingDraft],
        *,
        require_active_sensor: bool = False,
    ) -> Reading:
        """Validate and persist one reading.

        Readings that already carry an id (generated, buffered or supplied
        by a remote client) are stored under that id; resubmitting an id that
        is already stored returns the stored document instead of inserting a
        duplicate.

        Raises ``ValidationError`` or ``SensorNotFoundError`` for caller
        errors and lets ``StorageUnavailableError`` propagate for transient
        store failures.
        """
        if isinstance(reading, Reading):
            reading_id = reading.id
            draft = ReadingDraft(
                sensor_id=reading.sensor_id,
                kind=reading.kind.value,
                value=reading.value,
                unit=reading.unit,
                timestamp=reading.timestamp,
            )
        else:
            reading_id = (reading.id or "").strip() or uuid4().hex
            draft = reading

        record = self.validate(draft, reading_id=reading_id, require_active_sensor=require_active_sensor)

        try:
            self.readings.insert(record)
        except ValueError:
            stored = self.readings.get(record.id)
            if stored is None:
                raise
            logger.debug(
                "Reading already stored; skipping duplicate insert",
                extra={"reading_id": record.id, "sensor_id": record.sensor_id},
            )
            return stored

        logger.info(
            "Stored reading",
            extra={
                "reading_id": record.id,
                "sensor_id": record.sensor_id,
                "kind": record.kind.value,
                "value": record.value,
            },
        )
        return record

    def validate(
        self,
        draft: ReadingDraft,
        reading_id: str,
        require_active_sensor: bool = False,
    ) -> Reading:
        sensor_id = (draft.sensor_id or "").strip()
        if not sensor_id:
            raise ValidationError("sensorId is required.")

        kind = parse_kind(draft.kind)

        if draft.value is None:
            raise ValidationError("valor is required.")
        value = float(draft.value)
        if not math.isfinite(value):
            raise ValidationError("valor must be a finite number.")
        self._check_bounds(kind, value)

        unit = (draft.unit or "").strip()
        if not unit:
            unit = kind.unit
        elif unit != kind.unit:
            raise ValidationError(
                f"Unit {unit!r} does not match reading type {kind.value!r} (expected {kind.unit!r})."
            )

        if require_active_sensor:
            sensor = self.registry.find_by_id(sensor_id)
            if sensor is None:
                raise SensorNotFoundError(sensor_id)
            if not sensor.is_active:
                raise ValidationError(f"Sensor {sensor_id!r} is inactive.")

        return Reading(
            id=reading_id,
            sensor_id=sensor_id,
            timestamp=_normalize_timestamp(draft.timestamp),
            kind=kind,
            value=value,
            unit=unit,
        )

    def _check_bounds(self, kind: ReadingKind, value: float) -> None:
        if kind == ReadingKind.temperature:
            low, high = self.temperature_range
            label = f"Temperature out of valid range ({low:g}°C to {high:g}°C)"
        else:
            low, high = _HUMIDITY_RANGE
            label = f"Humidity out of valid range ({low:g}% to {high:g}%)"
        if value < low or value > high:
            raise ValidationError(f"{label}: {value:g}.")


@lru_cache
def build_default_sink() -> ReadingSink:
    settings = get_settings()
    return ReadingSink(
        readings=build_default_readings(),
        registry=build_default_registry(),
        temperature_range=settings.temperature_valid_range,
    )
