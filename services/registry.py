"""Sensor lookups backed by the sensors collection."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from datastore.document_store import ASCENDING, DocumentCollection, build_default_sensors
from models.records import Sensor, SensorStatus


class SensorRegistry:

    def __init__(self, sensors: DocumentCollection[Sensor]) -> None:
        self.sensors = sensors

    def find_by_id(self, sensor_id: str) -> Optional[Sensor]:
        if not sensor_id:
            return None
        return self.sensors.get(sensor_id)

    def find_active(self) -> list[Sensor]:
        return self.sensors.find(
            {"status": SensorStatus.active},
            sort=[("installed_at", ASCENDING)],
        )

    def register(self, sensor: Sensor) -> Sensor:
        self.sensors.put(sensor)
        return sensor

    def count(self) -> int:
        return self.sensors.count()


@lru_cache
def build_default_registry() -> SensorRegistry:
    return SensorRegistry(sensors=build_default_sensors())
