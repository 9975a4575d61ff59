"""Error taxonomy shared by the ingestion sink, the simulator and the API."""

from __future__ import annotations


class ValidationError(ValueError):
    """A reading or request is malformed or out of bounds. Never retried."""


class SensorNotFoundError(KeyError):
    """The referenced sensor is not present in the registry."""

    def __init__(self, sensor_id: str) -> None:
        super().__init__(sensor_id)
        self.sensor_id = sensor_id

    def __str__(self) -> str:
        return f"Sensor {self.sensor_id!r} not found."


class StorageUnavailableError(RuntimeError):
    """The document store could not persist or read. Callers may retry later."""


class SimulatorCapacityError(RuntimeError):
    """Every simulation worker is busy; no new sensor loop can be started."""
