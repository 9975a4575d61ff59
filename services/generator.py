"""Synthetic reading generation for simulated sensors."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional, Tuple
from uuid import uuid4

from models.records import Reading, ReadingKind, ReadingStatus, Sensor, utcnow

_TEMPERATURE_TOKENS = ("temperatura", "temperature")
_HUMIDITY_TOKENS = ("humedad", "humidity")


@dataclass(frozen=True)
class OptimalBand:
    """Configured ideal range used to bias generated values."""

    low: float
    high: float

    @classmethod
    def from_tuple(cls, bounds: Tuple[float, float]) -> "OptimalBand":
        return cls(low=bounds[0], high=bounds[1])


@dataclass(frozen=True)
class Sample:
    value: float
    category: str


def kind_for_sensor_type(sensor_type: str) -> Optional[ReadingKind]:
    """Map a free-text sensor type to a reading kind; ``None`` means mixed."""
    lowered = (sensor_type or "").lower()
    if any(token in lowered for token in _TEMPERATURE_TOKENS):
        return ReadingKind.temperature
    if any(token in lowered for token in _HUMIDITY_TOKENS):
        return ReadingKind.humidity
    return None


def classify(kind: ReadingKind, value: float) -> ReadingStatus:
    """Classify a value into the dashboard status bands."""
    if kind == ReadingKind.temperature:
        if 20 <= value <= 23:
            return ReadingStatus.optimal
        if 18 <= value <= 27:
            return ReadingStatus.moderate
        if 15 <= value <= 30:
            return ReadingStatus.suboptimal
        return ReadingStatus.critical
    if 40 <= value <= 70:
        return ReadingStatus.optimal
    if 30 <= value <= 80:
        return ReadingStatus.moderate
    if 20 <= value <= 90:
        return ReadingStatus.suboptimal
    return ReadingStatus.critical


class ReadingGenerator:
    """Probability-banded random sampling around an optimal range.

    The generator is a pure function of its configuration and the injected
    ``random.Random`` state, so seeding ``rng`` makes it deterministic.
    """

    def __init__(
        self,
        temperature_band: OptimalBand = OptimalBand(20.0, 23.0),
        humidity_band: OptimalBand = OptimalBand(40.0, 70.0),
        rng: Optional[random.Random] = None,
    ) -> None:
        self.temperature_band = temperature_band
        self.humidity_band = humidity_band
        self._rng = rng or random.Random()

    def draw(self, kind: ReadingKind) -> Sample:
        if kind == ReadingKind.temperature:
            return self._draw_temperature()
        if kind == ReadingKind.humidity:
            return self._draw_humidity()
        raise ValueError(f"Unsupported reading kind {kind!r}.")

    def generate_value(self, kind: ReadingKind) -> float:
        return self.draw(kind).value

    def generate(self, sensor: Sensor) -> Reading:
        """Build an unsaved reading for ``sensor``, alternating kinds for mixed sensors."""
        kind = kind_for_sensor_type(sensor.type)
        if kind is None:
            kind = ReadingKind.temperature if self._rng.randrange(2) == 0 else ReadingKind.humidity
        return Reading(
            id=uuid4().hex,
            sensor_id=sensor.id,
            timestamp=utcnow(),
            kind=kind,
            value=self.generate_value(kind),
            unit=kind.unit,
        )

    def _uniform(self, low: float, high: float) -> float:
        return low + self._rng.random() * (high - low)

    def _draw_temperature(self) -> Sample:
        band = self.temperature_band
        r = self._rng.random() * 100
        if r <= 70:
            value, category = self._uniform(band.low, band.high), "ideal"
        elif r <= 85:
            value, category = self._uniform(band.high, band.high + 4), "moderate-high"
        elif r <= 95:
            value, category = self._uniform(band.low - 5, band.low), "moderate-low"
        elif r <= 98:
            value, category = self._uniform(27, 35), "extreme-high"
        else:
            value, category = self._uniform(5, 15), "extreme-low"
        return Sample(value=round(value, 1), category=category)

    def _draw_humidity(self) -> Sample:
        band = self.humidity_band
        r = self._rng.random() * 100
        low_side = self._rng.random() < 0.5
        if r <= 60:
            value, category = self._uniform(band.low, band.high), "ideal"
        elif r <= 80:
            if low_side:
                value = self._uniform(band.low - 10, band.low)
            else:
                value = self._uniform(band.high, band.high + 10)
            category = "moderate"
        elif r <= 95:
            value = self._uniform(20, 30) if low_side else self._uniform(80, 90)
            category = "suboptimal"
        else:
            value = self._uniform(0, 20) if low_side else self._uniform(90, 100)
            category = "critical"
        return Sample(value=round(value, 1), category=category)
