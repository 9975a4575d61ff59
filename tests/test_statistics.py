"""Unit tests for the per-sensor, per-kind aggregation logic."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from models.records import Reading, ReadingKind
from services.statistics import StatisticsAggregator

_BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _reading(sensor_id: str, kind: ReadingKind, value: float, minutes: int = 0) -> Reading:
    """Helper to build deterministic sensor readings."""

    return Reading(
        id=f"{sensor_id}-{kind.value}-{minutes}-{value}",
        sensor_id=sensor_id,
        timestamp=_BASE + timedelta(minutes=minutes),
        kind=kind,
        value=value,
        unit=kind.unit,
    )


def test_aggregate_empty_iterable_returns_no_groups() -> None:
    assert StatisticsAggregator().aggregate([]) == []


def test_aggregate_groups_by_sensor_and_kind() -> None:
    readings = [
        _reading("sensor-b", ReadingKind.temperature, 20.0, minutes=1),
        _reading("sensor-a", ReadingKind.humidity, 50.0, minutes=2),
        _reading("sensor-a", ReadingKind.temperature, 10.0, minutes=3),
        _reading("sensor-a", ReadingKind.temperature, 30.0, minutes=5),
        _reading("sensor-a", ReadingKind.temperature, 21.0, minutes=4),
    ]

    summaries = StatisticsAggregator().aggregate(readings)

    assert [(item.sensor_id, item.kind) for item in summaries] == [
        ("sensor-a", ReadingKind.humidity),
        ("sensor-a", ReadingKind.temperature),
        ("sensor-b", ReadingKind.temperature),
    ]
    temperature = summaries[1]
    assert temperature.count == 3
    assert temperature.min_value == 10.0
    assert temperature.max_value == 30.0
    assert temperature.mean_value == 20.33
    assert temperature.last_timestamp == _BASE + timedelta(minutes=5)


def test_aggregate_handles_negative_values() -> None:
    readings = [
        _reading("sensor-a", ReadingKind.temperature, -5.5),
        _reading("sensor-a", ReadingKind.temperature, 5.5, minutes=1),
    ]

    (summary,) = StatisticsAggregator().aggregate(readings)

    assert summary.min_value == -5.5
    assert summary.max_value == 5.5
    assert summary.mean_value == 0.0
