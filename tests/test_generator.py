"""Unit tests for the synthetic reading generator."""

from __future__ import annotations

import random
from collections import Counter

import pytest

from models.records import ReadingKind, ReadingStatus, Sensor
from services.generator import OptimalBand, ReadingGenerator, classify, kind_for_sensor_type

SAMPLES = 10_000


def _generator(seed: int = 1234, **kwargs) -> ReadingGenerator:
    return ReadingGenerator(rng=random.Random(seed), **kwargs)


@pytest.mark.parametrize(
    "sensor_type, expected",
    [
        ("Temperatura DHT22", ReadingKind.temperature),
        ("temperature sensor PT100", ReadingKind.temperature),
        ("Humedad capacitiva", ReadingKind.humidity),
        ("HUMIDITY", ReadingKind.humidity),
        ("Multisensor", None),
        ("", None),
    ],
)
def test_kind_for_sensor_type(sensor_type: str, expected) -> None:
    assert kind_for_sensor_type(sensor_type) == expected


def test_temperature_category_frequencies_follow_bands() -> None:
    generator = _generator()

    counts = Counter(generator.draw(ReadingKind.temperature).category for _ in range(SAMPLES))

    assert counts["ideal"] / SAMPLES == pytest.approx(0.70, abs=0.03)
    assert counts["moderate-high"] / SAMPLES == pytest.approx(0.15, abs=0.02)
    assert counts["moderate-low"] / SAMPLES == pytest.approx(0.10, abs=0.02)
    assert counts["extreme-high"] / SAMPLES == pytest.approx(0.03, abs=0.01)
    assert counts["extreme-low"] / SAMPLES == pytest.approx(0.02, abs=0.01)


def test_humidity_category_frequencies_follow_bands() -> None:
    generator = _generator(seed=99)

    counts = Counter(generator.draw(ReadingKind.humidity).category for _ in range(SAMPLES))

    assert counts["ideal"] / SAMPLES == pytest.approx(0.60, abs=0.03)
    assert counts["moderate"] / SAMPLES == pytest.approx(0.20, abs=0.02)
    assert counts["suboptimal"] / SAMPLES == pytest.approx(0.15, abs=0.02)
    assert counts["critical"] / SAMPLES == pytest.approx(0.05, abs=0.01)


def test_samples_stay_inside_their_category_ranges() -> None:
    generator = _generator(seed=7)
    temperature_ranges = {
        "ideal": (20, 23),
        "moderate-high": (23, 27),
        "moderate-low": (15, 20),
        "extreme-high": (27, 35),
        "extreme-low": (5, 15),
    }

    for _ in range(2_000):
        sample = generator.draw(ReadingKind.temperature)
        low, high = temperature_ranges[sample.category]
        assert low <= sample.value <= high
        assert sample.value == round(sample.value, 1)

    for _ in range(2_000):
        sample = generator.draw(ReadingKind.humidity)
        assert 0 <= sample.value <= 100
        if sample.category == "ideal":
            assert 40 <= sample.value <= 70


def test_optimal_band_is_configurable() -> None:
    generator = _generator(temperature_band=OptimalBand.from_tuple((10.0, 12.0)))

    ideal = [
        sample.value
        for sample in (generator.draw(ReadingKind.temperature) for _ in range(500))
        if sample.category == "ideal"
    ]

    assert ideal
    assert all(10.0 <= value <= 12.0 for value in ideal)


def test_seeded_generators_are_deterministic() -> None:
    first = _generator(seed=42)
    second = _generator(seed=42)

    values_a = [first.generate_value(ReadingKind.humidity) for _ in range(50)]
    values_b = [second.generate_value(ReadingKind.humidity) for _ in range(50)]

    assert values_a == values_b


def test_generate_uses_sensor_kind_and_unit() -> None:
    generator = _generator()
    sensor = Sensor(id="sensor-t", type="Temperatura DHT22")

    reading = generator.generate(sensor)

    assert reading.sensor_id == "sensor-t"
    assert reading.kind == ReadingKind.temperature
    assert reading.unit == "°C"
    assert reading.id
    assert reading.timestamp.tzinfo is not None


def test_mixed_sensor_alternates_kinds_at_random() -> None:
    generator = _generator(seed=5)
    sensor = Sensor(id="sensor-m", type="Multisensor")

    kinds = Counter(generator.generate(sensor).kind for _ in range(400))

    assert kinds[ReadingKind.temperature] > 100
    assert kinds[ReadingKind.humidity] > 100


def test_generated_ids_are_unique() -> None:
    generator = _generator()
    sensor = Sensor(id="sensor-h", type="Humedad")

    ids = {generator.generate(sensor).id for _ in range(100)}

    assert len(ids) == 100


@pytest.mark.parametrize(
    "kind, value, expected",
    [
        (ReadingKind.temperature, 21.5, ReadingStatus.optimal),
        (ReadingKind.temperature, 25.0, ReadingStatus.moderate),
        (ReadingKind.temperature, 16.0, ReadingStatus.suboptimal),
        (ReadingKind.temperature, 33.0, ReadingStatus.critical),
        (ReadingKind.humidity, 55.0, ReadingStatus.optimal),
        (ReadingKind.humidity, 75.0, ReadingStatus.moderate),
        (ReadingKind.humidity, 25.0, ReadingStatus.suboptimal),
        (ReadingKind.humidity, 95.0, ReadingStatus.critical),
    ],
)
def test_classify_bands(kind: ReadingKind, value: float, expected: ReadingStatus) -> None:
    assert classify(kind, value) == expected
