from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import List

from models.records import Reading, ReadingKind
from services.sweeper import BufferSweeper
from storage.offline_buffer import FlushReport, OfflineBuffer


def _reading(reading_id: str) -> Reading:
    return Reading(
        id=reading_id,
        sensor_id="sensor-a",
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        kind=ReadingKind.temperature,
        value=21.0,
        unit="°C",
    )


def test_sweep_once_on_empty_buffer_does_not_call_submit() -> None:
    calls: List[Reading] = []
    sweeper = BufferSweeper(OfflineBuffer(), calls.append)

    assert sweeper.sweep_once() == FlushReport()
    assert calls == []


def test_background_sweeper_drains_buffer() -> None:
    buffer = OfflineBuffer()
    for index in range(3):
        buffer.enqueue(_reading(f"r-{index}"))
    delivered: List[str] = []
    sweeper = BufferSweeper(buffer, lambda reading: delivered.append(reading.id), interval=0.02)

    sweeper.start()
    sweeper.start()
    try:
        deadline = time.monotonic() + 5
        while len(buffer) and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        sweeper.stop()

    assert delivered == ["r-0", "r-1", "r-2"]
    assert sweeper.running is False


def test_sweeper_survives_a_failing_pass() -> None:
    buffer = OfflineBuffer()
    buffer.enqueue(_reading("r-0"))
    attempts: List[str] = []

    def submit(reading: Reading) -> Reading:
        attempts.append(reading.id)
        if len(attempts) == 1:
            raise ConnectionError("offline")
        return reading

    sweeper = BufferSweeper(buffer, submit, interval=0.02)
    sweeper.start()
    try:
        deadline = time.monotonic() + 5
        while len(buffer) and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        sweeper.stop()

    assert len(attempts) >= 2
    assert len(buffer) == 0
