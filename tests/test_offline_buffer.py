"""Tests for the durable offline retry buffer."""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from typing import List

import pytest

from datastore.document_store import DocumentCollection
from errors import SensorNotFoundError, StorageUnavailableError, ValidationError
from models.records import Reading, ReadingKind, Sensor
from services.ingestion import ReadingSink
from services.registry import SensorRegistry
from storage.offline_buffer import OfflineBuffer


def _reading(reading_id: str, value: float = 22.0) -> Reading:
    return Reading(
        id=reading_id,
        sensor_id="sensor-1",
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        kind=ReadingKind.temperature,
        value=value,
        unit="°C",
    )


class FlakySubmit:
    """Callable sink that fails while ``down`` is set and records deliveries."""

    def __init__(self) -> None:
        self.down = True
        self.calls = 0
        self.delivered: List[str] = []

    def __call__(self, reading: Reading) -> Reading:
        self.calls += 1
        if self.down:
            raise StorageUnavailableError("store offline")
        self.delivered.append(reading.id)
        return reading


def test_enqueue_assigns_unique_increasing_stamps() -> None:
    buffer = OfflineBuffer()

    entries = [buffer.enqueue(_reading(f"r-{index}")) for index in range(50)]

    stamps = [entry.buffered_at for entry in entries]
    assert stamps == sorted(stamps)
    assert len(set(stamps)) == 50
    assert len(buffer) == 50


def test_outage_then_recovery_persists_each_reading_exactly_once() -> None:
    readings = DocumentCollection(name="lecturas", model=Reading)
    registry = SensorRegistry(sensors=DocumentCollection(name="sensores", model=Sensor))
    sink = ReadingSink(readings=readings, registry=registry)
    buffer = OfflineBuffer()
    outage = FlakySubmit()

    for index in range(3):
        reading = _reading(f"r-{index}")
        try:
            outage(reading)
        except StorageUnavailableError:
            buffer.enqueue(reading)

    assert len(buffer) == 3

    report = buffer.flush(sink.submit)
    again = buffer.flush(sink.submit)

    assert report.sent == 3
    assert report.pending == 0
    assert again.sent == 0
    assert readings.count() == 3
    assert sorted(item.id for item in readings.scan()) == ["r-0", "r-1", "r-2"]


def test_flush_keeps_order_and_removes_only_confirmed_entries() -> None:
    buffer = OfflineBuffer(max_consecutive_failures=3)
    for index in range(3):
        buffer.enqueue(_reading(f"r-{index}"))
    submit = FlakySubmit()
    submit.down = False

    report = buffer.flush(submit)

    assert submit.delivered == ["r-0", "r-1", "r-2"]
    assert report.sent == 3
    assert len(buffer) == 0


def test_flush_aborts_after_more_than_max_consecutive_failures() -> None:
    buffer = OfflineBuffer(max_consecutive_failures=3)
    for index in range(6):
        buffer.enqueue(_reading(f"r-{index}"))
    submit = FlakySubmit()

    report = buffer.flush(submit)

    assert report.aborted is True
    assert report.failures == 4
    assert submit.calls == 4
    assert report.pending == 6
    assert [entry.reading.id for entry in buffer.pending()] == [f"r-{index}" for index in range(6)]


def test_invalid_entries_move_to_rejected_list() -> None:
    buffer = OfflineBuffer()
    buffer.enqueue(_reading("bad"))
    buffer.enqueue(_reading("ghost"))
    buffer.enqueue(_reading("good"))

    def submit(reading: Reading) -> Reading:
        if reading.id == "bad":
            raise ValidationError("out of range")
        if reading.id == "ghost":
            raise SensorNotFoundError(reading.sensor_id)
        return reading

    report = buffer.flush(submit)

    assert report.sent == 1
    assert report.rejected == 2
    assert len(buffer) == 0
    assert [entry.reading.id for entry in buffer.rejected()] == ["bad", "ghost"]
    assert buffer.clear_rejected() == 2
    assert buffer.rejected() == []


def test_overlapping_flush_is_skipped() -> None:
    buffer = OfflineBuffer()
    buffer.enqueue(_reading("r-0"))
    buffer.enqueue(_reading("r-1"))
    entered = threading.Event()
    release = threading.Event()
    nested_reports = []

    def slow_submit(reading: Reading) -> Reading:
        if not entered.is_set():
            entered.set()
            release.wait(timeout=5)
        return reading

    worker = threading.Thread(target=lambda: buffer.flush(slow_submit))
    worker.start()
    assert entered.wait(timeout=5)
    nested_reports.append(buffer.flush(slow_submit))
    release.set()
    worker.join(timeout=5)

    assert nested_reports[0].skipped is True
    assert nested_reports[0].sent == 0
    assert len(buffer) == 0


def test_buffer_survives_restart(tmp_path) -> None:
    path = tmp_path / "buffer.json"
    buffer = OfflineBuffer(persistence_path=path)
    first = buffer.enqueue(_reading("r-0"))
    buffer.enqueue(_reading("r-1"))

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert [item["reading"]["id"] for item in payload["pending"]] == ["r-0", "r-1"]

    reloaded = OfflineBuffer(persistence_path=path)
    assert [entry.reading.id for entry in reloaded.pending()] == ["r-0", "r-1"]
    assert reloaded.pending()[0].buffered_at == first.buffered_at

    later = reloaded.enqueue(_reading("r-2"))
    assert later.buffered_at > first.buffered_at


def test_unwritable_buffer_file_keeps_entries_in_memory(tmp_path) -> None:
    blocker = tmp_path / "blocked"
    blocker.write_text("not a directory")
    buffer = OfflineBuffer()
    buffer.persistence_path = blocker / "buffer.json"

    buffer.enqueue(_reading("r-0"))

    assert len(buffer) == 1


@pytest.mark.parametrize("failures", [1, 3])
def test_failures_below_threshold_do_not_abort(failures: int) -> None:
    buffer = OfflineBuffer(max_consecutive_failures=3)
    for index in range(failures):
        buffer.enqueue(_reading(f"r-{index}"))

    report = buffer.flush(FlakySubmit())

    assert report.aborted is False
    assert report.failures == failures
    assert len(buffer) == failures


def test_buffer_file_is_replaced_atomically(tmp_path) -> None:
    path = tmp_path / "buffer.json"
    buffer = OfflineBuffer(persistence_path=path)

    buffer.enqueue(_reading("r-0"))
    buffer.enqueue(_reading("r-1"))

    assert sorted(item.name for item in tmp_path.iterdir()) == ["buffer.json"]
    assert len(json.loads(path.read_text(encoding="utf-8"))["pending"]) == 2


def test_truncated_buffer_file_is_moved_aside_not_overwritten(tmp_path) -> None:
    path = tmp_path / "buffer.json"
    buffer = OfflineBuffer(persistence_path=path)
    buffer.enqueue(_reading("r-0"))
    damaged = path.read_text(encoding="utf-8")[:-5]
    path.write_text(damaged, encoding="utf-8")

    reloaded = OfflineBuffer(persistence_path=path)

    assert len(reloaded) == 0
    assert not path.exists()
    moved = list(tmp_path.glob("buffer.json.corrupt-*"))
    assert len(moved) == 1
    assert moved[0].read_text(encoding="utf-8") == damaged

    reloaded.enqueue(_reading("r-1"))

    assert moved[0].read_text(encoding="utf-8") == damaged
    assert [entry.reading.id for entry in OfflineBuffer(persistence_path=path).pending()] == ["r-1"]


def test_buffer_file_with_unexpected_shape_is_moved_aside(tmp_path) -> None:
    path = tmp_path / "buffer.json"
    path.write_text(json.dumps({"pending": [{"reading": "not a reading"}]}), encoding="utf-8")

    buffer = OfflineBuffer(persistence_path=path)

    assert len(buffer) == 0
    assert len(list(tmp_path.glob("buffer.json.corrupt-*"))) == 1
