from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List

import pytest
from typer.testing import CliRunner

from cli.app import app
from cli.client import reading_payload
from errors import StorageUnavailableError, ValidationError
from models.records import Reading, ReadingKind
from storage.offline_buffer import OfflineBuffer


class StubClient:
    def __init__(self, config, failures: int = 0) -> None:
        self.config = config
        self.failures = failures
        self.submitted: List[Reading] = []
        self.reject_with: Exception | None = None
        self.requests: List[tuple[str, Any]] = []
        self.closed = False

    def submit_reading(self, reading: Reading) -> Dict[str, Any]:
        if self.reject_with is not None:
            raise self.reject_with
        if self.failures > 0:
            self.failures -= 1
            raise StorageUnavailableError("connection refused")
        self.submitted.append(reading)
        payload = reading_payload(reading)
        payload["id"] = reading.id or f"stored-{len(self.submitted)}"
        return payload

    def latest(self, sensor_id: str, limit: int | None = None) -> List[Dict[str, Any]]:
        self.requests.append(("latest", (sensor_id, limit)))
        return [
            {"id": "r-1", "sensorId": sensor_id, "tipo": "temperatura", "valor": 21.5, "unidad": "°C", "fechaHora": "2024-01-01T00:00:00Z"},
            {"id": "r-2", "sensorId": sensor_id, "tipo": "temperatura", "valor": 33.0, "unidad": "°C", "fechaHora": "2024-01-01T00:01:00Z"},
        ]

    def statistics(self, sensor_id: str | None = None) -> List[Dict[str, Any]]:
        self.requests.append(("statistics", sensor_id))
        return [
            {"sensorId": "sensor-a", "tipo": "humedad", "total": 4, "promedio": 55.2, "minimo": 40.1, "maximo": 70.0, "ultimaLectura": "2024-01-01T00:00:00Z"}
        ]

    def start_simulation(self, sensor_id: str) -> Dict[str, Any]:
        self.requests.append(("start", sensor_id))
        return {"success": True, "message": f"Simulation started for sensor {sensor_id}", "intervaloSegundos": 10.0}

    def stop_simulation(self, sensor_id: str) -> Dict[str, Any]:
        self.requests.append(("stop", sensor_id))
        return {"success": True, "message": f"Simulation stopped for sensor {sensor_id}", "detenidoLimpiamente": True}

    def start_all(self) -> Dict[str, Any]:
        return {
            "resultados": [
                {"sensorId": "sensor-a", "success": True, "error": None},
                {"sensorId": "sensor-b", "success": False, "error": "boom"},
            ],
            "totalSensores": 2,
            "exitosos": 1,
        }

    def stop_all(self) -> Dict[str, Any]:
        return {"detenidos": ["sensor-a"]}

    def simulation_status(self, sensor_id: str) -> Dict[str, Any]:
        return {"sensorId": sensor_id, "active": True}

    def buffer_state(self) -> Dict[str, Any]:
        return {"pendientes": [], "rechazadas": []}

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


def _install_stub(monkeypatch, stub: StubClient) -> None:
    def factory(config):
        stub.config = config
        return stub

    monkeypatch.setattr("cli.app.ApiClient", factory)


def _reading(reading_id: str) -> Reading:
    return Reading(
        id=reading_id,
        sensor_id="sensor-a",
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        kind=ReadingKind.humidity,
        value=50.0,
        unit="%",
    )


def test_simulate_posts_one_reading_per_sensor_per_tick(monkeypatch, runner: CliRunner, tmp_path) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(
        app,
        ["simulate", "sensor-a", "sensor-b", "--type", "Temperatura", "--count", "2", "--interval", "0.01",
         "--buffer-path", str(tmp_path / "buffer.json")],
    )

    assert result.exit_code == 0
    assert [reading.sensor_id for reading in stub.submitted] == ["sensor-a", "sensor-b"] * 2
    assert all(reading.kind == ReadingKind.temperature for reading in stub.submitted)
    assert "Stopped after 2 tick(s); 0 reading(s) buffered." in result.stdout
    assert stub.closed is True


def test_simulate_buffers_during_outage_and_resends(monkeypatch, runner: CliRunner, tmp_path) -> None:
    stub = StubClient(config=None, failures=2)
    _install_stub(monkeypatch, stub)
    buffer_path = tmp_path / "buffer.json"

    result = runner.invoke(
        app,
        ["simulate", "sensor-a", "--count", "2", "--interval", "0.01", "--buffer-path", str(buffer_path)],
    )

    assert result.exit_code == 0
    assert "Resent 1 buffered reading(s)." in result.stdout
    assert len(stub.submitted) == 2
    assert len({reading.id for reading in stub.submitted}) == 2
    assert len(OfflineBuffer(persistence_path=buffer_path)) == 0


def test_simulate_leaves_readings_buffered_when_server_stays_down(monkeypatch, runner: CliRunner, tmp_path) -> None:
    stub = StubClient(config=None, failures=100)
    _install_stub(monkeypatch, stub)
    buffer_path = tmp_path / "buffer.json"

    result = runner.invoke(app, ["simulate", "sensor-a", "--count", "1", "--buffer-path", str(buffer_path)])

    assert result.exit_code == 0
    assert "1 reading(s) buffered" in result.stdout
    assert len(OfflineBuffer(persistence_path=buffer_path)) == 1


def test_submit_command(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["submit", "sensor-a", "humedad", "55"])

    assert result.exit_code == 0
    assert "Reading stored" in result.stdout
    assert stub.submitted[0].unit == "%"
    assert stub.submitted[0].value == 55.0


def test_submit_rejected_by_server_exits_with_error(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    stub.reject_with = ValidationError("Humidity out of valid range")
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["submit", "sensor-a", "humedad", "150"])

    assert result.exit_code == 1
    assert not stub.submitted


def test_submit_unknown_kind_is_a_usage_error(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["submit", "sensor-a", "presion", "1"])

    assert result.exit_code == 2
    assert not stub.submitted


def test_latest_and_stats_commands(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    latest = runner.invoke(app, ["latest", "sensor-a", "--limit", "2"])
    stats = runner.invoke(app, ["stats", "--sensor-id", "sensor-a"])

    assert latest.exit_code == 0
    assert "[optimo]" in latest.stdout
    assert "[critico]" in latest.stdout
    assert stats.exit_code == 0
    assert "promedio: 55.2" in stats.stdout
    assert stub.requests == [("latest", ("sensor-a", 2)), ("statistics", "sensor-a")]


def test_simulation_control_commands(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    assert "Simulation started for sensor sensor-a" in runner.invoke(app, ["start", "sensor-a"]).stdout
    assert "Simulation stopped for sensor sensor-a" in runner.invoke(app, ["stop", "sensor-a"]).stdout
    assert "active: True" in runner.invoke(app, ["status", "sensor-a"]).stdout
    assert "1/2 simulations started." in runner.invoke(app, ["start-all"]).stdout
    assert "Stopped 1 simulation(s)." in runner.invoke(app, ["stop-all"]).stdout


def test_flush_and_local_buffer_commands(monkeypatch, runner: CliRunner, tmp_path) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)
    buffer_path = tmp_path / "buffer.json"
    buffer = OfflineBuffer(persistence_path=buffer_path)
    buffer.enqueue(_reading("queued-1"))

    listing = runner.invoke(app, ["buffer", "--local", "--buffer-path", str(buffer_path)])
    assert listing.exit_code == 0
    assert "Pending (1)" in listing.stdout

    result = runner.invoke(app, ["flush", "--buffer-path", str(buffer_path)])

    assert result.exit_code == 0
    assert "sent: 1" in result.stdout
    assert [reading.id for reading in stub.submitted] == ["queued-1"]
    assert len(OfflineBuffer(persistence_path=buffer_path)) == 0


def test_flush_aborts_while_server_is_down(monkeypatch, runner: CliRunner, tmp_path) -> None:
    stub = StubClient(config=None, failures=100)
    _install_stub(monkeypatch, stub)
    buffer_path = tmp_path / "buffer.json"
    buffer = OfflineBuffer(persistence_path=buffer_path)
    for index in range(5):
        buffer.enqueue(_reading(f"queued-{index}"))

    result = runner.invoke(app, ["flush", "--buffer-path", str(buffer_path)])

    assert result.exit_code == 1
    assert "pending: 5" in result.stdout


def test_remote_buffer_command(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["buffer"])

    assert result.exit_code == 0
    assert "Pending (0)" in result.stdout
    assert "Rejected (0)" in result.stdout


def test_reading_payload_carries_the_reading_id() -> None:
    assert reading_payload(_reading("r-9"))["id"] == "r-9"
    assert "id" not in reading_payload(_reading(""))


def test_resent_reading_keeps_its_id(monkeypatch, runner: CliRunner, tmp_path) -> None:
    stub = StubClient(config=None, failures=1)
    _install_stub(monkeypatch, stub)
    buffer_path = tmp_path / "buffer.json"

    result = runner.invoke(
        app,
        ["simulate", "sensor-a", "--count", "1", "--buffer-path", str(buffer_path)],
    )

    assert result.exit_code == 0
    buffered = OfflineBuffer(persistence_path=buffer_path)
    assert len(buffered) == 0
    assert len(stub.submitted) == 1
    assert stub.submitted[0].id
    assert reading_payload(stub.submitted[0])["id"] == stub.submitted[0].id
