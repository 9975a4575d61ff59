from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import typer

from cli.client import ApiClient, reading_payload
from cli.config import CLIConfig, load_config
from cli.render import (
    echo_key_values,
    render_buffer,
    render_flush_report,
    render_reading,
    render_readings,
    render_statistics,
)
from errors import SensorNotFoundError, StorageUnavailableError, ValidationError
from models.records import Reading, Sensor
from services.generator import ReadingGenerator
from services.ingestion import parse_kind
from storage.offline_buffer import OfflineBuffer


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Sensor simulator client for the farm telemetry service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


def _open_buffer(state: CLIState, buffer_path: Optional[Path]) -> OfflineBuffer:
    return OfflineBuffer(persistence_path=buffer_path or Path(state.config.offline_buffer_path))


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Telemetry API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds before an HTTP request is abandoned.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, request_timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("simulate")
def simulate_command(
    ctx: typer.Context,
    sensor_ids: List[str] = typer.Argument(..., help="Sensor ids to generate readings for."),
    sensor_type: str = typer.Option(
        "",
        "--type",
        help="Sensor type text, e.g. 'Temperatura DHT22'. Empty means mixed readings.",
    ),
    interval: Optional[float] = typer.Option(
        None,
        "--interval",
        help="Seconds between ticks (defaults to CLI_SIMULATION_INTERVAL or 10).",
    ),
    count: int = typer.Option(0, "--count", min=0, help="Number of ticks; 0 runs until interrupted."),
    buffer_path: Optional[Path] = typer.Option(None, "--buffer-path", help="Offline buffer file."),
) -> None:
    """Generate readings locally and post them, buffering while the server is unreachable."""
    state = _get_state(ctx)
    tick_interval = interval if interval is not None and interval > 0 else state.config.simulation_interval
    buffer = _open_buffer(state, buffer_path)
    generator = ReadingGenerator()
    sensors = [Sensor(id=sensor_id, type=sensor_type) for sensor_id in sensor_ids]

    typer.echo(
        f"Simulating {len(sensors)} sensor(s) against {state.config.base_url} "
        f"every {tick_interval}s. Press Ctrl+C to stop."
    )
    tick = 0
    try:
        while True:
            for sensor in sensors:
                _send(state.client, buffer, generator.generate(sensor))
            if len(buffer):
                report = buffer.flush(state.client.submit_reading)
                if report.sent:
                    typer.secho(f"Resent {report.sent} buffered reading(s).", fg=typer.colors.GREEN)

            tick += 1
            if count and tick >= count:
                break
            time.sleep(tick_interval)
    except KeyboardInterrupt:
        typer.echo()
    typer.echo(f"Stopped after {tick} tick(s); {len(buffer)} reading(s) buffered.")


def _send(client: ApiClient, buffer: OfflineBuffer, reading: Reading) -> None:
    try:
        payload = client.submit_reading(reading)
    except StorageUnavailableError as exc:
        buffer.enqueue(reading)
        typer.secho(f"Buffered {reading.sensor_id} reading: {exc}", fg=typer.colors.YELLOW, err=True)
    except (ValidationError, SensorNotFoundError) as exc:
        typer.secho(f"Rejected {reading.sensor_id} reading: {exc}", fg=typer.colors.RED, err=True)
    else:
        render_reading(payload)


@app.command("submit")
def submit_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor id."),
    kind: str = typer.Argument(..., help="temperatura or humedad."),
    value: float = typer.Argument(..., help="Measured value."),
    unit: Optional[str] = typer.Option(None, "--unit", help="Defaults to the unit of the kind."),
) -> None:
    """Post a single reading."""
    state = _get_state(ctx)
    try:
        reading_kind = parse_kind(kind)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc), param_hint="KIND") from exc

    reading = Reading(
        id="",
        sensor_id=sensor_id,
        timestamp=datetime.now().astimezone(),
        kind=reading_kind,
        value=value,
        unit=unit or reading_kind.unit,
    )
    try:
        payload = state.client.submit_reading(reading)
    except (ValidationError, SensorNotFoundError, StorageUnavailableError) as exc:
        typer.secho(f"Reading not stored: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    typer.secho(f"Reading stored. id={payload.get('id')}", fg=typer.colors.GREEN)
    render_reading(payload)


@app.command("latest")
def latest_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor id."),
    limit: Optional[int] = typer.Option(None, "--limit", help="Number of readings (1-100, default 10)."),
) -> None:
    """Show the latest readings of a sensor."""
    state = _get_state(ctx)
    render_readings(state.client.latest(sensor_id, limit), title=f"Latest readings for {sensor_id}")


@app.command("stats")
def stats_command(
    ctx: typer.Context,
    sensor_id: Optional[str] = typer.Option(None, "--sensor-id", help="Restrict to one sensor."),
) -> None:
    """Show per-sensor, per-kind aggregates."""
    state = _get_state(ctx)
    render_statistics(state.client.statistics(sensor_id))


@app.command("start")
def start_command(ctx: typer.Context, sensor_id: str = typer.Argument(..., help="Sensor id.")) -> None:
    """Start the server-side simulation loop for a sensor."""
    state = _get_state(ctx)
    payload = state.client.start_simulation(sensor_id)
    typer.secho(payload.get("message", "Simulation started"), fg=typer.colors.GREEN)
    echo_key_values([("intervaloSegundos", payload.get("intervaloSegundos"))])


@app.command("stop")
def stop_command(ctx: typer.Context, sensor_id: str = typer.Argument(..., help="Sensor id.")) -> None:
    """Stop the server-side simulation loop for a sensor."""
    state = _get_state(ctx)
    payload = state.client.stop_simulation(sensor_id)
    typer.secho(payload.get("message", "Simulation stopped"), fg=typer.colors.GREEN)
    if payload.get("detenidoLimpiamente") is False:
        typer.secho("The loop did not finish within the stop timeout.", fg=typer.colors.YELLOW)


@app.command("start-all")
def start_all_command(ctx: typer.Context) -> None:
    """Start simulation loops for every active sensor."""
    state = _get_state(ctx)
    payload = state.client.start_all()
    for outcome in payload.get("resultados") or []:
        if outcome.get("success"):
            typer.secho(f"  - {outcome.get('sensorId')}: started", fg=typer.colors.GREEN)
        else:
            typer.secho(f"  - {outcome.get('sensorId')}: {outcome.get('error')}", fg=typer.colors.RED)
    typer.echo(f"{payload.get('exitosos')}/{payload.get('totalSensores')} simulations started.")


@app.command("stop-all")
def stop_all_command(ctx: typer.Context) -> None:
    """Stop every server-side simulation loop."""
    state = _get_state(ctx)
    payload = state.client.stop_all()
    stopped = payload.get("detenidos") or []
    typer.echo(f"Stopped {len(stopped)} simulation(s).")
    for sensor_id in stopped:
        typer.echo(f"  - {sensor_id}")


@app.command("status")
def status_command(ctx: typer.Context, sensor_id: str = typer.Argument(..., help="Sensor id.")) -> None:
    """Show whether a simulation loop is running for a sensor."""
    state = _get_state(ctx)
    payload = state.client.simulation_status(sensor_id)
    echo_key_values([("sensorId", payload.get("sensorId")), ("active", payload.get("active"))])


@app.command("buffer")
def buffer_command(
    ctx: typer.Context,
    local: bool = typer.Option(False, "--local/--remote", help="Show the local CLI buffer instead of the server's."),
    buffer_path: Optional[Path] = typer.Option(None, "--buffer-path", help="Offline buffer file."),
) -> None:
    """Show readings waiting in an offline buffer."""
    state = _get_state(ctx)
    if not local:
        render_buffer(state.client.buffer_state())
        return

    buffer = _open_buffer(state, buffer_path)
    render_buffer(
        {
            "pendientes": [{"lectura": reading_payload(entry.reading)} for entry in buffer.pending()],
            "rechazadas": [{"lectura": reading_payload(entry.reading)} for entry in buffer.rejected()],
        }
    )


@app.command("flush")
def flush_command(
    ctx: typer.Context,
    buffer_path: Optional[Path] = typer.Option(None, "--buffer-path", help="Offline buffer file."),
) -> None:
    """Resend readings held in the local offline buffer."""
    state = _get_state(ctx)
    buffer = _open_buffer(state, buffer_path)
    report = buffer.flush(state.client.submit_reading)
    render_flush_report(report)
    if report.aborted:
        raise typer.Exit(code=1)
