from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer

from models.records import ReadingKind, ReadingStatus
from services.generator import classify
from storage.offline_buffer import FlushReport

_STATUS_COLORS = {
    ReadingStatus.optimal: typer.colors.GREEN,
    ReadingStatus.moderate: typer.colors.YELLOW,
    ReadingStatus.suboptimal: typer.colors.MAGENTA,
    ReadingStatus.critical: typer.colors.RED,
}


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _status_of(payload: Dict[str, Any]) -> ReadingStatus | None:
    try:
        kind = ReadingKind(payload.get("tipo"))
        value = float(payload.get("valor"))
    except (TypeError, ValueError):
        return None
    return classify(kind, value)


def render_reading(payload: Dict[str, Any]) -> None:
    line = (
        f"{payload.get('fechaHora')}  {payload.get('sensorId')}  "
        f"{payload.get('tipo')}={payload.get('valor')}{payload.get('unidad') or ''}"
    )
    status = _status_of(payload)
    if status is None:
        typer.echo(line)
        return
    typer.echo(f"{line}  ", nl=False)
    typer.secho(f"[{status.value}]", fg=_STATUS_COLORS[status])


def render_readings(payload: List[Dict[str, Any]], title: str = "Readings") -> None:
    echo_heading(title)
    if not payload:
        typer.echo("No readings found.")
        return
    for item in payload:
        render_reading(item)


def render_statistics(payload: List[Dict[str, Any]]) -> None:
    echo_heading("Statistics")
    if not payload:
        typer.echo("No readings found.")
        return
    for group in payload:
        typer.echo()
        typer.secho(f"{group.get('sensorId')} / {group.get('tipo')}", bold=True)
        echo_key_values(
            [
                ("total", group.get("total")),
                ("promedio", group.get("promedio")),
                ("minimo", group.get("minimo")),
                ("maximo", group.get("maximo")),
                ("ultimaLectura", group.get("ultimaLectura")),
            ]
        )


def render_flush_report(report: FlushReport) -> None:
    echo_heading("Offline buffer flush")
    if report.skipped:
        typer.echo("Another flush is in progress.")
    echo_key_values(
        [
            ("sent", report.sent),
            ("failures", report.failures),
            ("rejected", report.rejected),
            ("pending", report.pending),
        ]
    )
    if report.aborted:
        typer.secho("Flush aborted after repeated failures.", fg=typer.colors.YELLOW)


def render_buffer(payload: Dict[str, Any]) -> None:
    pending = payload.get("pendientes") or []
    rejected = payload.get("rechazadas") or []
    echo_heading(f"Pending ({len(pending)})")
    for entry in pending:
        render_reading(entry.get("lectura") or {})
    echo_heading(f"Rejected ({len(rejected)})")
    for entry in rejected:
        render_reading(entry.get("lectura") or {})
