from __future__ import annotations

from pathlib import Path
from typing import Iterable

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from models.records import Reading
from services.generator import classify
from services.queries import ReadingQueries, build_default_queries
from services.simulator import SimulationController, build_default_controller


templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))


def get_queries() -> ReadingQueries:
    return build_default_queries()


def get_controller() -> SimulationController:
    return build_default_controller()


def _with_status(readings: Iterable[Reading]) -> list[dict]:
    return [
        {"reading": reading, "status": classify(reading.kind, reading.value).value}
        for reading in readings
    ]


router = APIRouter(include_in_schema=False)


@router.get("/ui", name="ui_index", response_class=HTMLResponse)
async def ui_index(
    request: Request,
    queries: ReadingQueries = Depends(get_queries),
    controller: SimulationController = Depends(get_controller),
) -> HTMLResponse:
    page = queries.list(page=1, limit=50)
    running = set(controller.active_sensor_ids())
    sensors = [
        {"sensor": sensor, "simulated": sensor.id in running}
        for sensor in controller.registry.find_active()
    ]
    return templates.TemplateResponse(
        request,
        "ui/index.html",
        {
            "readings": _with_status(page.items),
            "total_records": page.total_records,
            "sensors": sensors,
        },
    )


@router.get("/ui/sensores/{sensor_id}", name="ui_sensor_detail", response_class=HTMLResponse)
async def ui_sensor_detail(
    request: Request,
    sensor_id: str,
    queries: ReadingQueries = Depends(get_queries),
    controller: SimulationController = Depends(get_controller),
) -> HTMLResponse:
    sensor = controller.registry.find_by_id(sensor_id)
    if sensor is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Sensor {sensor_id!r} not found.",
        )

    job_status = controller.status(sensor_id)

    return templates.TemplateResponse(
        request,
        "ui/detail.html",
        {
            "sensor": sensor,
            "active": job_status.active,
            "readings": _with_status(queries.latest(sensor_id, 20)),
            "statistics": queries.statistics(sensor_id),
            "should_poll": job_status.active,
        },
    )
