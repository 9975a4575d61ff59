"""HTTP routes controlling the per-sensor simulation jobs."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from app.schemas import (
    BufferedReadingOut,
    BufferStateResponse,
    ConnectionCheckResponse,
    ReadingOut,
    SensorListResponse,
    SensorOut,
    SensorRequest,
    SimulatorStartResponse,
    SimulatorStatus,
    SimulatorStopResponse,
    StartAllResponse,
    StartOutcomeOut,
    StopAllResponse,
)
from errors import (
    SensorNotFoundError,
    SimulatorCapacityError,
    StorageUnavailableError,
    ValidationError,
)
from models.records import utcnow
from services.simulator import SimulationController, build_default_controller
from storage.offline_buffer import BufferedReading

router = APIRouter(prefix="/simulador", tags=["simulador"])


def get_controller() -> SimulationController:
    return build_default_controller()


def _require_sensor_id(payload: SensorRequest) -> str:
    sensor_id = (payload.sensor_id or "").strip()
    if not sensor_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="sensorId is required.",
        )
    return sensor_id


def _buffered_out(entry: BufferedReading) -> BufferedReadingOut:
    return BufferedReadingOut(
        buffered_at=entry.buffered_at,
        reading=ReadingOut.from_reading(entry.reading),
    )


@router.post(
    "/iniciar",
    response_model=SimulatorStartResponse,
    summary="Start (or restart) the simulation loop for one sensor.",
)
def start_simulation(
    payload: SensorRequest,
    controller: SimulationController = Depends(get_controller),
) -> SimulatorStartResponse:
    sensor_id = _require_sensor_id(payload)
    try:
        controller.start(sensor_id)
    except SensorNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except SimulatorCapacityError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return SimulatorStartResponse(
        message=f"Simulation started for sensor {sensor_id}",
        sensor_id=sensor_id,
        interval_seconds=controller.interval,
        timestamp=utcnow(),
    )


@router.post(
    "/detener",
    response_model=SimulatorStopResponse,
    summary="Stop the simulation loop for one sensor. Idempotent.",
)
def stop_simulation(
    payload: SensorRequest,
    controller: SimulationController = Depends(get_controller),
) -> SimulatorStopResponse:
    sensor_id = _require_sensor_id(payload)
    stopped_cleanly = controller.stop(sensor_id)
    return SimulatorStopResponse(
        message=f"Simulation stopped for sensor {sensor_id}",
        sensor_id=sensor_id,
        stopped_cleanly=stopped_cleanly,
        timestamp=utcnow(),
    )


@router.post(
    "/iniciar-todos",
    response_model=StartAllResponse,
    summary="Start a simulation loop for every active sensor.",
)
def start_all_simulations(
    controller: SimulationController = Depends(get_controller),
) -> StartAllResponse:
    report = controller.start_all_active_sensors()
    if not report.total:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No active sensors found.",
        )
    return StartAllResponse(
        message="Start-all completed",
        results=[
            StartOutcomeOut(sensor_id=item.sensor_id, success=item.success, error=item.error)
            for item in report.results
        ],
        total_sensors=report.total,
        succeeded=report.succeeded,
    )


@router.post(
    "/detener-todos",
    response_model=StopAllResponse,
    summary="Stop every running simulation loop.",
)
def stop_all_simulations(
    controller: SimulationController = Depends(get_controller),
) -> StopAllResponse:
    stopped = controller.stop_all()
    return StopAllResponse(
        message="All simulations stopped",
        stopped=stopped,
        timestamp=utcnow(),
    )


@router.get(
    "/estado/{sensor_id}",
    response_model=SimulatorStatus,
    summary="Whether a simulation loop is running for the sensor.",
)
async def simulation_status(
    sensor_id: str,
    controller: SimulationController = Depends(get_controller),
) -> SimulatorStatus:
    job_status = controller.status(sensor_id)
    return SimulatorStatus(sensor_id=job_status.sensor_id, active=job_status.active)


@router.get(
    "/sensores",
    response_model=SensorListResponse,
    summary="Active sensors and whether each one is being simulated.",
)
async def list_simulated_sensors(
    controller: SimulationController = Depends(get_controller),
) -> SensorListResponse:
    running = set(controller.active_sensor_ids())
    sensors = [
        SensorOut(
            id=sensor.id,
            type=sensor.type,
            zone_id=sensor.zone_id,
            model=sensor.model,
            status=sensor.status,
            installed_at=sensor.installed_at,
            simulator_active=sensor.id in running,
        )
        for sensor in controller.registry.find_active()
    ]
    return SensorListResponse(
        sensors=sensors,
        total=len(sensors),
        active=sum(1 for sensor in sensors if sensor.simulator_active),
    )


@router.post(
    "/test-lectura/{sensor_id}",
    status_code=status.HTTP_201_CREATED,
    response_model=ReadingOut,
    summary="Generate and store a single reading for a sensor.",
)
def generate_test_reading(
    sensor_id: str,
    controller: SimulationController = Depends(get_controller),
) -> ReadingOut:
    try:
        reading = controller.run_once(sensor_id)
    except SensorNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except StorageUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return ReadingOut.from_reading(reading)


@router.get(
    "/test-conexion",
    response_model=ConnectionCheckResponse,
    summary="Count documents in the sensor and reading stores.",
)
async def check_connection(
    controller: SimulationController = Depends(get_controller),
) -> ConnectionCheckResponse:
    return ConnectionCheckResponse(
        sensors=controller.registry.count(),
        readings=controller.sink.readings.count(),
        timestamp=utcnow(),
    )


@router.get(
    "/buffer",
    response_model=BufferStateResponse,
    summary="Readings waiting in the offline buffer.",
)
async def buffer_state(
    controller: SimulationController = Depends(get_controller),
) -> BufferStateResponse:
    buffer = controller.buffer
    if buffer is None:
        return BufferStateResponse()
    return BufferStateResponse(
        pending=[_buffered_out(entry) for entry in buffer.pending()],
        rejected=[_buffered_out(entry) for entry in buffer.rejected()],
    )
