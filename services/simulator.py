"""Per-sensor simulation jobs that generate and ingest synthetic readings."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from concurrent.futures import wait
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Dict, List, Optional, Set

from errors import (
    SensorNotFoundError,
    SimulatorCapacityError,
    StorageUnavailableError,
    ValidationError,
)
from models.records import Reading, utcnow
from services.generator import OptimalBand, ReadingGenerator
from services.ingestion import ReadingSink, build_default_sink
from services.registry import SensorRegistry, build_default_registry
from settings import get_settings
from storage.offline_buffer import OfflineBuffer, build_default_buffer

logger = logging.getLogger(__name__)


@dataclass
class SimulationJob:
    """Runtime handle of one sensor's generation loop."""

    sensor_id: str
    cancel_event: threading.Event = field(default_factory=threading.Event)
    future: Optional[Future] = None
    predecessor: Optional[Future] = None
    started_at: datetime = field(default_factory=utcnow)
    ticks: int = 0


@dataclass(frozen=True)
class JobStatus:
    sensor_id: str
    active: bool


@dataclass(frozen=True)
class StartOutcome:
    sensor_id: str
    success: bool
    error: Optional[str] = None


@dataclass
class BatchReport:
    results: List[StartOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.results if outcome.success)


class SimulationController:
    """Keeps at most one running generation loop per sensor id.

    The job table is the only shared mutable state; every read-modify-write
    on it happens under ``_jobs_lock``. Loops run on a thread pool and are
    stopped cooperatively through their ``cancel_event``.
    """

    def __init__(
        self,
        registry: SensorRegistry,
        sink: ReadingSink,
        generator: ReadingGenerator,
        buffer: Optional[OfflineBuffer] = None,
        interval: float = 10.0,
        error_backoff: float = 2.0,
        stop_timeout: float = 5.0,
        max_jobs: int = 32,
    ) -> None:
        self.registry = registry
        self.sink = sink
        self.generator = generator
        self.buffer = buffer
        self.interval = interval
        self.error_backoff = error_backoff
        self.stop_timeout = stop_timeout
        self.max_jobs = max_jobs
        self.executor = ThreadPoolExecutor(max_workers=max_jobs, thread_name_prefix="simulator")
        self._jobs: Dict[str, SimulationJob] = {}
        # Submitted loops, pruned of finished ones on each start. Stopped or
        # replaced loops still winding down hold a worker too.
        self._live: Set[Future] = set()
        self._jobs_lock = threading.Lock()

    def start(self, sensor_id: str) -> SimulationJob:
        """Start (or restart) the loop for ``sensor_id``.

        Raises ``SimulatorCapacityError`` when a new sensor would need a
        worker while all ``max_jobs`` workers are held by running loops.
        Restarting a sensor that already has a job is always allowed.
        """
        sensor_id = (sensor_id or "").strip()
        if not sensor_id:
            raise ValidationError("sensorId is required.")
        sensor = self.registry.find_by_id(sensor_id)
        if sensor is None:
            raise SensorNotFoundError(sensor_id)
        if not sensor.is_active:
            raise ValidationError(f"Sensor {sensor_id!r} is inactive.")

        with self._jobs_lock:
            self._live = {future for future in self._live if not future.done()}
            if sensor_id not in self._jobs and len(self._live) >= self.max_jobs:
                raise SimulatorCapacityError(
                    f"All {self.max_jobs} simulation workers are busy; "
                    f"cannot start sensor {sensor_id!r}."
                )
            previous = self._jobs.pop(sensor_id, None)
            job = SimulationJob(sensor_id=sensor_id)
            if previous is not None:
                previous.cancel_event.set()
                job.predecessor = previous.future
                logger.info("Replacing running simulation", extra={"sensor_id": sensor_id})
            job.future = self.executor.submit(self._run, job)
            self._live.add(job.future)
            self._jobs[sensor_id] = job
            job_count = len(self._jobs)

        job.future.add_done_callback(lambda _f, finished=job: self._clear_job(finished))
        logger.info(
            "Simulation started",
            extra={"sensor_id": sensor_id, "interval_s": self.interval, "job_count": job_count},
        )
        return job

    def stop(self, sensor_id: str) -> bool:
        """Cancel the loop for ``sensor_id`` and wait a bounded time for it to exit.

        Stopping an idle sensor is a no-op. Returns ``False`` only when the
        loop did not finish within ``stop_timeout``.
        """
        with self._jobs_lock:
            job = self._jobs.pop(sensor_id, None)
        if job is None:
            logger.debug("No simulation running", extra={"sensor_id": sensor_id})
            return True

        job.cancel_event.set()
        finished = self._await_job(job, self.stop_timeout)
        if finished:
            logger.info("Simulation stopped", extra={"sensor_id": sensor_id})
        else:
            logger.warning("Timed out waiting for simulation to stop", extra={"sensor_id": sensor_id})
        return finished

    def stop_all(self) -> list[str]:
        """Cancel every running loop and clear the job table."""
        with self._jobs_lock:
            jobs = list(self._jobs.values())
            self._jobs.clear()

        for job in jobs:
            job.cancel_event.set()
        futures = [job.future for job in jobs if job.future is not None]
        if futures:
            _done, not_done = wait(futures, timeout=self.stop_timeout)
            if not_done:
                logger.warning(
                    "Some simulations did not stop in time",
                    extra={"job_count": len(not_done)},
                )
        logger.info("All simulations stopped", extra={"job_count": len(jobs)})
        return [job.sensor_id for job in jobs]

    def status(self, sensor_id: str) -> JobStatus:
        with self._jobs_lock:
            job = self._jobs.get(sensor_id)
            active = job is not None and not job.cancel_event.is_set()
        return JobStatus(sensor_id=sensor_id, active=active)

    def start_all_active_sensors(self) -> BatchReport:
        report = BatchReport()
        for sensor in self.registry.find_active():
            try:
                self.start(sensor.id)
            except Exception as exc:  # noqa: BLE001 - reported per sensor
                logger.exception("Could not start simulation", extra={"sensor_id": sensor.id})
                report.results.append(StartOutcome(sensor_id=sensor.id, success=False, error=str(exc)))
            else:
                report.results.append(StartOutcome(sensor_id=sensor.id, success=True))
        return report

    def run_once(self, sensor_id: str) -> Reading:
        """Generate and store a single reading without starting a loop."""
        sensor = self.registry.find_by_id(sensor_id)
        if sensor is None:
            raise SensorNotFoundError(sensor_id)
        return self.sink.submit(self.generator.generate(sensor))

    def active_sensor_ids(self) -> list[str]:
        with self._jobs_lock:
            return sorted(
                sensor_id for sensor_id, job in self._jobs.items() if not job.cancel_event.is_set()
            )

    def job_count(self) -> int:
        with self._jobs_lock:
            return len(self._jobs)

    def shutdown(self) -> None:
        """Stop every loop and release the executor during application shutdown."""
        self.stop_all()
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _clear_job(self, job: SimulationJob) -> None:
        with self._jobs_lock:
            if self._jobs.get(job.sensor_id) is job:
                del self._jobs[job.sensor_id]

    def _await_job(self, job: SimulationJob, timeout: float) -> bool:
        if job.future is None:
            return True
        try:
            job.future.result(timeout=timeout)
        except FutureTimeoutError:
            return False
        except CancelledError:
            return True
        return True

    def _run(self, job: SimulationJob) -> None:
        if job.predecessor is not None:
            wait([job.predecessor], timeout=self.stop_timeout)

        try:
            while not job.cancel_event.is_set():
                try:
                    self._tick(job)
                except Exception:  # noqa: BLE001 - a failed tick never ends the loop
                    logger.exception("Simulation tick failed", extra={"sensor_id": job.sensor_id})
                    if job.cancel_event.wait(self.error_backoff):
                        break
                    continue
                if job.cancel_event.wait(self.interval):
                    break
        finally:
            logger.info(
                "Simulation loop finished",
                extra={"sensor_id": job.sensor_id, "ticks": job.ticks},
            )

    def _tick(self, job: SimulationJob) -> None:
        sensor = self.registry.find_by_id(job.sensor_id)
        if sensor is None or not sensor.is_active:
            reason = "unregistered" if sensor is None else "inactive"
            logger.warning(
                "Sensor no longer simulated; ending loop",
                extra={"sensor_id": job.sensor_id, "reason": reason},
            )
            job.cancel_event.set()
            return
        if job.cancel_event.is_set():
            return
        reading = self.generator.generate(sensor)
        self._deliver(reading)
        job.ticks += 1

    def _deliver(self, reading: Reading) -> Optional[Reading]:
        try:
            return self.sink.submit(reading)
        except StorageUnavailableError as exc:
            if self.buffer is None:
                raise
            logger.warning(
                "Store unavailable; buffering reading",
                extra={"sensor_id": reading.sensor_id, "reason": str(exc)},
            )
            self.buffer.enqueue(reading)
            return None


@lru_cache
def build_default_controller() -> SimulationController:
    """Factory that wires the controller with the configured collaborators."""
    settings = get_settings()
    generator = ReadingGenerator(
        temperature_band=OptimalBand.from_tuple(settings.temperature_optimal),
        humidity_band=OptimalBand.from_tuple(settings.humidity_optimal),
    )
    return SimulationController(
        registry=build_default_registry(),
        sink=build_default_sink(),
        generator=generator,
        buffer=build_default_buffer(),
        interval=settings.simulator_interval_seconds,
        error_backoff=settings.simulator_error_backoff_seconds,
        stop_timeout=settings.simulator_stop_timeout_seconds,
        max_jobs=settings.simulator_max_jobs,
    )
