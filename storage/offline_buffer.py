from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel

from errors import SensorNotFoundError, ValidationError
from models.records import Reading
from settings import get_settings

logger = logging.getLogger(__name__)


class BufferedReading(BaseModel):
    """A reading waiting to be resent, keyed by its local enqueue time (ns)."""

    buffered_at: int
    reading: Reading


@dataclass
class FlushReport:
    sent: int = 0
    failures: int = 0
    rejected: int = 0
    pending: int = 0
    aborted: bool = False
    skipped: bool = False


class OfflineBuffer:
    """Durable FIFO of readings that could not reach the ingestion sink."""

    def __init__(
        self,
        persistence_path: Optional[Path] = None,
        max_consecutive_failures: int = 3,
    ) -> None:
        self.persistence_path = persistence_path
        self.max_consecutive_failures = max_consecutive_failures
        self._pending: List[BufferedReading] = []
        self._rejected: List[BufferedReading] = []
        self._last_stamp = 0
        self._lock = Lock()
        self._flush_lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def enqueue(self, reading: Reading) -> BufferedReading:
        with self._lock:
            stamp = max(time.time_ns(), self._last_stamp + 1)
            self._last_stamp = stamp
            entry = BufferedReading(buffered_at=stamp, reading=reading.model_copy(deep=True))
            self._pending.append(entry)
            self._persist()
            pending = len(self._pending)
        logger.warning(
            "Reading buffered for later delivery",
            extra={"sensor_id": reading.sensor_id, "reading_id": reading.id, "pending": pending},
        )
        return entry.model_copy(deep=True)

    def pending(self) -> list[BufferedReading]:
        with self._lock:
            return [entry.model_copy(deep=True) for entry in self._pending]

    def rejected(self) -> list[BufferedReading]:
        with self._lock:
            return [entry.model_copy(deep=True) for entry in self._rejected]

    def clear_rejected(self) -> int:
        with self._lock:
            removed = len(self._rejected)
            self._rejected = []
            self._persist()
        return removed

    def flush(self, submit: Callable[[Reading], object]) -> FlushReport:
        """Resend queued readings in order through ``submit``.

        Entries are removed one at a time as they are confirmed. Entries the
        sink rejects as invalid are moved to the rejected list. The pass
        stops once more than ``max_consecutive_failures`` sends fail in a row.
        """
        if not self._flush_lock.acquire(blocking=False):
            return FlushReport(skipped=True, pending=len(self))

        try:
            report = FlushReport()
            consecutive = 0
            for entry in self.pending():
                try:
                    submit(entry.reading)
                except (ValidationError, SensorNotFoundError) as exc:
                    self._move_to_rejected(entry.buffered_at)
                    report.rejected += 1
                    logger.warning(
                        "Buffered reading rejected by sink",
                        extra={"reading_id": entry.reading.id, "reason": str(exc)},
                    )
                    continue
                except Exception as exc:  # noqa: BLE001 - any other failure is retried next pass
                    consecutive += 1
                    report.failures += 1
                    logger.warning(
                        "Resending buffered reading failed",
                        extra={"reading_id": entry.reading.id, "reason": str(exc), "failures": consecutive},
                    )
                    if consecutive > self.max_consecutive_failures:
                        report.aborted = True
                        break
                    continue

                consecutive = 0
                self._remove(entry.buffered_at)
                report.sent += 1

            report.pending = len(self)
            if report.sent or report.failures or report.rejected:
                logger.info(
                    "Offline buffer flush finished",
                    extra={"sent": report.sent, "pending": report.pending, "failures": report.failures},
                )
            return report
        finally:
            self._flush_lock.release()

    def _remove(self, buffered_at: int) -> Optional[BufferedReading]:
        with self._lock:
            for index, entry in enumerate(self._pending):
                if entry.buffered_at == buffered_at:
                    removed = self._pending.pop(index)
                    self._persist()
                    return removed
        return None

    def _move_to_rejected(self, buffered_at: int) -> None:
        with self._lock:
            for index, entry in enumerate(self._pending):
                if entry.buffered_at == buffered_at:
                    self._rejected.append(self._pending.pop(index))
                    self._persist()
                    return

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload: Dict[str, list] = {
            "pending": [entry.model_dump(mode="json") for entry in self._pending],
            "rejected": [entry.model_dump(mode="json") for entry in self._rejected],
        }
        tmp_path = self.persistence_path.with_suffix(self.persistence_path.suffix + ".tmp")
        try:
            tmp_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
            tmp_path.replace(self.persistence_path)
        except OSError:
            # Entries stay in memory and are written with the next successful persist.
            logger.exception("Offline buffer could not be written to %s", self.persistence_path)

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text(encoding="utf-8") or "{}"
        except OSError:
            logger.exception("Offline buffer could not be read from %s", self.persistence_path)
            self._detach_unreadable_file()
            return

        try:
            data = json.loads(raw)
            pending = [BufferedReading.model_validate(item) for item in data.get("pending", [])]
            rejected = [BufferedReading.model_validate(item) for item in data.get("rejected", [])]
        except (ValueError, AttributeError) as exc:
            logger.error(
                "Offline buffer file %s is unreadable",
                self.persistence_path,
                extra={"reason": str(exc)},
            )
            self._quarantine()
            return

        self._pending = pending
        self._rejected = rejected
        stamps = [entry.buffered_at for entry in self._pending + self._rejected]
        self._last_stamp = max(stamps, default=0)

    def _quarantine(self) -> None:
        """Move an unreadable buffer file aside so it is never overwritten."""
        path = self.persistence_path
        target = path.with_name(f"{path.name}.corrupt-{time.time_ns()}")
        try:
            path.replace(target)
        except OSError:
            logger.exception("Could not move unreadable offline buffer %s aside", path)
            self._detach_unreadable_file()
            return
        logger.warning("Unreadable offline buffer moved to %s", target)

    def _detach_unreadable_file(self) -> None:
        # Keep the file untouched for manual recovery; new entries live in memory only.
        logger.error(
            "Offline buffer is memory-only for this process; %s left untouched",
            self.persistence_path,
        )
        self.persistence_path = None


@lru_cache
def build_default_buffer(path: Optional[str] = None) -> OfflineBuffer:
    settings = get_settings()
    buffer_path = settings.offline_buffer_path if path is None else path
    persistence = Path(buffer_path) if buffer_path else None
    return OfflineBuffer(
        persistence_path=persistence,
        max_consecutive_failures=settings.buffer_max_consecutive_failures,
    )
