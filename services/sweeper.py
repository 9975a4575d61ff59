"""Background thread that periodically flushes the offline buffer."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from models.records import Reading
from storage.offline_buffer import FlushReport, OfflineBuffer

logger = logging.getLogger(__name__)


class BufferSweeper:

    def __init__(
        self,
        buffer: OfflineBuffer,
        submit: Callable[[Reading], object],
        interval: float = 5.0,
    ) -> None:
        self.buffer = buffer
        self.submit = submit
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="buffer-sweeper", daemon=True)
        self._thread.start()
        logger.info("Offline buffer sweeper started", extra={"interval_s": self.interval})

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def sweep_once(self) -> FlushReport:
        if not len(self.buffer):
            return FlushReport()
        return self.buffer.flush(self.submit)

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.sweep_once()
            except Exception:  # noqa: BLE001 - the sweeper must outlive a bad pass
                logger.exception("Offline buffer sweep failed")
