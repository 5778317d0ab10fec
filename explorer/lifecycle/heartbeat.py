"""Periodic liveness log independent of request traffic."""

import logging
import threading
from typing import Optional

from explorer.bootstrap.config import HEARTBEAT_INTERVAL_SECONDS
from explorer.domain.correlation_id import CorrelationLoggerAdapter

HEARTBEAT_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("explorer.lifecycle.heartbeat"), {}
)


class Heartbeat:
    """Logs ``heartbeat`` once per interval until cancelled."""

    def __init__(
        self,
        cancelled: threading.Event,
        interval: float = HEARTBEAT_INTERVAL_SECONDS,
    ) -> None:
        if cancelled is None:
            raise ValueError("heartbeat requires a cancellation event")
        self.cancelled = cancelled
        self.interval = interval
        self.beats = 0
        self._thread: Optional[threading.Thread] = None

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self.run, name="heartbeat", daemon=True)
        self._thread.start()
        return self._thread

    def run(self) -> None:
        """Emit one marker per tick; return as soon as cancellation is seen."""
        while not self.cancelled.wait(self.interval):
            self.beats += 1
            HEARTBEAT_LOGGER.info(
                "heartbeat", extra={"event": "heartbeat", "tick": self.beats}
            )

    def stop(self) -> None:
        """Cancel and wait for the loop; nothing is emitted after this returns."""
        self.cancelled.set()
        if self._thread is not None:
            self._thread.join()
