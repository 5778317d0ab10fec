"""Top-level orchestration: listen, wait for an exit signal, drain, delay."""

import enum
import logging
import queue
import signal
import threading
import time
from typing import Callable, Optional

from explorer.bootstrap.config import (
    HEARTBEAT_INTERVAL_SECONDS,
    SHUTDOWN_DEADLINE_SECONDS,
    ServerConfig,
)
from explorer.domain.correlation_id import CorrelationLoggerAdapter
from explorer.lifecycle.heartbeat import Heartbeat
from explorer.lifecycle.signals import ExitSignal, SignalListener, signal_name
from explorer.lifecycle.state import ServerLifecycle
from explorer.pipeline.router import Router
from explorer.transport.accept_loop import run_server

MANAGER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("explorer.lifecycle.manager"), {}
)


class LifecycleState(enum.Enum):
    STARTING = "starting"
    LISTENING = "listening"
    SHUTTING_DOWN = "shutting_down"
    DRAINING = "draining"
    DELAYING = "delaying"
    TERMINATED = "terminated"


class LifecycleManager:
    """Owns the server for one process lifetime.

    ``run`` blocks until a termination signal arrives, drains the listener
    within ``shutdown_deadline`` seconds, then sleeps the configured delay in
    one second steps before returning.
    """

    def __init__(
        self,
        config: ServerConfig,
        router: Optional[Router] = None,
        install_signals: bool = True,
        sleep: Callable[[float], None] = time.sleep,
        heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS,
        shutdown_deadline: float = SHUTDOWN_DEADLINE_SECONDS,
    ) -> None:
        # pylint: disable=too-many-arguments
        self.config = config
        self.router = router
        self.install_signals = install_signals
        self.shutdown_deadline = shutdown_deadline
        self._sleep = sleep

        self.lifecycle = ServerLifecycle()
        self.exit_queue: "queue.Queue[ExitSignal]" = queue.Queue(maxsize=1)
        self.signals = SignalListener(self.exit_queue)
        self.heartbeat_cancelled = threading.Event()
        self.heartbeat: Optional[Heartbeat] = None
        if config.heartbeat:
            self.heartbeat = Heartbeat(self.heartbeat_cancelled, heartbeat_interval)

        self.state = LifecycleState.STARTING
        self.history = [LifecycleState.STARTING]

    def _transition(self, state: LifecycleState) -> None:
        self.state = state
        self.history.append(state)
        MANAGER_LOGGER.debug(
            "Lifecycle state changed",
            extra={"event": "lifecycle_state", "state": state.value},
        )

    def request_exit(self, signum: int = signal.SIGTERM) -> None:
        """Feed a signal value to the listener as if the OS had delivered it."""
        self.signals.signal_queue.put(signum)

    def start(self) -> None:
        """Start the signal listener, the heartbeat and the accept loop."""
        if self.install_signals:
            self.signals.install()
        self.signals.start()
        if self.heartbeat is not None:
            self.heartbeat.start()

        MANAGER_LOGGER.info(
            "Starting explorer",
            extra={
                "event": "server_starting",
                "host": self.config.host,
                "port": self.config.port,
                "directory": self.config.directory,
                "heartbeat": self.config.heartbeat,
                "shutdown_delay_seconds": self.config.shutdown_delay_seconds,
            },
        )
        # never joined: the loop ends on its own once draining begins
        threading.Thread(
            target=run_server,
            args=(self.config, self.lifecycle, self.router),
            name="accept-loop",
            daemon=True,
        ).start()
        self._transition(LifecycleState.LISTENING)

    def wait_for_exit(self) -> ExitSignal:
        """Block until the signal listener reports a termination request."""
        exit_signal = self.exit_queue.get()
        MANAGER_LOGGER.info(
            "Exit requested",
            extra={"event": "exit_requested", "signal": signal_name(exit_signal.signum)},
        )
        return exit_signal

    def shutdown(self) -> bool:
        """Cancel the heartbeat and drain the server within the deadline."""
        self._transition(LifecycleState.SHUTTING_DOWN)
        if self.heartbeat is not None:
            self.heartbeat.stop()
        else:
            self.heartbeat_cancelled.set()

        self._transition(LifecycleState.DRAINING)
        clean = self.lifecycle.shutdown(self.shutdown_deadline)
        MANAGER_LOGGER.info(
            "server graceful shutdown",
            extra={"event": "server_stopped", "clean": clean},
        )
        return clean

    def delay(self) -> None:
        """Sleep the configured delay one second at a time, logging each step."""
        seconds = self.config.shutdown_delay_seconds
        if seconds <= 0:
            return
        self._transition(LifecycleState.DELAYING)
        MANAGER_LOGGER.info(
            "delaying an additional %d seconds",
            seconds,
            extra={"event": "delay_started", "delay_seconds": seconds},
        )
        for tick in range(1, seconds + 1):
            self._sleep(1)
            MANAGER_LOGGER.info(
                "delay ... %d", tick, extra={"event": "delay_tick", "tick": tick}
            )

    def run(self) -> None:
        """Run the full lifecycle and return once the process may exit."""
        try:
            self.start()
            self.wait_for_exit()
            self.shutdown()
            self.delay()
        finally:
            if self.install_signals:
                self.signals.restore()
            self._transition(LifecycleState.TERMINATED)


def run(config: ServerConfig) -> None:
    """Run the server with ``config`` until a termination signal is handled."""
    LifecycleManager(config).run()
