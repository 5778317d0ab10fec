"""Listener and connection state shared by the accept loop and the workers."""

import logging
import socket
import threading
import time
from dataclasses import dataclass
from typing import Optional

from explorer.domain.correlation_id import CorrelationLoggerAdapter

STATE_LOGGER = CorrelationLoggerAdapter(logging.getLogger("explorer.lifecycle.state"), {})


@dataclass
class _Connection:
    client_socket: socket.socket
    busy: bool = False


def _hang_up(client_socket: socket.socket) -> None:
    """Shut both directions so a worker blocked on the socket wakes up.

    The owning worker still closes the descriptor itself.
    """
    try:
        client_socket.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass


class ServerLifecycle:
    """Tracks the listener and every client connection for graceful shutdown."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._draining_event = threading.Event()
        self._listening = threading.Event()
        self._listener_closed = threading.Event()
        self._listener_settled = threading.Event()
        self._workers: dict[threading.Thread, _Connection] = {}
        self.bound_address: Optional[tuple] = None

    def should_stop(self) -> bool:
        """Check if the server should stop accepting new connections."""
        return self._stop_event.is_set()

    def is_draining(self) -> bool:
        """Check if the server is in draining mode."""
        return self._draining_event.is_set()

    def register_worker(
        self, thread: threading.Thread, client_socket: socket.socket
    ) -> None:
        """Register a worker thread and the connection it serves."""
        with self._lock:
            self._workers[thread] = _Connection(client_socket)

    def cleanup_worker(self, thread: threading.Thread) -> None:
        """Remove a worker thread from tracking."""
        with self._lock:
            self._workers.pop(thread, None)

    def active_worker_count(self) -> int:
        """Return the number of currently tracked worker threads."""
        with self._lock:
            return len(self._workers)

    def mark_busy(self, thread: threading.Thread) -> bool:
        """Flag the worker's connection as carrying a request.

        Returns False once draining has begun; idle connections have then
        already been hung up.
        """
        with self._lock:
            if self._draining_event.is_set():
                return False
            connection = self._workers.get(thread)
            if connection is not None:
                connection.busy = True
            return True

    def mark_idle(self, thread: threading.Thread) -> bool:
        """Flag the worker's connection as idle between requests.

        Returns False once draining has begun; the connection must close.
        """
        with self._lock:
            connection = self._workers.get(thread)
            if connection is not None:
                connection.busy = False
            return not self._draining_event.is_set()

    def listener_ready(self, address: tuple) -> None:
        """Record the address the accept loop is bound to."""
        self.bound_address = address
        self._listening.set()
        self._listener_settled.set()

    def wait_until_listening(self, timeout: float) -> bool:
        """Wait until the listener is bound; False on timeout or bind failure."""
        self._listener_settled.wait(timeout)
        return self._listening.is_set()

    def listener_closed(self) -> None:
        """Record that the accept loop released the listening socket."""
        self._listener_closed.set()
        self._listener_settled.set()

    def wait_for_listener(self, timeout: float) -> bool:
        """Wait until the accept loop has released the listening socket."""
        return self._listener_closed.wait(max(0.0, timeout))

    def begin_draining(self) -> int:
        """Stop accepting and hang up on idle connections.

        Returns the number of idle connections that were closed.
        """
        with self._lock:
            self._draining_event.set()
            self._stop_event.set()
            idle = [c.client_socket for c in self._workers.values() if not c.busy]
        for client_socket in idle:
            _hang_up(client_socket)
        STATE_LOGGER.info(
            "Beginning graceful shutdown",
            extra={"event": "draining_started", "closed_connections": len(idle)},
        )
        return len(idle)

    def wait_for_workers(self, timeout: float) -> bool:
        """Wait for all worker threads to complete within the timeout."""
        deadline = time.monotonic() + timeout
        while True:
            with self._lock:
                self._workers = {
                    w: c for w, c in self._workers.items() if w.is_alive()
                }
                active_workers = list(self._workers)
            if not active_workers:
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                STATE_LOGGER.warning(
                    "Shutdown timeout exceeded",
                    extra={"remaining_workers": len(active_workers)},
                )
                return False
            for worker in active_workers:
                worker.join(timeout=min(0.1, remaining))
                if time.monotonic() >= deadline:
                    break

    def force_close_workers(self) -> int:
        """Hang up on every remaining connection regardless of its state."""
        with self._lock:
            sockets = [c.client_socket for c in self._workers.values()]
        for client_socket in sockets:
            _hang_up(client_socket)
        return len(sockets)

    def shutdown(self, deadline_seconds: float) -> bool:
        """Drain the server, never blocking longer than ``deadline_seconds``.

        Returns True when every connection finished before the deadline.
        """
        deadline = time.monotonic() + deadline_seconds
        self.begin_draining()
        self.wait_for_listener(deadline - time.monotonic())
        clean = self.wait_for_workers(max(0.0, deadline - time.monotonic()))
        if not clean:
            closed = self.force_close_workers()
            STATE_LOGGER.warning(
                "Forcibly closed connections after shutdown deadline",
                extra={
                    "event": "connections_force_closed",
                    "closed_connections": closed,
                    "deadline_seconds": deadline_seconds,
                },
            )
        return clean
