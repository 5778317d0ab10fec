"""Translation of process signals into a single exit notification."""

import logging
import queue
import signal
import threading
from dataclasses import dataclass
from typing import Optional

from explorer.domain.correlation_id import CorrelationLoggerAdapter

SIGNAL_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("explorer.lifecycle.signals"), {}
)

RELOAD_SIGNALS = (signal.SIGHUP,)
TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGQUIT)
HANDLED_SIGNALS = RELOAD_SIGNALS + TERMINATION_SIGNALS


@dataclass(frozen=True)
class ExitSignal:
    """Request to begin the termination sequence."""

    signum: Optional[int] = None


def signal_name(signum) -> str:
    try:
        return signal.Signals(signum).name
    except (TypeError, ValueError):
        return repr(signum)


class SignalListener:
    """Consumes signal values one at a time and emits at most one ExitSignal.

    Signal handlers only enqueue onto a ``SimpleQueue``, which is safe to call
    from inside a handler; the listener thread does the rest.
    """

    def __init__(
        self,
        exit_queue: "queue.Queue[ExitSignal]",
        signal_queue: Optional["queue.SimpleQueue"] = None,
    ) -> None:
        self.exit_queue = exit_queue
        self.signal_queue = signal_queue if signal_queue is not None else queue.SimpleQueue()
        self._previous_handlers: dict[int, object] = {}
        self._thread: Optional[threading.Thread] = None
        self._fired = False

    @property
    def fired(self) -> bool:
        """True once the ExitSignal has been emitted."""
        return self._fired

    def _enqueue(self, signum: int, _frame) -> None:
        self.signal_queue.put(signum)

    def install(self) -> None:
        """Route HUP, INT, TERM and QUIT into the listener queue.

        Must be called from the main thread.
        """
        for signum in HANDLED_SIGNALS:
            self._previous_handlers[signum] = signal.signal(signum, self._enqueue)

    def restore(self) -> None:
        """Reinstate the handlers that were active before ``install``."""
        for signum, handler in self._previous_handlers.items():
            # None means the handler was not installed from Python
            signal.signal(signum, signal.SIG_DFL if handler is None else handler)
        self._previous_handlers.clear()

    def start(self) -> threading.Thread:
        """Run ``listen`` on its own daemon thread."""
        self._thread = threading.Thread(
            target=self.listen, name="signal-listener", daemon=True
        )
        self._thread.start()
        return self._thread

    def listen(self) -> None:
        """Block on the signal queue until a termination request arrives."""
        while True:
            signum = self.signal_queue.get()
            if signum in RELOAD_SIGNALS:
                SIGNAL_LOGGER.info(
                    "received %s",
                    signal_name(signum),
                    extra={"event": "signal_reload", "signal": signal_name(signum)},
                )
                continue

            if signum not in TERMINATION_SIGNALS:
                SIGNAL_LOGGER.warning(
                    "Unrecognized signal treated as termination request",
                    extra={"event": "signal_unknown", "signal": signal_name(signum)},
                )
            else:
                SIGNAL_LOGGER.info(
                    "received %s",
                    signal_name(signum),
                    extra={"event": "signal_exit", "signal": signal_name(signum)},
                )
            self._fired = True
            self.exit_queue.put(ExitSignal(signum))
            return
