"""Main connection acceptance loop."""

import logging
import socket
import threading
from typing import Optional

from explorer.bootstrap.config import ServerConfig
from explorer.bootstrap.socket_factory import create_server_socket
from explorer.domain.correlation_id import CorrelationLoggerAdapter
from explorer.lifecycle.state import ServerLifecycle
from explorer.pipeline.router import Router, build_router
from explorer.transport.context import WorkerContext
from explorer.transport.worker import handle_client

ACCEPT_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("explorer.transport.accept"), {}
)


def _spawn_worker(
    client_socket: socket.socket,
    client_address: tuple,
    handler_context: WorkerContext,
) -> None:
    """Hand a newly accepted connection to its own worker thread."""
    if ACCEPT_LOGGER.logger.isEnabledFor(logging.DEBUG):
        ACCEPT_LOGGER.debug(
            "Client connection accepted",
            extra={
                "event": "client_accepted",
                "client": f"{client_address[0]}:{client_address[1]}",
            },
        )
    thread = threading.Thread(
        target=handle_client,
        args=(client_socket, client_address, handler_context),
        daemon=True,
    )
    thread.start()


def run_server(
    config: ServerConfig,
    lifecycle: ServerLifecycle,
    router: Optional[Router] = None,
) -> None:
    """Bind the listening socket and accept clients until told to stop.

    A bind failure is logged and ends the loop; it is never raised.
    """
    try:
        server_socket = create_server_socket(config.host, config.port)
    except OSError as error:
        ACCEPT_LOGGER.error(
            "listen: %s",
            error,
            extra={
                "event": "listen_failed",
                "host": config.host,
                "port": config.port,
                "error_type": type(error).__name__,
            },
        )
        lifecycle.listener_closed()
        return

    bound_address = server_socket.getsockname()
    lifecycle.listener_ready(bound_address)
    ACCEPT_LOGGER.info(
        "Server listening for connections",
        extra={
            "event": "server_listening",
            "host": config.host,
            "port": bound_address[1],
            "directory": config.directory,
        },
    )

    handler_context = WorkerContext(
        router=router if router is not None else build_router(config.directory),
        lifecycle=lifecycle,
        config=config,
    )

    try:
        while not lifecycle.should_stop():
            try:
                client_socket, client_address = server_socket.accept()
            except socket.timeout:
                continue
            except OSError as error:
                if lifecycle.should_stop():
                    break
                ACCEPT_LOGGER.error(
                    "Socket accept failed",
                    extra={"event": "accept_error", "error_type": type(error).__name__},
                )
                continue

            if lifecycle.should_stop():
                client_socket.close()
                break

            _spawn_worker(client_socket, client_address, handler_context)
    finally:
        server_socket.close()
        lifecycle.listener_closed()
        ACCEPT_LOGGER.info(
            "Listener closed", extra={"event": "listener_closed"}
        )
