"""Worker thread logic for handling individual client connections."""

import functools
import logging
import socket
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from explorer.bootstrap.config import MAX_BODY_BYTES
from explorer.domain.correlation_id import (
    CorrelationLoggerAdapter,
    clear_correlation_id,
    generate_correlation_id,
    set_correlation_id,
)
from explorer.domain.http_types import HttpRequest
from explorer.domain.response_builders import (
    bad_request_response,
    entity_too_large_response,
)
from explorer.lifecycle.state import ServerLifecycle
from explorer.pipeline.io import receive_request, send_response
from explorer.pipeline.validation import RequestEntityTooLarge, validate_request
from explorer.transport.context import WorkerContext

WORKER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("explorer.transport.worker"), {}
)


def _read_request_with_validation(
    client_socket: socket.socket,
    buffer: bytes,
    client_addr_str: str,
    max_body_bytes: int = MAX_BODY_BYTES,
    on_data: Optional[Callable[[], object]] = None,
) -> tuple[Optional[HttpRequest], bytes, bool]:
    """Read a request from the socket, answering parse failures directly."""

    try:
        request, buffer = receive_request(
            client_socket, buffer, max_body_bytes, on_data
        )
    except RequestEntityTooLarge:
        WORKER_LOGGER.warning(
            "Request body size exceeded limit",
            extra={
                "event": "body_size_exceeded",
                "client": client_addr_str,
                "limit": max_body_bytes,
            },
        )
        send_response(client_socket, entity_too_large_response())
        return None, b"", True
    except (ValueError, UnicodeDecodeError):
        WORKER_LOGGER.warning(
            "Malformed request received",
            extra={"event": "malformed_request", "client": client_addr_str},
        )
        send_response(client_socket, bad_request_response())
        return None, b"", True

    if request is None:
        if WORKER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            WORKER_LOGGER.debug(
                "Client disconnected",
                extra={"event": "client_disconnected", "client": client_addr_str},
            )
        return None, buffer, True
    return request, buffer, False


def _process_request(
    request: HttpRequest,
    context: WorkerContext,
    client_socket: socket.socket,
) -> bool:
    """Dispatch one request and send the reply; returns True to close."""
    response = validate_request(request)
    if response is None:
        response = context.router.dispatch(request)
    if context.lifecycle is not None and context.lifecycle.is_draining():
        response.close_connection = True
    send_response(client_socket, response)
    return response.close_connection


@dataclass
class _WorkerResources:
    thread: threading.Thread
    client_socket: socket.socket
    client_addr_str: str


def _prepare_worker(
    context: WorkerContext,
    client_socket: socket.socket,
    current_thread: threading.Thread,
) -> Optional[ServerLifecycle]:
    lifecycle = context.lifecycle
    if lifecycle is not None:
        lifecycle.register_worker(current_thread, client_socket)
    if context.config is not None:
        client_socket.settimeout(context.config.socket_timeout or None)
    return lifecycle


def _cleanup_worker(
    lifecycle: Optional[ServerLifecycle],
    resources: _WorkerResources,
) -> None:
    if lifecycle is not None:
        lifecycle.cleanup_worker(resources.thread)

    try:
        resources.client_socket.shutdown(socket.SHUT_WR)
    except OSError:
        pass
    resources.client_socket.close()

    if WORKER_LOGGER.logger.isEnabledFor(logging.DEBUG):
        WORKER_LOGGER.debug(
            "Socket closed",
            extra={"event": "socket_closed", "client": resources.client_addr_str},
        )
    clear_correlation_id()


def handle_client(
    client_socket: socket.socket,
    client_address: tuple,
    context: WorkerContext,
) -> None:
    """Process requests on a client socket until the connection is closed."""
    buffer = b""
    current_thread = threading.current_thread()
    lifecycle = _prepare_worker(context, client_socket, current_thread)
    client_addr_str = f"{client_address[0]}:{client_address[1]}"
    resources = _WorkerResources(current_thread, client_socket, client_addr_str)
    max_body_bytes = (
        context.config.max_body_bytes if context.config is not None else MAX_BODY_BYTES
    )
    # a connection is in flight from the first byte of a request
    on_data = (
        functools.partial(lifecycle.mark_busy, current_thread)
        if lifecycle is not None
        else None
    )

    try:
        while True:
            set_correlation_id(generate_correlation_id())

            if lifecycle is not None and lifecycle.is_draining():
                break

            request, buffer, should_terminate = _read_request_with_validation(
                client_socket, buffer, client_addr_str, max_body_bytes, on_data
            )
            if should_terminate:
                break

            should_terminate_connection = _process_request(
                request, context, client_socket
            )
            clear_correlation_id()

            if should_terminate_connection:
                break
            if lifecycle is not None and not lifecycle.mark_idle(current_thread):
                break
    except TimeoutError:
        if WORKER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            WORKER_LOGGER.debug(
                "Idle client connection timed out",
                extra={"event": "connection_idle_timeout", "client": client_addr_str},
            )
    except (ConnectionError, OSError) as error:
        WORKER_LOGGER.error(
            "Error handling client connection",
            extra={
                "event": "connection_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
            },
        )
    except Exception as error:  # pylint: disable=broad-except
        WORKER_LOGGER.error(
            "Unexpected error in worker",
            extra={
                "event": "worker_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
                "error": str(error),
            },
            exc_info=True,
        )
    finally:
        _cleanup_worker(lifecycle, resources)
