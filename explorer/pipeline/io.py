"""HTTP Input/Output operations."""

import logging
import socket
import urllib.parse
from typing import Callable, Optional, Tuple

from explorer.bootstrap.config import HEADER_DELIMITER, MAX_BODY_BYTES, MAX_HEADER_BYTES
from explorer.domain.correlation_id import (
    CorrelationLoggerAdapter,
    get_correlation_id,
    set_correlation_id,
)
from explorer.domain.http_types import HttpRequest, HttpResponse
from explorer.pipeline.validation import RequestEntityTooLarge, determine_content_length

IO_LOGGER = CorrelationLoggerAdapter(logging.getLogger("explorer.io"), {})

CRLF = b"\r\n"


def parse_header_items(lines: list[str]) -> list[tuple[str, str]]:
    """Split raw header lines into (name, value) pairs, skipping malformed ones."""
    items = []
    for line in lines:
        name, separator, value = line.partition(":")
        if not separator or not name or name != name.strip():
            continue
        items.append((name, value.strip()))
    return items


def parse_headers(lines: list[str]) -> dict[str, str]:
    """Convert raw header lines into a lowercase-keyed dictionary.

    Repeated headers are joined with ``", "``.
    """
    parsed: dict[str, str] = {}
    for name, value in parse_header_items(lines):
        key = name.lower()
        parsed[key] = f"{parsed[key]}, {value}" if key in parsed else value
    return parsed


def parse_request_line(request_line: str) -> Tuple[str, str, str]:
    """Return the method, raw target and decoded path from the request line."""
    try:
        method, target, version = request_line.split(" ", 2)
    except ValueError as exc:
        raise ValueError("Invalid request line") from exc
    if not method or not version.startswith("HTTP/"):
        raise ValueError("Invalid request line")

    parsed_target = urllib.parse.urlsplit(target)
    path = urllib.parse.unquote(parsed_target.path)
    return method, target, path


def _fill(client_socket: socket.socket, buffer: bytes) -> Optional[bytes]:
    chunk = client_socket.recv(4096)
    if not chunk:
        return None
    return buffer + chunk


def _read_chunked_body(
    client_socket: socket.socket, buffer: bytes, max_body_bytes: int
) -> Tuple[Optional[bytes], bytes]:
    """Decode a chunked request body; returns (None, b"") on disconnect."""
    body = b""
    while True:
        while CRLF not in buffer:
            buffer = _fill(client_socket, buffer)
            if buffer is None:
                return None, b""
        size_line, buffer = buffer.split(CRLF, 1)
        try:
            size = int(size_line.split(b";", 1)[0].strip(), 16)
        except ValueError as exc:
            raise ValueError("Invalid chunk size") from exc
        if size == 0:
            # skip trailers up to the terminating blank line
            while not buffer.startswith(CRLF) and HEADER_DELIMITER not in buffer:
                buffer = _fill(client_socket, buffer)
                if buffer is None:
                    return None, b""
            if buffer.startswith(CRLF):
                return body, buffer[len(CRLF) :]
            return body, buffer.split(HEADER_DELIMITER, 1)[1]
        if len(body) + size > max_body_bytes:
            raise RequestEntityTooLarge
        while len(buffer) < size + len(CRLF):
            buffer = _fill(client_socket, buffer)
            if buffer is None:
                return None, b""
        body += buffer[:size]
        buffer = buffer[size + len(CRLF) :]


def receive_request(
    client_socket: socket.socket,
    buffer: bytes,
    max_body_bytes: int = MAX_BODY_BYTES,
    on_data: Optional[Callable[[], object]] = None,
) -> Tuple[Optional[HttpRequest], bytes]:
    """Read bytes from the socket until a complete request is available.

    ``on_data`` runs once, as soon as the first byte of the request is
    buffered, so the caller can treat the connection as active from then on.
    """
    if buffer and on_data is not None:
        on_data()
        on_data = None
    while HEADER_DELIMITER not in buffer:
        if len(buffer) > MAX_HEADER_BYTES:
            raise RequestEntityTooLarge
        chunk = client_socket.recv(4096)
        if not chunk:
            return None, b""
        if on_data is not None:
            on_data()
            on_data = None
        buffer += chunk

    header_block, remainder = buffer.split(HEADER_DELIMITER, 1)
    header_lines = header_block.decode("latin-1").split("\r\n")
    method, target, path = parse_request_line(header_lines[0])
    header_items = parse_header_items(header_lines[1:])
    headers = parse_headers(header_lines[1:])

    incoming_correlation_id = headers.get("x-request-id")
    if incoming_correlation_id:
        set_correlation_id(incoming_correlation_id)

    if "chunked" in headers.get("transfer-encoding", "").lower():
        body, leftover = _read_chunked_body(client_socket, remainder, max_body_bytes)
        if body is None:
            return None, b""
    else:
        content_length = determine_content_length(headers, max_body_bytes)
        while len(remainder) < content_length:
            chunk = client_socket.recv(4096)
            if not chunk:
                return None, b""
            remainder += chunk
        body = remainder[:content_length]
        leftover = remainder[content_length:]

    IO_LOGGER.debug("Parsed request", extra={"method": method, "uri": target})
    request = HttpRequest(method, path, headers, body, target, header_items)
    return request, leftover


def send_response(client_socket: socket.socket, response: HttpResponse) -> None:
    """Serialize and send the HTTP response over the socket."""
    headers = dict(response.headers)

    correlation_id = get_correlation_id()
    if correlation_id:
        headers["X-Request-ID"] = correlation_id

    if response.use_chunked:
        headers["Transfer-Encoding"] = "chunked"
    else:
        headers["Content-Length"] = str(len(response.body))
    if response.close_connection:
        headers["Connection"] = "close"
    header_lines = [response.status_line]
    header_lines.extend(f"{name}: {value}" for name, value in headers.items())
    header_block = "\r\n".join(header_lines).encode("latin-1") + HEADER_DELIMITER
    if response.omit_body:
        client_socket.sendall(header_block)
        if response.body_iter is not None and hasattr(response.body_iter, "close"):
            response.body_iter.close()
    elif response.use_chunked and response.body_iter is not None:
        client_socket.sendall(header_block)
        for chunk in response.body_iter:
            if not chunk:
                continue
            size_line = f"{len(chunk):X}\r\n".encode()
            client_socket.sendall(size_line)
            client_socket.sendall(chunk)
            client_socket.sendall(CRLF)
        client_socket.sendall(b"0\r\n\r\n")
    else:
        client_socket.sendall(header_block + response.body)
    IO_LOGGER.debug(
        "Sent response",
        extra={"status": response.status_line, "use_chunked": response.use_chunked},
    )
