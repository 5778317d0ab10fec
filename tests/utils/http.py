"""Socket and process helpers shared by the explorer tests."""

from __future__ import annotations

import socket
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

HEADER_DELIMITER = b"\r\n\r\n"
CRLF = b"\r\n"


@dataclass(slots=True)
class RawHttpResponse:
    """Structured view of an HTTP response captured from a socket."""

    status_line: str
    headers: Dict[str, str]
    body: bytes

    @property
    def status_code(self) -> int:
        return int(self.status_line.split()[1])


def reserve_port(host: str = "127.0.0.1") -> int:
    """Return an available TCP port bound to the given host without listening."""

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


def wait_for_port(host: str, port: int, timeout: float = 5.0) -> None:
    """Block until a TCP connection to host:port succeeds or timeout elapses."""

    deadline = time.perf_counter() + timeout
    while time.perf_counter() < deadline:
        try:
            with socket.create_connection((host, port), timeout=0.1):
                return
        except OSError:
            time.sleep(0.05)
    raise RuntimeError(f"Server did not start on {host}:{port} within {timeout}s")


def port_refuses_connections(host: str, port: int, timeout: float = 5.0) -> bool:
    """Return True once connecting to host:port is refused."""

    deadline = time.perf_counter() + timeout
    while time.perf_counter() < deadline:
        try:
            with socket.create_connection((host, port), timeout=0.1):
                pass
        except ConnectionRefusedError:
            return True
        except OSError:
            pass
        time.sleep(0.05)
    return False


def _recv_until(sock: socket.socket, buffer: bytes, needed: int) -> bytes:
    while len(buffer) < needed:
        chunk = sock.recv(4096)
        if not chunk:
            raise RuntimeError("Connection closed before response completed")
        buffer += chunk
    return buffer


def read_http_response(sock: socket.socket) -> RawHttpResponse:
    """Read and parse one HTTP response, decoding chunked bodies."""

    buffer = b""
    while HEADER_DELIMITER not in buffer:
        chunk = sock.recv(4096)
        if not chunk:
            raise RuntimeError("Connection closed before headers were received")
        buffer += chunk
    header_block, remainder = buffer.split(HEADER_DELIMITER, 1)
    lines = header_block.decode("latin-1").split("\r\n")
    headers: Dict[str, str] = {}
    for line in lines[1:]:
        name, _, value = line.partition(": ")
        headers[name.lower()] = value

    if headers.get("transfer-encoding", "").lower() != "chunked":
        length = int(headers.get("content-length", "0"))
        body = _recv_until(sock, remainder, length)[:length]
        return RawHttpResponse(lines[0], headers, body)

    chunks: List[bytes] = []
    while True:
        while CRLF not in remainder:
            remainder = _recv_until(sock, remainder, len(remainder) + 1)
        size_line, remainder = remainder.split(CRLF, 1)
        size = int(size_line, 16)
        remainder = _recv_until(sock, remainder, size + len(CRLF))
        if size == 0:
            break
        chunks.append(remainder[:size])
        remainder = remainder[size + len(CRLF) :]
    return RawHttpResponse(lines[0], headers, b"".join(chunks))


def send_raw_request(host: str, port: int, request_bytes: bytes) -> RawHttpResponse:
    """Send raw bytes on a fresh connection and parse the reply."""

    with socket.create_connection((host, port), timeout=5) as sock:
        sock.sendall(request_bytes)
        return read_http_response(sock)


def wait_for_log_line(log_file: Path, needle: str, timeout: float = 5.0) -> bool:
    """Poll a log file until a line containing ``needle`` appears."""

    deadline = time.perf_counter() + timeout
    while time.perf_counter() < deadline:
        if log_file.exists() and needle in log_file.read_text():
            return True
        time.sleep(0.05)
    return False


def log_messages(log_file: Path) -> List[str]:
    """Return the message part of every text-format log line."""

    return [
        line.split(" :: ", 1)[1]
        for line in log_file.read_text().splitlines()
        if " :: " in line
    ]
