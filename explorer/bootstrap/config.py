"""Server configuration and CLI argument parsing."""

import argparse
import os
from dataclasses import dataclass
from typing import Optional

APP_NAME = "explorer"
APP_USAGE = "web server to introspect a running container"
APP_VERSION = "0.3.1"

TRUE_VALUES = {"1", "t", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in TRUE_VALUES


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value is not None else default


MAX_BODY_BYTES = 5 * 1024 * 1024
MAX_HEADER_BYTES = 64 * 1024
HEADER_DELIMITER = b"\r\n\r\n"

DEFAULT_PORT = 5002
DEFAULT_SHUTDOWN_DELAY_SECONDS = 5
DEFAULT_SOCKET_TIMEOUT = 60
DEFAULT_DIRECTORY = "/"

SHUTDOWN_DEADLINE_SECONDS = 5.0
HEARTBEAT_INTERVAL_SECONDS = 1.0

ECHO_ENDPOINT = "/_/echo"
ENV_ENDPOINT = "/_/env"
HEALTHCHECK_ENDPOINT = "/_/healthcheck"


@dataclass(frozen=True)
class ServerConfig:
    """Immutable process configuration shared by the lifecycle and router."""

    port: int = DEFAULT_PORT
    heartbeat: bool = False
    shutdown_delay_seconds: int = DEFAULT_SHUTDOWN_DELAY_SECONDS
    host: str = ""
    directory: str = DEFAULT_DIRECTORY
    socket_timeout: int = DEFAULT_SOCKET_TIMEOUT
    max_body_bytes: int = MAX_BODY_BYTES

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 65535:
            raise ValueError(f"port out of range: {self.port}")
        if self.shutdown_delay_seconds < 0:
            raise ValueError("shutdown delay must not be negative")
        if self.max_body_bytes < 1:
            raise ValueError("body limit must be positive")


def _port(value: str) -> int:
    try:
        port = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}") from exc
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range: {port}")
    return port


def _non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from exc
    if number < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {number}")
    return number


def _positive_int(value: str) -> int:
    number = _non_negative_int(value)
    if number == 0:
        raise argparse.ArgumentTypeError("must be positive")
    return number


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser; defaults are read from the environment."""
    parser = argparse.ArgumentParser(prog=APP_NAME, description=APP_USAGE)
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {APP_VERSION}"
    )
    parser.add_argument(
        "--port",
        type=_port,
        default=_env_str("PORT", str(DEFAULT_PORT)),
        help="port number (env PORT)",
    )
    parser.add_argument(
        "--heartbeat",
        action=argparse.BooleanOptionalAction,
        default=_env_bool("HEARTBEAT", False),
        help="log a heartbeat every second (env HEARTBEAT)",
    )
    parser.add_argument(
        "--delay",
        type=_non_negative_int,
        default=_env_str("DELAY", str(DEFAULT_SHUTDOWN_DELAY_SECONDS)),
        help="seconds to wait after shutdown completes before exiting (env DELAY)",
    )
    parser.add_argument(
        "--host",
        default=_env_str("EXPLORER_HOST", ""),
        help="address to bind; empty binds every interface",
    )
    parser.add_argument(
        "--directory",
        default=_env_str("EXPLORER_DIRECTORY", DEFAULT_DIRECTORY),
        help="filesystem root served for unmatched paths",
    )
    parser.add_argument(
        "--socket-timeout",
        type=_non_negative_int,
        default=_env_str("EXPLORER_SOCKET_TIMEOUT", str(DEFAULT_SOCKET_TIMEOUT)),
        help="Socket timeout in seconds for idle client connections (0 disables)",
    )
    parser.add_argument(
        "--max-body-bytes",
        type=_positive_int,
        default=_env_str("EXPLORER_MAX_BODY_BYTES", str(MAX_BODY_BYTES)),
        help="largest accepted request body; bigger requests get 413",
    )
    parser.add_argument(
        "--log-level",
        default=_env_str("EXPLORER_LOG_LEVEL", "INFO").upper(),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument(
        "--log-destination",
        default=_env_str("EXPLORER_LOG_DESTINATION", "stdout"),
        help="stdout or a file path",
    )
    parser.add_argument(
        "--log-format",
        default=_env_str("EXPLORER_LOG_FORMAT", "text").lower(),
        choices=["text", "json"],
        type=str.lower,
    )
    return parser


def parse_cli_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Return parsed CLI arguments for server configuration.

    String defaults pass through the same ``type`` converters as flags, so a
    malformed environment value is reported as a usage error.
    """
    return build_parser().parse_args(argv)


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Freeze parsed arguments into the configuration passed to the server."""
    return ServerConfig(
        port=args.port,
        heartbeat=args.heartbeat,
        shutdown_delay_seconds=args.delay,
        host=args.host,
        directory=args.directory,
        socket_timeout=args.socket_timeout,
        max_body_bytes=args.max_body_bytes,
    )
