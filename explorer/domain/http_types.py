"""Shared HTTP type definitions to avoid circular imports."""

from dataclasses import dataclass, field
from typing import Iterable, Optional


@dataclass
class HttpRequest:
    """Represents a parsed HTTP request.

    ``headers`` is keyed by lowercase name for lookups; ``header_items`` keeps
    every header line in arrival order with its original spelling.
    """

    method: str
    path: str
    headers: dict[str, str]
    body: bytes
    target: str = ""
    header_items: list[tuple[str, str]] = field(default_factory=list)

    @property
    def uri(self) -> str:
        """Return the request target exactly as the client sent it."""
        return self.target or self.path


@dataclass
class HttpResponse:
    """Represents an HTTP response to be sent to a client."""

    status_line: str
    headers: dict[str, str]
    body: bytes
    close_connection: bool
    body_iter: Optional[Iterable[bytes]] = None
    use_chunked: bool = False
    omit_body: bool = False


def should_close(headers: dict[str, str]) -> bool:
    """Determine whether the connection should be closed after responding."""
    return headers.get("connection", "").lower() == "close"
