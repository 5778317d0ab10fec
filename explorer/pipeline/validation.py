"""Request validation utilities."""

from explorer.domain.http_types import HttpRequest
from explorer.domain.response_builders import bad_request_response


class RequestEntityTooLarge(Exception):
    """Raised when a request body exceeds configured limits."""


def determine_content_length(headers: dict[str, str], max_body_bytes: int) -> int:
    """Validate and return the declared Content-Length for the request."""
    header_value = headers.get("content-length")
    if header_value is None:
        return 0
    try:
        content_length = int(header_value)
    except ValueError as exc:
        raise ValueError("Invalid Content-Length") from exc
    if content_length < 0:
        raise ValueError("Negative Content-Length")
    if content_length > max_body_bytes:
        raise RequestEntityTooLarge
    return content_length


def enforce_safe_path(request: HttpRequest):
    """Reject request targets that are not absolute paths."""
    if not request.path.startswith("/") or "\x00" in request.path:
        return bad_request_response(request)
    return None


def validate_request(request: HttpRequest):
    """Return an error response when the request fails validation checks."""
    return enforce_safe_path(request)
