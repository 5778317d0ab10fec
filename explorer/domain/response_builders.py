"""Pure HTTP response builders."""

import gzip
from typing import Optional, Tuple

from explorer.domain.http_types import HttpRequest, HttpResponse, should_close

PLAIN_TEXT = "text/plain; charset=utf-8"


def accepts_gzip(headers: dict[str, str]) -> bool:
    """Return True when the Accept-Encoding header includes gzip with q>0."""
    encodings = headers.get("accept-encoding", "")
    for token in encodings.split(","):
        value = token.strip()
        if not value:
            continue
        algorithm, _, params = value.partition(";")
        if algorithm.strip().lower() != "gzip":
            continue
        quality = 1.0
        if params:
            for param in params.split(";"):
                key, _, raw_value = param.strip().partition("=")
                if key.lower() == "q" and raw_value:
                    try:
                        quality = float(raw_value)
                    except ValueError:
                        quality = 0.0
                    break
        if quality > 0:
            return True
    return False


def compress_if_gzip_supported(
    payload: bytes, headers: dict[str, str], compression_logger
) -> Tuple[bytes, dict[str, str]]:
    """Compress the payload when the request advertises gzip support."""
    if not accepts_gzip(headers):
        return payload, {}
    compression_logger.debug("Compressed payload", extra={"size": len(payload)})
    return gzip.compress(payload), {"Content-Encoding": "gzip", "Vary": "Accept-Encoding"}


def html_response(
    document: bytes, request: HttpRequest, compression_logger
) -> HttpResponse:
    """Return a 200 text/html response, compressing when appropriate."""
    payload, encoding_headers = compress_if_gzip_supported(
        document, request.headers, compression_logger
    )
    headers = {"Content-Type": "text/html", **encoding_headers}
    return HttpResponse(
        "HTTP/1.1 200 OK", headers, payload, should_close(request.headers)
    )


def json_response(payload: bytes, request: HttpRequest) -> HttpResponse:
    """Return a 200 application/json response with a pre-encoded payload."""
    return HttpResponse(
        "HTTP/1.1 200 OK",
        {"Content-Type": "application/json"},
        payload,
        should_close(request.headers),
    )


def _error_response(
    status_line: str, message: str, request: Optional[HttpRequest]
) -> HttpResponse:
    headers = {"Content-Type": PLAIN_TEXT, "X-Content-Type-Options": "nosniff"}
    return HttpResponse(
        status_line,
        headers,
        f"{message}\n".encode(),
        should_close(request.headers) if request is not None else True,
    )


def not_found_response(request: HttpRequest) -> HttpResponse:
    """Return a 404 response reusing the connection preference."""
    return _error_response("HTTP/1.1 404 Not Found", "404 page not found", request)


def forbidden_response(request: Optional[HttpRequest] = None) -> HttpResponse:
    """Produce a 403 response honoring the caller's connection preference."""
    return _error_response("HTTP/1.1 403 Forbidden", "403 Forbidden", request)


def bad_request_response(request: Optional[HttpRequest] = None) -> HttpResponse:
    """Produce a 400 response; without a parsed request the connection closes."""
    return _error_response("HTTP/1.1 400 Bad Request", "400 Bad Request", request)


def entity_too_large_response() -> HttpResponse:
    """Produce a 413 response that always closes the connection."""
    return _error_response(
        "HTTP/1.1 413 Payload Too Large", "413 Payload Too Large", None
    )


def redirect_response(location: str, request: HttpRequest) -> HttpResponse:
    """Produce a 301 response pointing the client at ``location``."""
    return HttpResponse(
        "HTTP/1.1 301 Moved Permanently",
        {"Location": location},
        b"",
        should_close(request.headers),
    )
