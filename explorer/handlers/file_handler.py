"""Filesystem browsing handler."""

import html
import logging
import mimetypes
import os
import urllib.parse
from pathlib import Path
from typing import BinaryIO, Iterator

from explorer.domain.correlation_id import CorrelationLoggerAdapter
from explorer.domain.http_types import HttpRequest, HttpResponse, should_close
from explorer.domain.response_builders import (
    forbidden_response,
    html_response,
    not_found_response,
    redirect_response,
)
from explorer.domain.sandbox import ForbiddenPath, resolve_sandbox_path

FILE_LOGGER = CorrelationLoggerAdapter(logging.getLogger("explorer.handlers.file"), {})

INDEX_DOCUMENT = "index.html"


def stream_file(file_handle: BinaryIO, chunk_size: int = 65536) -> Iterator[bytes]:
    """Yield file contents in fixed-size chunks, closing the handle at the end."""
    with file_handle:
        while True:
            chunk = file_handle.read(chunk_size)
            if not chunk:
                break
            yield chunk


def _content_type_for_path(filepath: Path) -> str:
    mime_type, _ = mimetypes.guess_type(filepath.as_posix())
    return mime_type or "application/octet-stream"


def _streaming_file_response(request: HttpRequest, resolved_path: Path) -> HttpResponse:
    # opened here so permission errors surface before any header is sent
    file_handle = open(resolved_path, "rb")  # pylint: disable=consider-using-with
    if request.method == "HEAD":
        file_handle.close()
        body_iter: Iterator[bytes] = iter(())
    else:
        body_iter = stream_file(file_handle)
    headers = {"Content-Type": _content_type_for_path(resolved_path)}
    return HttpResponse(
        "HTTP/1.1 200 OK",
        headers,
        b"",
        should_close(request.headers),
        body_iter=body_iter,
        use_chunked=True,
    )


def render_directory_listing(directory: Path) -> str:
    """Render the entries of ``directory`` as a sorted list of links."""
    lines = ["<pre>"]
    with os.scandir(directory) as entries:
        names = sorted(
            entry.name + "/" if entry.is_dir() else entry.name for entry in entries
        )
    for name in names:
        href = urllib.parse.quote(name)
        lines.append(f'<a href="{href}">{html.escape(name)}</a>')
    lines.append("</pre>")
    return "\n".join(lines) + "\n"


def _directory_response(request: HttpRequest, resolved_path: Path) -> HttpResponse:
    if not request.path.endswith("/"):
        location = urllib.parse.quote(Path(request.path).name) + "/"
        query = urllib.parse.urlsplit(request.uri).query
        return redirect_response(f"{location}?{query}" if query else location, request)

    index_path = resolved_path / INDEX_DOCUMENT
    if index_path.is_file():
        return _streaming_file_response(request, index_path)
    listing = render_directory_listing(resolved_path).encode()
    return html_response(listing, request, FILE_LOGGER)


def file_response(request: HttpRequest, directory: str) -> HttpResponse:
    """Serve a file or a directory listing rooted at ``directory``."""
    try:
        resolved_path = resolve_sandbox_path(directory, request.path)
    except ForbiddenPath:
        FILE_LOGGER.warning(
            "Forbidden path access blocked",
            extra={"event": "forbidden_path", "uri": request.uri},
        )
        return forbidden_response(request)

    try:
        if resolved_path.is_dir():
            return _directory_response(request, resolved_path)
        if resolved_path.is_file():
            return _streaming_file_response(request, resolved_path)
    except PermissionError:
        FILE_LOGGER.info(
            "Permission denied",
            extra={"event": "file_forbidden", "uri": request.uri},
        )
        return forbidden_response(request)
    except OSError as error:
        FILE_LOGGER.info(
            "File not readable",
            extra={
                "event": "file_unreadable",
                "uri": request.uri,
                "error_type": type(error).__name__,
            },
        )
        return not_found_response(request)

    if FILE_LOGGER.logger.isEnabledFor(logging.DEBUG):
        FILE_LOGGER.debug(
            "File not found", extra={"event": "file_not_found", "uri": request.uri}
        )
    return not_found_response(request)
