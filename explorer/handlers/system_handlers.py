"""Introspection handlers: request echo, environment dump and health check."""

import logging
import os
from typing import Iterable, Mapping, Optional

from explorer.domain.correlation_id import CorrelationLoggerAdapter
from explorer.domain.http_types import HttpRequest, HttpResponse
from explorer.domain.response_builders import html_response, json_response

SYSTEM_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("explorer.handlers.system"), {}
)

HEALTHCHECK_PAYLOAD = b'{"status":"ok"}'

PAGE_HEAD = """<head>
	<style type="text/css">
		table {
			border-collapse: collapse;
			border-spacing: 0;
		}

		tr:nth-child(odd) {
			background-color: #f0f0f0;
		}

		tr:first-of-type {
			border-top: 1px solid #c0c0c0;
		}

		td {
			font-family: arial, sans-serif;
			padding: 5px 10px;
			border-bottom: 1px solid #c0c0c0;
		}

	</style>
</head>"""


def render_table_page(
    rows: Iterable[tuple[str, str]], trailer: bytes = b"", encoding: str = "utf-8"
) -> bytes:
    """Render (name, value) rows as the two-column diagnostic page.

    Names and values are written as given; the page reflects the request and
    environment exactly.
    """
    parts = [b"<html>", PAGE_HEAD.encode(), b"<table>"]
    for name, value in rows:
        row = f'<tr><td style="width: 400px;">{name}</td><td>{value}</td></tr>'
        parts.append(row.encode(encoding, errors="surrogateescape"))
    parts.append(b"</table>")
    parts.append(trailer)
    parts.append(b"</html>")
    return b"".join(parts)


def handle_echo(request: HttpRequest) -> HttpResponse:
    """List every request header, one row per value, then the request body."""
    # header lines were decoded as latin-1, so this round-trips the raw bytes
    document = render_table_page(
        request.header_items, b"<pre>" + request.body + b"</pre>", "latin-1"
    )
    if SYSTEM_LOGGER.logger.isEnabledFor(logging.DEBUG):
        SYSTEM_LOGGER.debug(
            "Echo request processed",
            extra={"event": "echo_request", "bytes_in": len(request.body)},
        )
    return html_response(document, request, SYSTEM_LOGGER)


def handle_env(
    request: HttpRequest, environ: Optional[Mapping[str, str]] = None
) -> HttpResponse:
    """List the process environment sorted by variable name."""
    environ = os.environ if environ is None else environ
    rows = sorted(environ.items(), key=lambda item: item[0])
    return html_response(render_table_page(rows), request, SYSTEM_LOGGER)


def handle_healthcheck(request: HttpRequest) -> HttpResponse:
    """Report readiness unconditionally."""
    return json_response(HEALTHCHECK_PAYLOAD, request)
