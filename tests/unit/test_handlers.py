"""Unit tests for the introspection handlers."""

import gzip

from explorer.domain.http_types import HttpRequest
from explorer.handlers.system_handlers import (
    handle_echo,
    handle_env,
    handle_healthcheck,
    render_table_page,
)


def _request(method="GET", path="/", body=b"", items=None) -> HttpRequest:
    items = items or []
    headers = {name.lower(): value for name, value in items}
    return HttpRequest(method, path, headers, body, path, items)


def test_echo_lists_headers_and_body():
    request = _request(
        "POST",
        "/_/echo",
        b"hello",
        [("Host", "localhost"), ("X-Test", "v1"), ("Content-Length", "5")],
    )

    response = handle_echo(request)
    document = response.body.decode()

    assert response.status_line == "HTTP/1.1 200 OK"
    assert response.headers["Content-Type"] == "text/html"
    assert '<td style="width: 400px;">X-Test</td><td>v1</td>' in document
    assert document.index("</table>") < document.index("<pre>hello</pre>")
    assert document.startswith("<html><head>")
    assert document.endswith("</html>")


def test_echo_repeated_header_gets_one_row_per_value():
    request = _request(
        "GET", "/_/echo", items=[("Accept", "text/html"), ("Accept", "text/plain")]
    )

    document = handle_echo(request).body.decode()

    assert document.count(">Accept</td>") == 2
    assert "<td>text/html</td>" in document
    assert "<td>text/plain</td>" in document


def test_echo_reflects_markup_and_raw_bytes_verbatim():
    request = _request(
        "POST", "/_/echo", b"<b>hi</b>\xff", [("X-Test", "<b>"), ("X-Raw", "caf\xe9")]
    )

    document = handle_echo(request).body

    assert document.endswith(b"<pre><b>hi</b>\xff</pre></html>")
    assert b'<td style="width: 400px;">X-Test</td><td><b></td>' in document
    assert b"<td>caf\xe9</td>" in document


def test_env_values_are_not_escaped():
    document = handle_env(_request(path="/_/env"), environ={"A": "x<y>&z"}).body

    assert b"<td>x<y>&z</td>" in document


def test_env_rows_sorted_by_name():
    response = handle_env(_request(path="/_/env"), environ={"B": "2", "A": "1"})
    document = response.body.decode()

    first = document.index('<td style="width: 400px;">A</td><td>1</td>')
    second = document.index('<td style="width: 400px;">B</td><td>2</td>')
    assert first < second
    assert response.headers["Content-Type"] == "text/html"


def test_env_defaults_to_process_environment(monkeypatch):
    monkeypatch.setenv("EXPLORER_TEST_MARKER", "present")

    document = handle_env(_request(path="/_/env")).body

    assert b"<td>present</td>" in document


def test_html_pages_are_gzipped_when_accepted():
    request = _request(path="/_/env", items=[("Accept-Encoding", "gzip")])

    response = handle_env(request, environ={"A": "1"})

    assert response.headers["Content-Encoding"] == "gzip"
    assert b"<td>1</td>" in gzip.decompress(response.body)


def test_healthcheck_is_constant_for_any_method():
    for method in ("GET", "POST", "DELETE"):
        response = handle_healthcheck(_request(method, "/_/healthcheck", b"payload"))
        assert response.status_line == "HTTP/1.1 200 OK"
        assert response.headers["Content-Type"] == "application/json"
        assert response.body == b'{"status":"ok"}'


def test_render_table_page_without_rows():
    document = render_table_page([])
    assert b"<table></table>" in document
    assert document.endswith(b"</table></html>")
