"""Shared pytest fixtures for integration and unit tests."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Generator

import pytest

from tests.utils.http import reserve_port
from tests.utils.server import ServerProcessInfo, launch_server

if TYPE_CHECKING:
    from _pytest.tmpdir import TempPathFactory


@pytest.fixture(name="served_directory")
def _served_directory(tmp_path_factory: "TempPathFactory") -> Path:
    """A small directory tree exposed through the filesystem fallback."""
    root = tmp_path_factory.mktemp("served")
    (root / "hello.txt").write_text("hello from disk\n")
    (root / "nested").mkdir()
    (root / "nested" / "inner.json").write_text('{"inner": true}')
    (root / "site").mkdir()
    (root / "site" / "index.html").write_text("<h1>index</h1>")
    return root


@pytest.fixture(name="server_process")
def _server_process(
    served_directory: Path, tmp_path_factory: "TempPathFactory"
) -> Generator[ServerProcessInfo, None, None]:
    """Launch explorer in a background process for integration tests."""
    host = "127.0.0.1"
    port = reserve_port(host)
    log_file = tmp_path_factory.mktemp("logs") / "explorer.log"
    yield from launch_server(
        host, port, served_directory, log_file, env={"EXPLORER_TEST_MARKER": "present"}
    )


@pytest.fixture()
def base_url(server_process: ServerProcessInfo) -> str:
    """Expose the running server base URL to integration tests."""
    return server_process["base_url"]
