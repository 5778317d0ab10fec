"""Unit tests for the lifecycle manager orchestration."""

import logging
import signal
import socket
import threading
import time

import pytest
import requests

from explorer.bootstrap.config import ServerConfig
from explorer.lifecycle.manager import LifecycleManager, LifecycleState
from tests.utils.http import (
    port_refuses_connections,
    read_http_response,
    reserve_port,
)

HOST = "127.0.0.1"


def _manager(port: int, **kwargs) -> LifecycleManager:
    config_kwargs = {
        "port": port,
        "host": HOST,
        "heartbeat": kwargs.pop("heartbeat", False),
        "shutdown_delay_seconds": kwargs.pop("delay", 0),
        "directory": kwargs.pop("directory", "/"),
    }
    return LifecycleManager(
        ServerConfig(**config_kwargs), install_signals=False, **kwargs
    )


def _run_in_background(manager: LifecycleManager) -> threading.Thread:
    thread = threading.Thread(target=manager.run, daemon=True)
    thread.start()
    assert manager.lifecycle.wait_until_listening(5)
    return thread


def _messages(caplog, name: str) -> list[str]:
    return [r.getMessage() for r in caplog.records if r.name == name]


def test_full_lifecycle_walks_every_state_in_order():
    sleeps = []
    manager = _manager(reserve_port(HOST), delay=2, sleep=sleeps.append)
    thread = _run_in_background(manager)
    assert manager.state is LifecycleState.LISTENING

    manager.request_exit(signal.SIGTERM)
    thread.join(timeout=10)

    assert not thread.is_alive()
    assert manager.history == [
        LifecycleState.STARTING,
        LifecycleState.LISTENING,
        LifecycleState.SHUTTING_DOWN,
        LifecycleState.DRAINING,
        LifecycleState.DELAYING,
        LifecycleState.TERMINATED,
    ]
    assert sleeps == [1, 1]


def test_listener_binds_exactly_the_configured_port():
    port = reserve_port(HOST)
    manager = _manager(port)
    thread = _run_in_background(manager)
    try:
        assert manager.lifecycle.bound_address[1] == port
        response = requests.get(f"http://{HOST}:{port}/_/healthcheck", timeout=5)
        assert response.status_code == 200
        assert response.text == '{"status":"ok"}'
    finally:
        manager.request_exit()
        thread.join(timeout=10)
    assert port_refuses_connections(HOST, port)


def test_delay_logs_one_progress_line_per_second(caplog):
    caplog.set_level(logging.INFO)
    manager = _manager(reserve_port(HOST), delay=3, sleep=lambda _: None)
    thread = _run_in_background(manager)

    manager.request_exit(signal.SIGINT)
    thread.join(timeout=10)

    lines = _messages(caplog, "explorer.lifecycle.manager")
    completed = lines.index("server graceful shutdown")
    assert lines[completed + 1 :] == [
        "delaying an additional 3 seconds",
        "delay ... 1",
        "delay ... 2",
        "delay ... 3",
    ]


def test_zero_delay_skips_delaying(caplog):
    caplog.set_level(logging.INFO)
    sleeps = []
    manager = _manager(reserve_port(HOST), delay=0, sleep=sleeps.append)
    thread = _run_in_background(manager)

    manager.request_exit(signal.SIGQUIT)
    thread.join(timeout=10)

    assert sleeps == []
    assert LifecycleState.DELAYING not in manager.history
    assert not any(
        m.startswith("delay") for m in _messages(caplog, "explorer.lifecycle.manager")
    )


def test_hangup_does_not_trigger_shutdown():
    manager = _manager(reserve_port(HOST))
    thread = _run_in_background(manager)
    try:
        manager.request_exit(signal.SIGHUP)
        time.sleep(0.3)
        assert manager.state is LifecycleState.LISTENING
        assert thread.is_alive()
    finally:
        manager.request_exit(signal.SIGTERM)
        thread.join(timeout=10)
    assert manager.state is LifecycleState.TERMINATED


def test_heartbeat_stops_when_shutdown_begins(caplog):
    caplog.set_level(logging.INFO)
    manager = _manager(reserve_port(HOST), heartbeat=True, heartbeat_interval=0.05)
    thread = _run_in_background(manager)
    time.sleep(0.3)

    manager.request_exit()
    thread.join(timeout=10)

    names = [r.name for r in caplog.records]
    beats = names.count("explorer.lifecycle.heartbeat")
    assert beats >= 2
    last_beat = max(i for i, n in enumerate(names) if n == "explorer.lifecycle.heartbeat")
    draining = next(
        i for i, r in enumerate(caplog.records) if getattr(r, "event", "") == "draining_started"
    )
    assert last_beat < draining
    assert manager.heartbeat_cancelled.is_set()


def test_bind_failure_is_logged_and_shutdown_still_completes(caplog):
    caplog.set_level(logging.INFO)
    blocker = socket.create_server((HOST, 0))
    port = blocker.getsockname()[1]
    try:
        manager = _manager(port, delay=1, sleep=lambda _: None)
        thread = threading.Thread(target=manager.run, daemon=True)
        thread.start()
        assert not manager.lifecycle.wait_until_listening(5)

        manager.request_exit()
        thread.join(timeout=10)
    finally:
        blocker.close()

    assert not thread.is_alive()
    assert manager.state is LifecycleState.TERMINATED
    errors = _messages(caplog, "explorer.transport.accept")
    assert any(m.startswith("listen: ") for m in errors)
    assert "delay ... 1" in _messages(caplog, "explorer.lifecycle.manager")


def test_stalled_request_does_not_hold_up_shutdown(tmp_path):
    port = reserve_port(HOST)
    manager = _manager(port, directory=str(tmp_path), shutdown_deadline=0.5)
    thread = _run_in_background(manager)

    # headers sent, body never arrives
    slow = socket.create_connection((HOST, port), timeout=5)
    try:
        slow.sendall(b"POST /_/echo HTTP/1.1\r\nHost: x\r\nContent-Length: 10\r\n\r\n")
        time.sleep(0.2)
        started = time.monotonic()
        manager.request_exit()
        thread.join(timeout=10)
        elapsed = time.monotonic() - started
    finally:
        slow.close()

    assert not thread.is_alive()
    assert elapsed < 1.5


def test_request_in_flight_when_shutdown_begins_is_answered(tmp_path):
    port = reserve_port(HOST)
    manager = _manager(port, directory=str(tmp_path))
    thread = _run_in_background(manager)

    client = socket.create_connection((HOST, port), timeout=5)
    try:
        client.sendall(
            b"POST /_/echo HTTP/1.1\r\nHost: x\r\nContent-Length: 10\r\n\r\nhello"
        )
        time.sleep(0.2)
        manager.request_exit()
        time.sleep(0.3)
        client.sendall(b"world")
        response = read_http_response(client)
    finally:
        client.close()
    thread.join(timeout=10)

    assert response.status_code == 200
    assert response.headers["connection"] == "close"
    assert b"<pre>helloworld</pre>" in response.body
    assert manager.state is LifecycleState.TERMINATED


@pytest.mark.parametrize("signum", [signal.SIGINT, signal.SIGTERM, signal.SIGQUIT])
def test_termination_signals_produce_a_single_exit(signum):
    manager = _manager(reserve_port(HOST))
    thread = _run_in_background(manager)

    manager.request_exit(signum)
    manager.request_exit(signum)
    thread.join(timeout=10)

    assert manager.signals.fired
    assert manager.exit_queue.empty()
    assert manager.state is LifecycleState.TERMINATED
