# tests/test_server.py
# How to run:
#   From repo root: pytest -q
#
# What this covers:
#   - A real uvicorn server exits while a /invocation/next caller is parked
#   - The parked caller is released with 204 on shutdown

import socket
import threading
import time

import httpx

from app.api.server import RuntimeServer, build_server
from app.config import RuntimeConfig


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def _wait_until(cond, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if cond():
            return True
        time.sleep(0.02)
    return False


def test_build_server_wires_runtime_into_app():
    server = build_server(RuntimeConfig(port=_free_port()))
    assert isinstance(server, RuntimeServer)
    assert server.runtime is server.config.app.state.runtime


def test_server_exits_with_a_parked_poller():
    port = _free_port()
    server = build_server(RuntimeConfig(port=port, poll_interval_s=0.05))
    srv = threading.Thread(target=server.run, daemon=True)
    srv.start()
    assert _wait_until(lambda: server.started)

    result = {}

    def poll():
        try:
            result["status"] = httpx.get(
                f"http://127.0.0.1:{port}/2018-06-01/runtime/invocation/next", timeout=10.0
            ).status_code
        except httpx.HTTPError as e:
            result["error"] = e

    poller = threading.Thread(target=poll, daemon=True)
    poller.start()
    time.sleep(0.2)  # let the request park in the long poll

    server.should_exit = True
    srv.join(timeout=5.0)
    assert not srv.is_alive()

    poller.join(timeout=5.0)
    assert not poller.is_alive()
    assert result.get("status") == 204
