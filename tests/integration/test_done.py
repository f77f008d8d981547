"""
End-to-end tests of the fixture-server process.

The server runs as `python -m fixtureserver` in a temporary directory
holding https.pfx, exactly the way a client test suite starts it.
"""

import http.client
import os
import socket
import subprocess
import sys
import time
from pathlib import Path

import pytest

from conftest import free_port


SRC_DIR = Path(__file__).resolve().parent.parent.parent / "src"


def server_env() -> dict:
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC_DIR), env.get("PYTHONPATH")]))
    for name in ("FIXTURE_HOST", "FIXTURE_HTTP_PORT", "FIXTURE_HTTPS_PORT",
                 "FIXTURE_PFX", "FIXTURE_PFX_PASSPHRASE", "FIXTURE_LOG_LEVEL"):
        env.pop(name, None)
    return env


def server_command(http_port: int, https_port: int, *extra: str) -> list:
    return [
        sys.executable, "-m", "fixtureserver",
        "--host", "127.0.0.1",
        "--http-port", str(http_port),
        "--https-port", str(https_port),
        *extra,
    ]


def accepts_connections(port: int) -> bool:
    try:
        with socket.create_connection(("127.0.0.1", port), timeout=0.5):
            return True
    except OSError:
        return False


def wait_until_listening(process: subprocess.Popen, *ports: int, timeout: float = 15.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if process.poll() is not None:
            pytest.fail(f"fixture server exited early with status {process.returncode}")
        if all(accepts_connections(port) for port in ports):
            return
        time.sleep(0.05)
    pytest.fail("fixture server did not start listening")


@pytest.fixture
def workdir(tmp_path, pfx_bytes) -> Path:
    """A directory with the default keystore name in it."""
    (tmp_path / "https.pfx").write_bytes(pfx_bytes)
    return tmp_path


@pytest.fixture
def running_server(workdir):
    http_port, https_port = free_port(), free_port()
    process = subprocess.Popen(
        server_command(http_port, https_port),
        cwd=str(workdir),
        env=server_env(),
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    try:
        wait_until_listening(process, http_port, https_port)
        yield process, http_port, https_port
    finally:
        if process.poll() is None:
            process.kill()
            process.wait()


@pytest.mark.parametrize("scheme", ["http", "https"])
def test_done_exits_zero(running_server, client_ssl_context, scheme):
    process, http_port, https_port = running_server

    if scheme == "https":
        conn = http.client.HTTPSConnection(
            "127.0.0.1", https_port, timeout=5, context=client_ssl_context,
        )
    else:
        conn = http.client.HTTPConnection("127.0.0.1", http_port, timeout=5)

    try:
        conn.request("GET", "/done")
        response = conn.getresponse()
        assert response.status == 200
        assert response.read() == b""
    finally:
        conn.close()

    assert process.wait(timeout=10) == 0
    assert not accepts_connections(http_port)
    assert not accepts_connections(https_port)


def test_other_routes_do_not_exit(running_server):
    process, http_port, _ = running_server

    conn = http.client.HTTPConnection("127.0.0.1", http_port, timeout=5)
    try:
        conn.request("POST", "/basic_409")
        assert conn.getresponse().status == 409
    finally:
        conn.close()

    time.sleep(0.2)
    assert process.poll() is None


def test_missing_keystore_exits_one(tmp_path):
    result = subprocess.run(
        server_command(free_port(), free_port()),
        cwd=str(tmp_path),
        env=server_env(),
        capture_output=True,
        timeout=30,
    )

    assert result.returncode == 1
    assert b"Error:" in result.stderr
    assert b"https.pfx" in result.stderr


def test_port_in_use_exits_one(workdir):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        busy_port = blocker.getsockname()[1]

        result = subprocess.run(
            server_command(busy_port, free_port()),
            cwd=str(workdir),
            env=server_env(),
            capture_output=True,
            timeout=30,
        )

    assert result.returncode == 1
    assert b"Error:" in result.stderr


def test_sigterm_exits_zero(running_server):
    process, _, _ = running_server

    if sys.platform == "win32":
        pytest.skip("no SIGTERM delivery on Windows")

    process.terminate()

    assert process.wait(timeout=10) == 0
