"""
Process-level tests: exit codes and SIGINT handling of `python -m knockserver`.
"""

import os
import signal
import socket
import subprocess
import sys
import time
from pathlib import Path

import pytest

from conftest import recv_exactly, recv_until_closed


SRC_DIR = Path(__file__).parent.parent.parent / "src"

BANNER = b"Internet Knock-Knock Protocol Server\r\nVersion 1.0\r\nKnock! Knock!\r\n> "

pytestmark = pytest.mark.skipif(
    sys.platform == "win32", reason="POSIX signals required"
)


def start_server(port: int) -> subprocess.Popen:
    """Run the server in a child process and wait until it accepts."""
    env = dict(os.environ)
    env["PYTHONPATH"] = str(SRC_DIR) + os.pathsep + env.get("PYTHONPATH", "")

    proc = subprocess.Popen(
        [sys.executable, "-m", "knockserver", "--host", "127.0.0.1", "--port", str(port)],
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )

    for _ in range(100):  # 10 seconds max
        if proc.poll() is not None:
            break
        try:
            with socket.create_connection(("127.0.0.1", port), timeout=1.0) as probe:
                recv_exactly(probe, len(BANNER))
                return proc
        except ConnectionRefusedError:
            time.sleep(0.1)

    proc.kill()
    _, stderr = proc.communicate()
    raise RuntimeError(f"Server failed to start: {stderr.decode(errors='replace')}")


class TestSignals:
    """SIGINT stops the server with exit code 0."""

    def test_sigint_exits_cleanly(self, free_port):
        proc = start_server(free_port)

        proc.send_signal(signal.SIGINT)
        _, stderr = proc.communicate(timeout=10)

        assert proc.returncode == 0
        assert b"Server stopped by user" in stderr
        with pytest.raises(OSError):
            socket.create_connection(("127.0.0.1", free_port), timeout=1.0)

    def test_sigint_during_dialogue(self, free_port):
        """The signal is honored even while a client holds the server."""
        proc = start_server(free_port)

        with socket.create_connection(("127.0.0.1", free_port), timeout=5.0) as client:
            assert recv_exactly(client, len(BANNER)) == BANNER

            proc.send_signal(signal.SIGINT)
            proc.communicate(timeout=10)

            assert recv_until_closed(client) == b""

        assert proc.returncode == 0

    def test_sigterm_exits_cleanly(self, free_port):
        proc = start_server(free_port)

        proc.send_signal(signal.SIGTERM)
        proc.communicate(timeout=10)

        assert proc.returncode == 0


class TestStartupFailure:
    """A listener that cannot be set up is fatal (exit code 1)."""

    def test_port_in_use(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as taken:
            taken.bind(("127.0.0.1", 0))
            taken.listen(1)
            port = taken.getsockname()[1]

            env = dict(os.environ)
            env["PYTHONPATH"] = str(SRC_DIR) + os.pathsep + env.get("PYTHONPATH", "")
            result = subprocess.run(
                [sys.executable, "-m", "knockserver", "--host", "127.0.0.1", "--port", str(port)],
                env=env,
                capture_output=True,
                timeout=10,
            )

        assert result.returncode == 1
        assert b"Can't bind to socket: " in result.stderr
