# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Pytest fixtures for swarmbrowse unit tests.

Nothing here needs Docker, ssh or a real tty: tunnels run against fake
processes, exec streams are socketpairs, and the terminal is recorded.
"""

import io
import socket
import subprocess
import threading
from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import Mock

import pytest

from swarmbrowse.core.streams import ExecStream
from swarmbrowse.core.tunnel import Tunnel, TunnelState
from swarmbrowse.models.cluster import Cluster, Node


@pytest.fixture(autouse=True)
def isolated_log_file(tmp_path, monkeypatch):
    """Keep log output of the code under test out of the home directory."""
    monkeypatch.setenv("SWARMBROWSE_LOG_FILE", str(tmp_path / "swarmbrowse.log"))


@pytest.fixture
def cluster():
    return Cluster(
        name="Production",
        host="manager-1",
        nodes={
            "node1": Node(host="10.0.0.1", hostname="swarm-node-1"),
            "node2": Node(host="10.0.0.2", hostname="swarm-node-2"),
        },
    )


class FakeProcess:
    """Stands in for the ssh Popen object."""

    def __init__(self, returncode: Optional[int] = None, stderr: bytes = b"", stubborn=False):
        self.pid = 4242
        self.returncode = returncode
        self.stderr = io.BytesIO(stderr)
        self.stubborn = stubborn
        self.terminate_calls = 0
        self.kill_calls = 0
        self._exited = threading.Event()
        if returncode is not None:
            self._exited.set()

    def poll(self):
        return self.returncode

    def wait(self, timeout=None):
        if not self._exited.wait(timeout):
            raise subprocess.TimeoutExpired("ssh", timeout)
        return self.returncode

    def terminate(self):
        self.terminate_calls += 1
        if not self.stubborn:
            self.exit(-15)

    def kill(self):
        self.kill_calls += 1
        if not self.stubborn:
            self.exit(-9)

    def exit(self, code: int):
        self.returncode = code
        self._exited.set()


def make_tunnel(host: str) -> Tunnel:
    """A READY tunnel whose ssh process is alive."""
    tunnel = Tunnel(host, Path(f"/tmp/{host}.sock"))
    tunnel.process = FakeProcess()
    tunnel.state = TunnelState.READY
    return tunnel


class FakeExecClient:
    """Exec interface backed by socketpairs.

    The far end of each attached exec is kept in ``remotes`` so tests can
    play the container side.
    """

    def __init__(
        self,
        host: str = "node-1",
        create_errors: Optional[Dict[str, Exception]] = None,
        exit_codes: Optional[Dict[str, int]] = None,
        resize_error: Optional[Exception] = None,
    ):
        self.host = host
        self.create_errors = create_errors or {}
        self.exit_codes = exit_codes or {}
        self.resize_error = resize_error
        self.created: List[List[str]] = []
        self.execs: Dict[str, List[str]] = {}
        self.streams: List[ExecStream] = []
        self.remotes: List[socket.socket] = []
        self.resizes = []
        self.listeners = []

    def exec_create(self, container_id, cmd):
        self.created.append(cmd)
        error = self.create_errors.get(cmd[0])
        if error is not None:
            raise error
        exec_id = f"exec-{len(self.created)}"
        self.execs[exec_id] = cmd
        return exec_id

    def exec_attach(self, exec_id):
        local, remote = socket.socketpair()
        self.remotes.append(remote)
        stream = ExecStream(local)
        self.streams.append(stream)
        return stream

    def exec_inspect(self, exec_id):
        code = self.exit_codes.get(self.execs[exec_id][0])
        if code is None:
            return {"Running": True, "ExitCode": None}
        return {"Running": False, "ExitCode": code}

    def exec_resize(self, exec_id, width, height):
        if self.resize_error is not None:
            raise self.resize_error
        self.resizes.append((exec_id, width, height))

    def add_close_listener(self, listener):
        self.listeners.append(listener)

    def remove_close_listener(self, listener):
        if listener in self.listeners:
            self.listeners.remove(listener)

    def close(self):
        for remote in self.remotes:
            remote.close()


class FakeTerminal:
    """Records mode changes instead of touching a tty."""

    def __init__(self, capture_error=None, raw_error=None):
        self.capture_error = capture_error
        self.raw_error = raw_error
        self.mode = ["cooked"]
        self.raw = False
        self.restores: List[list] = []

    def capture(self):
        if self.capture_error is not None:
            raise self.capture_error
        return list(self.mode)

    def make_raw(self):
        if self.raw_error is not None:
            raise self.raw_error
        self.raw = True

    def restore(self, mode):
        self.raw = False
        self.restores.append(mode)


class OutputRecorder:
    def __init__(self):
        self.chunks: List[bytes] = []

    def __call__(self, data: bytes):
        self.chunks.append(data)

    @property
    def data(self) -> bytes:
        return b"".join(self.chunks)


@pytest.fixture
def exec_client():
    client = FakeExecClient()
    yield client
    client.close()


@pytest.fixture
def terminal():
    return FakeTerminal()


@pytest.fixture
def docker_client():
    """Mock of docker.DockerClient as returned by the client factory."""
    return Mock(name="DockerClient")


def recv_all(sock: socket.socket, timeout: float = 2.0) -> bytes:
    """Read from the container side until the session closes its end."""
    sock.settimeout(timeout)
    received = b""
    while True:
        data = sock.recv(4096)
        if not data:
            return received
        received += data
