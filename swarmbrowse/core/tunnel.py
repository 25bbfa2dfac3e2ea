# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""SSH tunnels to the Docker sockets of cluster nodes.

Each tunnel is an ``ssh -N -L <local.sock>:/var/run/docker.sock <host>``
subprocess. The local end is a unix socket in the tunnel socket directory,
named after the host plus a time and random suffix so that concurrent
tunnels (and concurrent swarmbrowse processes) never collide.

Lifecycle:
    STARTING -> READY -> CLOSED      (normal)
    STARTING -> FAILED               (spawn failure, early exit, timeout)
    READY    -> FAILED -> CLOSED     (ssh died, detected by the supervisor)

The credentials and host aliases come from the user's ssh configuration;
nothing here touches key material.
"""

import logging
import os
import re
import secrets
import stat
import subprocess
import threading
import time
from collections import deque
from enum import Enum
from pathlib import Path
from typing import Callable, Deque, Dict, List, Optional

from swarmbrowse.errors import HostConnectionError, SpawnFailed, TunnelTimeout
from swarmbrowse.models.cluster import TunnelSettings
from swarmbrowse.paths import HostPaths

logger = logging.getLogger(__name__)

STDERR_TAIL_LINES = 20

TunnelListener = Callable[["Tunnel"], None]


class TunnelState(str, Enum):
    STARTING = "starting"
    READY = "ready"
    FAILED = "failed"
    CLOSED = "closed"


def _is_socket(path: Path) -> bool:
    try:
        return stat.S_ISSOCK(os.stat(path).st_mode)
    except OSError:
        return False


def _host_slug(host: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]", "-", host)[:32]


class Tunnel:
    """One ssh forward to one host's Docker socket."""

    def __init__(self, host: str, socket_path: Path):
        self.host = host
        self.socket_path = socket_path
        self.process: Optional[subprocess.Popen] = None
        self.state = TunnelState.STARTING
        self.error: Optional[HostConnectionError] = None
        self.stderr_tail: Deque[str] = deque(maxlen=STDERR_TAIL_LINES)

        self._lock = threading.Lock()
        self._settled = threading.Event()
        self._closing = False
        self._listeners: List[TunnelListener] = []
        self._notified = False
        self._supervisor: Optional[threading.Thread] = None

    def __repr__(self) -> str:
        return f"Tunnel(host={self.host!r}, state={self.state.value}, socket={self.socket_path})"

    @property
    def docker_url(self) -> str:
        return f"unix://{self.socket_path}"

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process else None

    @property
    def is_live(self) -> bool:
        """STARTING or READY."""
        return self.state in (TunnelState.STARTING, TunnelState.READY)

    def is_alive(self) -> bool:
        """READY and the ssh process is still running."""
        return (
            self.state == TunnelState.READY
            and self.process is not None
            and self.process.poll() is None
        )

    def wait_settled(self, timeout: Optional[float] = None) -> bool:
        """Block until the tunnel left STARTING."""
        return self._settled.wait(timeout)

    def add_listener(self, listener: TunnelListener) -> None:
        """Call ``listener(tunnel)`` once when the tunnel closes or fails.

        Called immediately if that already happened.
        """
        with self._lock:
            if not self._notified:
                self._listeners.append(listener)
                return
        listener(self)

    def remove_listener(self, listener: TunnelListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self) -> None:
        with self._lock:
            if self._notified:
                return
            self._notified = True
            listeners = list(self._listeners)
            self._listeners.clear()

        for listener in listeners:
            try:
                listener(self)
            except Exception:
                logger.exception(f"Tunnel listener failed for {self.host}")


class TunnelManager:
    """Opens, supervises and closes tunnels; at most one live tunnel per host."""

    def __init__(
        self,
        settings: Optional[TunnelSettings] = None,
        socket_dir: Optional[Path] = None,
    ):
        self.settings = settings or TunnelSettings()
        self.socket_dir = socket_dir or HostPaths.tunnel_socket_dir()
        self._tunnels: Dict[str, Tunnel] = {}
        self._lock = threading.Lock()

    def tunnels(self) -> List[Tunnel]:
        with self._lock:
            return list(self._tunnels.values())

    def get(self, host: str) -> Optional[Tunnel]:
        with self._lock:
            return self._tunnels.get(host)

    def socket_path_for(self, host: str) -> Path:
        name = f"swarmbrowse-{_host_slug(host)}-{time.time_ns()}-{secrets.token_hex(3)}.sock"
        return self.socket_dir / name

    def build_command(self, host: str, socket_path: Path) -> List[str]:
        return [
            self.settings.ssh_binary,
            "-N",
            "-o",
            "ExitOnForwardFailure=yes",
            "-o",
            "StreamLocalBindUnlink=yes",
            *self.settings.ssh_options,
            "-L",
            f"{socket_path}:{self.settings.remote_socket}",
            host,
        ]

    def open(self, host: str) -> Tunnel:
        """Open a tunnel to ``host``, or return the live one.

        Raises:
            SpawnFailed: ssh could not start or exited before the socket appeared.
            TunnelTimeout: The socket did not appear within the timeout.
        """
        with self._lock:
            existing = self._tunnels.get(host)
            if existing is not None and existing.is_live:
                owner = False
            else:
                existing = Tunnel(host, self.socket_path_for(host))
                self._tunnels[host] = existing
                owner = True

        tunnel = existing
        if not owner:
            # the owner settles the tunnel on every startup path
            tunnel.wait_settled()
            if tunnel.state == TunnelState.READY:
                logger.debug(f"Reusing tunnel to {host} ({tunnel.socket_path})")
                return tunnel
            raise tunnel.error or SpawnFailed(host, f"tunnel is {tunnel.state.value}")

        try:
            self._spawn(tunnel)
            self._wait_for_socket(tunnel)
        except HostConnectionError as e:
            self._fail_startup(tunnel, e)
            raise
        except Exception as e:
            error = SpawnFailed(host, str(e))
            self._fail_startup(tunnel, error)
            raise error from e
        except BaseException as e:
            self._fail_startup(tunnel, SpawnFailed(host, f"interrupted ({type(e).__name__})"))
            raise

        with tunnel._lock:
            tunnel.state = TunnelState.READY
        tunnel._supervisor = threading.Thread(
            target=self._supervise,
            args=(tunnel,),
            name=f"tunnel-{_host_slug(host)}",
            daemon=True,
        )
        tunnel._supervisor.start()
        tunnel._settled.set()
        logger.info(f"SSH tunnel to {host} ready at {tunnel.socket_path} (pid {tunnel.pid})")
        return tunnel

    def _spawn(self, tunnel: Tunnel) -> None:
        try:
            self.socket_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as e:
            raise SpawnFailed(
                tunnel.host, f"cannot create socket directory {self.socket_dir}: {e}"
            ) from e
        command = self.build_command(tunnel.host, tunnel.socket_path)
        logger.debug(f"Starting tunnel: {' '.join(command)}")
        try:
            tunnel.process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise SpawnFailed(tunnel.host, str(e)) from e

    def _wait_for_socket(self, tunnel: Tunnel) -> None:
        """Poll for the forwarded socket, watching for an early ssh exit."""
        timeout = self.settings.timeout_seconds
        interval = self.settings.poll_interval_seconds
        deadline = time.monotonic() + timeout

        while True:
            returncode = tunnel.process.poll()
            if returncode is not None:
                stderr = self._read_stderr(tunnel)
                raise SpawnFailed(
                    tunnel.host,
                    f"ssh exited with code {returncode}",
                    returncode=returncode,
                    stderr=stderr,
                )
            if _is_socket(tunnel.socket_path):
                return
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TunnelTimeout(tunnel.host, str(tunnel.socket_path), timeout)
            logger.debug(f"Waiting for socket {tunnel.socket_path}")
            time.sleep(min(interval, remaining))

    def _read_stderr(self, tunnel: Tunnel) -> str:
        """stderr of an exited ssh."""
        if tunnel.process is None or tunnel.process.stderr is None:
            return ""
        try:
            data = tunnel.process.stderr.read()
        except (OSError, ValueError):
            return ""
        return data.decode("utf-8", errors="replace") if data else ""

    def _fail_startup(self, tunnel: Tunnel, error: HostConnectionError) -> None:
        logger.warning(f"Tunnel to {tunnel.host} failed: {error}")
        with tunnel._lock:
            tunnel.state = TunnelState.FAILED
            tunnel.error = error
        try:
            self._stop_process(tunnel)
        except OSError as e:
            logger.warning(f"Could not stop ssh for {tunnel.host}: {e}")
        self._remove_socket(tunnel)
        with self._lock:
            if self._tunnels.get(tunnel.host) is tunnel:
                del self._tunnels[tunnel.host]
        tunnel._settled.set()
        tunnel._notify()

    def _supervise(self, tunnel: Tunnel) -> None:
        """Drain ssh stderr and detect the process dying under a READY tunnel."""
        process = tunnel.process
        if process.stderr is not None:
            for raw_line in process.stderr:
                line = raw_line.decode("utf-8", errors="replace").rstrip()
                if line:
                    tunnel.stderr_tail.append(line)
                    logger.debug(f"ssh[{tunnel.host}]: {line}")
            process.stderr.close()
        returncode = process.wait()

        with tunnel._lock:
            if tunnel._closing:
                return
            tunnel.state = TunnelState.FAILED
            tunnel.error = SpawnFailed(
                tunnel.host,
                f"ssh exited with code {returncode}",
                returncode=returncode,
                stderr="\n".join(tunnel.stderr_tail),
            )

        logger.warning(f"SSH tunnel to {tunnel.host} died (exit code {returncode})")
        self._remove_socket(tunnel)
        with self._lock:
            if self._tunnels.get(tunnel.host) is tunnel:
                del self._tunnels[tunnel.host]
        tunnel._notify()

    def close(self, tunnel: Tunnel) -> None:
        """Stop the ssh process and remove the socket. Idempotent.

        Raises:
            HostConnectionError: The process could not be stopped. Cleanup
                of the socket and listeners still happened.
        """
        with tunnel._lock:
            if tunnel.state == TunnelState.CLOSED:
                return
            tunnel._closing = True
            tunnel.state = TunnelState.CLOSED

        logger.debug(f"Closing tunnel to {tunnel.host}")
        error: Optional[OSError] = None
        try:
            self._stop_process(tunnel)
        except OSError as e:
            error = e
        finally:
            self._remove_socket(tunnel)
            with self._lock:
                if self._tunnels.get(tunnel.host) is tunnel:
                    del self._tunnels[tunnel.host]
            tunnel._settled.set()
            tunnel._notify()

        if error is not None:
            raise HostConnectionError(
                tunnel.host, f"Failed to stop SSH tunnel to {tunnel.host}: {error}"
            ) from error
        logger.info(f"SSH tunnel to {tunnel.host} closed")

    def close_all(self) -> List[Exception]:
        """Close every tracked tunnel. Returns the errors, never stops early."""
        errors: List[Exception] = []
        for tunnel in self.tunnels():
            try:
                self.close(tunnel)
            except HostConnectionError as e:
                errors.append(e)
        return errors

    def _stop_process(self, tunnel: Tunnel) -> None:
        process = tunnel.process
        if process is None or process.poll() is not None:
            return
        wait = self.settings.close_timeout_seconds
        try:
            process.terminate()
            process.wait(timeout=wait)
        except ProcessLookupError:
            return
        except subprocess.TimeoutExpired:
            logger.warning(f"ssh for {tunnel.host} ignored SIGTERM, killing")
            process.kill()
            try:
                process.wait(timeout=wait)
            except subprocess.TimeoutExpired as e:
                raise OSError(f"ssh (pid {process.pid}) did not exit") from e

    def _remove_socket(self, tunnel: Tunnel) -> None:
        try:
            tunnel.socket_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove {tunnel.socket_path}: {e}")
