# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Per-host Docker clients, each bound to its own SSH tunnel.

The pool owns every tunnel and client it creates. Handles are created on
first use and live until close(), or until their tunnel dies, in which
case the next client_for() builds a fresh one.
"""

import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Dict, List, Optional

import docker
from docker.errors import DockerException

from swarmbrowse.core.streams import ExecStream
from swarmbrowse.core.tunnel import Tunnel, TunnelListener, TunnelManager
from swarmbrowse.errors import HostConnectionError, PoolCloseError

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Tunnel], docker.DockerClient]


def docker_client_for(tunnel: Tunnel) -> docker.DockerClient:
    """Docker client talking to the local end of ``tunnel``."""
    return docker.DockerClient(base_url=tunnel.docker_url, version="auto")


class ClientHandle:
    """A Docker client bound to one host's tunnel.

    Also the exec interface used by the session bridge.
    """

    def __init__(self, host: str, tunnel: Tunnel, client: docker.DockerClient):
        self.host = host
        self.tunnel = tunnel
        self.client = client

    def __repr__(self) -> str:
        return f"ClientHandle(host={self.host!r}, tunnel={self.tunnel!r})"

    def is_alive(self) -> bool:
        return self.tunnel.is_alive()

    def exec_create(self, container_id: str, cmd: List[str]) -> str:
        """Create a TTY exec with stdin/stdout/stderr attached; returns its id."""
        response = self.client.api.exec_create(
            container_id,
            cmd=cmd,
            stdin=True,
            stdout=True,
            stderr=True,
            tty=True,
            environment={"TERM": "xterm-256color"},
        )
        return response["Id"]

    def exec_attach(self, exec_id: str) -> ExecStream:
        """Start the exec and return its duplex stream."""
        raw = self.client.api.exec_start(exec_id, tty=True, socket=True, demux=False)
        return ExecStream(raw)

    def exec_inspect(self, exec_id: str) -> Dict[str, Any]:
        return self.client.api.exec_inspect(exec_id)

    def exec_resize(self, exec_id: str, width: int, height: int) -> None:
        self.client.api.exec_resize(exec_id, height=height, width=width)

    def add_close_listener(self, listener: TunnelListener) -> None:
        self.tunnel.add_listener(listener)

    def remove_close_listener(self, listener: TunnelListener) -> None:
        self.tunnel.remove_listener(listener)


class HostConnectionPool:
    """Memoizes one ClientHandle per host.

    Creation is single-flight per host: concurrent callers for the same host
    share one tunnel and one client (or one error). Different hosts connect
    in parallel.
    """

    def __init__(
        self,
        tunnels: Optional[TunnelManager] = None,
        client_factory: ClientFactory = docker_client_for,
    ):
        self.tunnels = tunnels or TunnelManager()
        self.client_factory = client_factory
        self._handles: Dict[str, ClientHandle] = {}
        self._pending: Dict[str, "Future[ClientHandle]"] = {}
        self._lock = threading.Lock()
        self._closed = False

    def __enter__(self) -> "HostConnectionPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def hosts(self) -> List[str]:
        with self._lock:
            return list(self._handles)

    def client_for(self, host: str) -> ClientHandle:
        """Return the handle for ``host``, connecting on first use.

        Raises:
            HostConnectionError: The tunnel or client could not be created.
                Nothing is cached; the next call retries from scratch.
        """
        stale: Optional[ClientHandle] = None
        with self._lock:
            if self._closed:
                raise HostConnectionError(host, "Connection pool is closed")

            handle = self._handles.get(host)
            if handle is not None:
                if handle.is_alive():
                    return handle
                stale = self._handles.pop(host)

            future = self._pending.get(host)
            creator = future is None
            if creator:
                future = Future()
                self._pending[host] = future

        if stale is not None:
            logger.info(f"Dropping dead connection to {host}")
            self._discard(stale)

        if not creator:
            logger.debug(f"Waiting for in-flight connection to {host}")
            return future.result()

        try:
            handle = self._create(host)
        except BaseException as e:
            with self._lock:
                self._pending.pop(host, None)
            future.set_exception(e)
            raise

        with self._lock:
            self._pending.pop(host, None)
            closed = self._closed
            if not closed:
                self._handles[host] = handle

        if closed:
            self._discard(handle)
            error = HostConnectionError(host, "Connection pool closed while connecting")
            future.set_exception(error)
            raise error

        future.set_result(handle)
        return handle

    def _create(self, host: str) -> ClientHandle:
        tunnel = self.tunnels.open(host)
        try:
            client = self.client_factory(tunnel)
        except DockerException as e:
            self._close_tunnel_quietly(tunnel)
            raise HostConnectionError(
                host, f"Failed to create Docker client for {host}: {e}"
            ) from e

        handle = ClientHandle(host, tunnel, client)
        tunnel.add_listener(lambda t: self._on_tunnel_down(handle))
        logger.info(f"Connected to Docker on {host}")
        return handle

    def _on_tunnel_down(self, handle: ClientHandle) -> None:
        with self._lock:
            if self._handles.get(handle.host) is handle:
                del self._handles[handle.host]
                evicted = True
            else:
                evicted = False
        if evicted:
            logger.warning(f"Connection to {handle.host} lost, evicted from pool")
            try:
                handle.client.close()
            except DockerException as e:
                logger.debug(f"Closing client for {handle.host} failed: {e}")

    def _discard(self, handle: ClientHandle) -> None:
        try:
            handle.client.close()
        except DockerException as e:
            logger.debug(f"Closing client for {handle.host} failed: {e}")
        self._close_tunnel_quietly(handle.tunnel)

    def _close_tunnel_quietly(self, tunnel: Tunnel) -> None:
        try:
            self.tunnels.close(tunnel)
        except HostConnectionError as e:
            logger.warning(str(e))

    def close(self) -> None:
        """Close every client and tunnel.

        All hosts are attempted even if some fail.

        Raises:
            PoolCloseError: With every failure collected.
        """
        with self._lock:
            self._closed = True
            handles = list(self._handles.values())
            self._handles.clear()

        errors: List[Exception] = []
        for handle in handles:
            logger.debug(f"Closing connection to {handle.host}")
            try:
                handle.client.close()
            except Exception as e:
                errors.append(
                    HostConnectionError(
                        handle.host, f"Failed to close Docker client for {handle.host}: {e}"
                    )
                )
            try:
                self.tunnels.close(handle.tunnel)
            except HostConnectionError as e:
                errors.append(e)

        errors.extend(self.tunnels.close_all())

        if errors:
            for error in errors:
                logger.error(str(error))
            raise PoolCloseError(errors)
        logger.info(f"Connection pool closed ({len(handles)} host(s))")
