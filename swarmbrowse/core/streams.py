# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Byte streams used by the session bridge.

ExecStream wraps the duplex socket of an attached exec. The input readers
produce what the operator types: either raw bytes from the local tty or
KeyEvents pushed by a UI. Both readers can be closed from another thread
to unblock a pending read.
"""

import os
import queue
import select
import socket
import threading
from typing import Any, Optional, Union

from swarmbrowse.core.keys import KeyEvent

READ_CHUNK_SIZE = 4096

InputItem = Union[bytes, KeyEvent]


class ExecStream:
    """Duplex byte stream of an attached exec.

    Accepts either a socket or the SocketIO wrapper the Docker SDK returns
    from ``exec_start(..., socket=True)``.
    """

    def __init__(self, raw: Any):
        self._raw = raw
        self._sock: socket.socket = getattr(raw, "_sock", raw)
        # The SDK leaves the client's request timeout on the socket; an idle
        # shell must not time out the read side.
        self._sock.settimeout(None)
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def recv(self, size: int = READ_CHUNK_SIZE) -> bytes:
        """Blocking read. Returns b"" on EOF."""
        return self._sock.recv(size)

    def sendall(self, data: bytes) -> None:
        self._sock.sendall(data)

    def close(self) -> None:
        """Shut down both directions and release the socket. Idempotent.

        The shutdown makes a recv blocked in another thread return.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True

        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._sock.close()
        if self._raw is not self._sock and hasattr(self._raw, "close"):
            try:
                self._raw.close()
            except OSError:
                pass


class TerminalInputReader:
    """Reads raw bytes from the local tty.

    A self-pipe lets close() wake a read blocked in select().
    """

    def __init__(self, fd: int, chunk_size: int = 1024):
        self.fd = fd
        self.chunk_size = chunk_size
        self._wake_r, self._wake_w = os.pipe()
        self._closed = threading.Event()

    def read(self) -> Optional[InputItem]:
        """Next chunk of input, or None on EOF or after close()."""
        while not self._closed.is_set():
            try:
                ready, _, _ = select.select([self.fd, self._wake_r], [], [])
            except InterruptedError:
                # SIGWINCH and friends
                continue
            if self._wake_r in ready or self._closed.is_set():
                return None
            data = os.read(self.fd, self.chunk_size)
            return data or None
        return None

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        try:
            os.write(self._wake_w, b"x")
        except OSError:
            pass

    def release(self) -> None:
        """Close the wakeup pipe. Call once no thread is reading anymore."""
        for fd in (self._wake_r, self._wake_w):
            try:
                os.close(fd)
            except OSError:
                pass


class QueueInputReader:
    """Input fed programmatically, e.g. key events from a terminal UI."""

    _CLOSED = object()

    def __init__(self):
        self._queue: "queue.Queue[Any]" = queue.Queue()

    def feed(self, item: InputItem) -> None:
        self._queue.put(item)

    def end(self) -> None:
        """Signal end of input (treated like local EOF)."""
        self._queue.put(self._CLOSED)

    def read(self) -> Optional[InputItem]:
        item = self._queue.get()
        if item is self._CLOSED:
            # Keep the marker for any other reader
            self._queue.put(self._CLOSED)
            return None
        return item

    def close(self) -> None:
        self._queue.put(self._CLOSED)

    def release(self) -> None:
        pass


class FdWriter:
    """Writes every chunk fully to a file descriptor, in order."""

    def __init__(self, fd: int):
        self.fd = fd

    def __call__(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            written = os.write(self.fd, view)
            view = view[written:]
