# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Interactive exec sessions bridged to the local terminal.

A session goes through:

    CREATED -> ATTACHING -> ACTIVE -> DETACHED | CLOSED | ERRORED

attach() creates a TTY exec and attaches its stream. start() captures the
terminal mode, enters raw mode and runs two pump threads:

- input: local keys -> exec stream (Ctrl+\\ detaches, never forwarded)
- output: exec stream -> local output, chunk by chunk, in receipt order

Whichever pump first sees EOF, an error or the detach key tears the
session down: the terminal mode is restored (exactly once), the stream and
the input reader are closed so the other pump unblocks, and one terminal
event is published. start() returns that event after both pumps stopped.

Detaching leaves the remote process running; nothing is signalled.
"""

import logging
import termios
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

from docker.errors import DockerException

from swarmbrowse.core.keys import KeyEvent, encode_key, split_detach
from swarmbrowse.core.streams import READ_CHUNK_SIZE, ExecStream
from swarmbrowse.errors import AttachError, HostConnectionError, ResizeError, StreamError

logger = logging.getLogger(__name__)

DEFAULT_COMMAND = ["/bin/bash"]
FALLBACK_COMMAND = ["/bin/sh"]

# Exit codes of an exec whose command could not be run
EXEC_NOT_STARTED_CODES = (126, 127)
EXEC_START_CHECKS = 5
EXEC_START_CHECK_INTERVAL = 0.1


class SessionState(str, Enum):
    CREATED = "created"
    ATTACHING = "attaching"
    ACTIVE = "active"
    DETACHED = "detached"
    CLOSED = "closed"
    ERRORED = "errored"


@dataclass(frozen=True)
class OutputChunk:
    data: bytes


@dataclass(frozen=True)
class Detached:
    """The operator detached; the remote process keeps running."""


@dataclass(frozen=True)
class Closed:
    """The remote side ended the stream."""

    error: Optional[BaseException] = None


@dataclass(frozen=True)
class Errored:
    error: BaseException


TerminalEvent = Union[Detached, Closed, Errored]
SessionEvent = Union[OutputChunk, Detached, Closed, Errored]
EventCallback = Callable[[SessionEvent], None]


class ExecClient(Protocol):
    """What the bridge needs from a per-host client."""

    host: str

    def exec_create(self, container_id: str, cmd: List[str]) -> str: ...

    def exec_attach(self, exec_id: str) -> ExecStream: ...

    def exec_inspect(self, exec_id: str) -> Dict[str, Any]: ...

    def exec_resize(self, exec_id: str, width: int, height: int) -> None: ...

    def add_close_listener(self, listener: Callable[[Any], None]) -> None: ...

    def remove_close_listener(self, listener: Callable[[Any], None]) -> None: ...


class Terminal(Protocol):
    def capture(self) -> Any: ...

    def make_raw(self) -> None: ...

    def restore(self, mode: Any) -> None: ...


class InputReader(Protocol):
    def read(self) -> Union[bytes, KeyEvent, None]: ...

    def close(self) -> None: ...

    def release(self) -> None: ...


class Session:
    """One interactive exec in one container."""

    def __init__(self, client: ExecClient, container_id: str, command: List[str]):
        self.client = client
        self.container_id = container_id
        self.command = command
        self.exec_id: Optional[str] = None
        self.stream: Optional[ExecStream] = None
        self.state = SessionState.CREATED
        self.terminal_mode: Any = None
        self.outcome: Optional[TerminalEvent] = None

        self._terminal: Optional[Terminal] = None
        self._input: Optional[InputReader] = None
        self._output: Optional[Callable[[bytes], None]] = None
        self._on_event: Optional[EventCallback] = None
        self._mode_captured = False
        self._teardown_lock = threading.Lock()
        self._torn_down = False
        self._finished = threading.Event()

    def __repr__(self) -> str:
        return (
            f"Session(host={self.client.host!r}, container={self.container_id!r}, "
            f"state={self.state.value})"
        )

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE

    def wait(self, timeout: Optional[float] = None) -> Optional[TerminalEvent]:
        """Block until the session ended; returns its terminal event."""
        self._finished.wait(timeout)
        return self.outcome

    def detach(self) -> None:
        """Stop observing the session without touching the remote process."""
        self._teardown(Detached())

    def _emit(self, event: SessionEvent) -> None:
        if self._on_event is None:
            return
        try:
            self._on_event(event)
        except Exception:
            logger.exception(f"Session event handler failed on {type(event).__name__}")

    def _on_tunnel_down(self, tunnel: Any) -> None:
        self._teardown(
            Errored(StreamError(f"Connection to {self.client.host} closed during session"))
        )

    def _teardown(self, outcome: TerminalEvent) -> bool:
        """Finish the session with ``outcome``. Only the first call has effect."""
        with self._teardown_lock:
            if self._torn_down:
                return False
            self._torn_down = True
            self.outcome = outcome

        if self._mode_captured:
            try:
                self._terminal.restore(self.terminal_mode)
            except (termios.error, OSError) as e:
                logger.error(f"Failed to restore terminal mode: {e}")

        if self.stream is not None:
            self.stream.close()
        if self._input is not None:
            self._input.close()
        self.client.remove_close_listener(self._on_tunnel_down)

        if isinstance(outcome, Detached):
            self.state = SessionState.DETACHED
            logger.info(f"Detached from {self.container_id} on {self.client.host}")
        elif isinstance(outcome, Closed):
            self.state = SessionState.CLOSED
            logger.info(f"Session in {self.container_id} on {self.client.host} ended")
        else:
            self.state = SessionState.ERRORED
            logger.warning(
                f"Session in {self.container_id} on {self.client.host} failed: {outcome.error}"
            )

        self._emit(outcome)
        self._finished.set()
        return True


class SessionBridge:
    """Creates sessions and bridges them to a local terminal."""

    def __init__(self, fallback_command: Optional[List[str]] = None):
        self.fallback_command = FALLBACK_COMMAND if fallback_command is None else fallback_command
        self._resize_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="resize")
        self._closed = False

    def close(self) -> None:
        self._closed = True
        self._resize_pool.shutdown(wait=False)

    def attach(
        self,
        client: ExecClient,
        container_id: str,
        command: Optional[List[str]] = None,
    ) -> Session:
        """Create a TTY exec running ``command`` and attach to it.

        If the command cannot be started, the fallback shell is tried once.

        Raises:
            AttachError: Neither command could be attached.
        """
        command = command or DEFAULT_COMMAND
        session = Session(client, container_id, command)
        session.state = SessionState.ATTACHING

        attempts = [command]
        if self.fallback_command and self.fallback_command != command:
            attempts.append(self.fallback_command)

        last_error: Optional[BaseException] = None
        for cmd in attempts:
            logger.debug(f"Attaching to {container_id} on {client.host}: {cmd}")
            try:
                exec_id = client.exec_create(container_id, cmd)
                stream = client.exec_attach(exec_id)
            except (DockerException, OSError) as e:
                last_error = e
                logger.warning(f"Exec {cmd} in {container_id} failed: {e}")
                continue

            if self._failed_to_start(client, exec_id):
                stream.close()
                last_error = AttachError(f"{' '.join(cmd)} could not be started", container_id)
                logger.warning(f"Exec {cmd} in {container_id} did not start")
                continue

            session.exec_id = exec_id
            session.stream = stream
            session.command = cmd
            logger.info(f"Attached to {container_id} on {client.host} ({' '.join(cmd)})")
            return session

        session.state = SessionState.ERRORED
        raise AttachError(
            f"Failed to attach to container {container_id} on {client.host}: {last_error}",
            container_id,
        ) from last_error

    def _failed_to_start(self, client: ExecClient, exec_id: str) -> bool:
        """Whether the exec exited with a command-not-runnable code."""
        for _ in range(EXEC_START_CHECKS):
            try:
                info = client.exec_inspect(exec_id)
            except (DockerException, OSError) as e:
                logger.debug(f"Exec inspect failed: {e}")
                return False
            if info.get("Running"):
                return False
            exit_code = info.get("ExitCode")
            if exit_code is not None:
                return exit_code in EXEC_NOT_STARTED_CODES
            time.sleep(EXEC_START_CHECK_INTERVAL)
        return False

    def start(
        self,
        session: Session,
        terminal: Terminal,
        input_reader: InputReader,
        output: Callable[[bytes], None],
        on_event: Optional[EventCallback] = None,
    ) -> TerminalEvent:
        """Take over the terminal and pump bytes until the session ends.

        Returns the terminal event: Detached, Closed or Errored.
        """
        if session.state != SessionState.ATTACHING or session.stream is None:
            raise ValueError(f"Session is not attached: {session!r}")

        session._terminal = terminal
        session._input = input_reader
        session._output = output
        session._on_event = on_event

        try:
            session.terminal_mode = terminal.capture()
            session._mode_captured = True
            terminal.make_raw()
        except (termios.error, OSError) as e:
            session._teardown(Errored(StreamError(f"Failed to enter raw mode: {e}")))
            input_reader.release()
            return session.outcome

        # Runs the listener right away if the connection is already gone
        session.client.add_close_listener(session._on_tunnel_down)
        with session._teardown_lock:
            if not session._torn_down:
                session.state = SessionState.ACTIVE
        if session.state != SessionState.ACTIVE:
            session._finished.wait()
            input_reader.release()
            return session.outcome

        pumps = [
            threading.Thread(
                target=self._pump_input, args=(session,), name="pump-input", daemon=True
            ),
            threading.Thread(
                target=self._pump_output, args=(session,), name="pump-output", daemon=True
            ),
        ]
        for pump in pumps:
            pump.start()

        session._finished.wait()
        for pump in pumps:
            pump.join()
        input_reader.release()
        return session.outcome

    def _pump_input(self, session: Session) -> None:
        while True:
            try:
                item = session._input.read()
            except OSError as e:
                session._teardown(Errored(StreamError(f"Reading local input failed: {e}")))
                return

            if item is None:
                # Local EOF, or the reader was closed by teardown
                session._teardown(Detached())
                return

            if isinstance(item, KeyEvent):
                data = encode_key(item)
                detach = data is None
            else:
                data, detach = split_detach(item)

            if data:
                try:
                    session.stream.sendall(data)
                except OSError as e:
                    session._teardown(Errored(StreamError(f"Writing to container failed: {e}")))
                    return

            if detach:
                session._teardown(Detached())
                return

    def _pump_output(self, session: Session) -> None:
        while True:
            try:
                data = session.stream.recv(READ_CHUNK_SIZE)
            except OSError as e:
                session._teardown(Errored(StreamError(f"Reading from container failed: {e}")))
                return

            if not data:
                session._teardown(Closed())
                return

            try:
                session._output(data)
            except OSError as e:
                session._teardown(Errored(StreamError(f"Writing local output failed: {e}")))
                return
            session._emit(OutputChunk(data))

    def resize(self, session: Session, cols: int, rows: int) -> "Future[bool]":
        """Resize the remote TTY in the background.

        Never blocks the pumps and never fails the session; the future
        resolves to whether the call succeeded. After ``close()`` it
        resolves to False without a call.
        """
        if not self._closed:
            try:
                return self._resize_pool.submit(self._resize, session, cols, rows)
            except RuntimeError:
                pass
        logger.debug(f"Bridge closed, not resizing {session.container_id}")
        skipped: "Future[bool]" = Future()
        skipped.set_result(False)
        return skipped

    def _resize(self, session: Session, cols: int, rows: int) -> bool:
        if session.exec_id is None:
            return False
        try:
            session.client.exec_resize(session.exec_id, width=cols, height=rows)
        except (DockerException, OSError) as e:
            error = ResizeError(f"Resize of {session.container_id} to {cols}x{rows} failed: {e}")
            logger.warning(str(error))
            return False
        logger.debug(f"Resized {session.container_id} to {cols}x{rows}")
        return True


@dataclass(frozen=True)
class Attached:
    session: Session


@dataclass(frozen=True)
class Failed:
    error: BaseException


AttachOutcome = Union[Attached, Failed]


def attach_request(
    pool: Any,
    bridge: SessionBridge,
    host: str,
    container_id: str,
    command: Optional[List[str]] = None,
) -> AttachOutcome:
    """Connect to ``host`` and attach to ``container_id``; never raises."""
    try:
        client = pool.client_for(host)
        return Attached(bridge.attach(client, container_id, command))
    except (HostConnectionError, AttachError) as e:
        logger.warning(f"Attach to {container_id} on {host} failed: {e}")
        return Failed(e)
