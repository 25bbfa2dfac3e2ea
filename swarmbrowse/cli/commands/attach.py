# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Interactive commands - attach a shell to a service task or container."""

import os
import shlex
import signal
import threading
from typing import Optional, Tuple

import click

from swarmbrowse.cli import cli
from swarmbrowse.cli.helpers import (
    AppContext,
    closing,
    console,
    find_service,
    find_task,
    handle_errors,
    open_browser,
)
from swarmbrowse.core.bridge import (
    Attached,
    Closed,
    Detached,
    Session,
    SessionBridge,
    TerminalEvent,
    attach_request,
)
from swarmbrowse.core.streams import FdWriter, TerminalInputReader
from swarmbrowse.errors import PoolCloseError, SwarmBrowseError
from swarmbrowse.utils.logging import console_muted, get_logger
from swarmbrowse.utils.terminal import LocalTerminal, reset_terminal

logger = get_logger(__name__)


class WinchForwarder:
    """Resizes the remote TTY whenever the local window changes.

    The SIGWINCH handler only writes a byte to a pipe; a worker thread
    reads it and submits the resize.
    """

    def __init__(self, bridge: SessionBridge, session: Session, terminal: LocalTerminal):
        self._bridge = bridge
        self._session = session
        self._terminal = terminal
        self._read_fd, self._write_fd = os.pipe()
        os.set_blocking(self._write_fd, False)
        self._thread = threading.Thread(target=self._run, name="winch", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def notify(self, signum=None, frame=None) -> None:
        try:
            os.write(self._write_fd, b"w")
        except OSError:
            # pipe full, a resize is already pending
            pass

    def _run(self) -> None:
        try:
            while os.read(self._read_fd, 512):
                self._bridge.resize(self._session, *self._terminal.size())
        finally:
            os.close(self._read_fd)

    def stop(self) -> None:
        os.close(self._write_fd)
        self._thread.join(timeout=1)


def run_session(bridge: SessionBridge, session: Session) -> TerminalEvent:
    """Hand the local terminal to ``session`` until it ends.

    The remote TTY follows the local window size via SIGWINCH.
    """
    terminal = LocalTerminal()
    if not terminal.is_tty():
        raise SwarmBrowseError(
            "stdin is not a terminal", hint="run swarmbrowse from an interactive shell"
        )

    reader = TerminalInputReader(terminal.fd)
    console.print(
        f"[dim]Attached to {session.container_id[:12]} on {session.client.host}, "
        f"press Ctrl+\\ to detach[/dim]"
    )
    bridge.resize(session, *terminal.size())
    forwarder = WinchForwarder(bridge, session, terminal)
    forwarder.start()
    previous = signal.signal(signal.SIGWINCH, forwarder.notify)
    try:
        with console_muted():
            outcome = bridge.start(session, terminal, reader, FdWriter(terminal.output_fd))
    finally:
        signal.signal(signal.SIGWINCH, previous)
        forwarder.stop()
        reset_terminal()

    _report(outcome)
    return outcome


def _report(outcome: TerminalEvent) -> None:
    console.print()
    if isinstance(outcome, Detached):
        logger.info("Detached, the remote shell keeps running")
    elif isinstance(outcome, Closed):
        logger.info("Session ended")
    else:
        logger.error("Session failed", exc=outcome.error)


def _parse_shell(shell: Optional[str]):
    return shlex.split(shell) if shell else None


@cli.command()
@click.argument("cluster")
@click.argument("stack")
@click.argument("service")
@click.option("--task", "task_id", help="Task id (or prefix) instead of the first running task.")
@click.option("--shell", help='Command to run, e.g. "/bin/zsh -l" (default: /bin/bash, then /bin/sh).')
@click.pass_obj
@handle_errors
def attach(app: AppContext, cluster: str, stack: str, service: str, task_id, shell):
    """Open a shell in a running task of SERVICE.

    Examples:
        swarmbrowse attach prod web api
        swarmbrowse attach prod web web_api --task k3j2 --shell /bin/sh
    """
    cmd = _parse_shell(shell)
    with closing(open_browser(app, cluster)) as browser:
        found = find_service(browser, stack, service)
        if task_id:
            task = find_task(browser.list_tasks(found), task_id)
            session = browser.attach_to_task(task, cmd)
        else:
            session = browser.attach_to_service(found, cmd)
        run_session(browser.bridge, session)


@cli.command("exec")
@click.argument("host")
@click.argument("container")
@click.argument("command", nargs=-1)
@click.pass_obj
@handle_errors
def exec_command(app: AppContext, host: str, container: str, command: Tuple[str, ...]):
    """Open COMMAND in CONTAINER on HOST (ssh host or alias).

    Examples:
        swarmbrowse exec node-1 3f2a9c /bin/sh
    """
    pool = app.pool()
    bridge = SessionBridge()
    try:
        result = attach_request(pool, bridge, host, container, list(command) or None)
        if not isinstance(result, Attached):
            raise result.error
        run_session(bridge, result.session)
    finally:
        bridge.close()
        try:
            pool.close()
        except PoolCloseError as e:
            logger.warning(str(e))
