# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Exception types raised by swarmbrowse.

Connection and attach failures end a single attach attempt, stream
failures end a session, resize failures are only logged. None of them
are meant to terminate the program; the CLI renders them via
``handle_errors``.
"""

from typing import List, Optional, Sequence


class SwarmBrowseError(Exception):
    """Base class for all swarmbrowse errors."""

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.hint = hint


class HostConnectionError(SwarmBrowseError, ConnectionError):
    """A tunnel to a host could not be opened."""

    def __init__(self, host: str, message: str, hint: Optional[str] = None):
        super().__init__(message, hint=hint)
        self.host = host


class TunnelTimeout(HostConnectionError):
    """The forwarded socket never appeared within the timeout."""

    def __init__(self, host: str, socket_path: str, timeout: float):
        super().__init__(
            host,
            f"Timed out after {timeout:.1f}s waiting for Docker socket of {host} at {socket_path}",
            hint=f"ssh {host} docker info",
        )
        self.socket_path = socket_path
        self.timeout = timeout


class SpawnFailed(HostConnectionError):
    """The ssh process could not be started or died while connecting."""

    def __init__(
        self,
        host: str,
        reason: str,
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        message = f"Failed to start SSH tunnel to {host}: {reason}"
        if stderr:
            message += f" ({stderr.strip()})"
        super().__init__(host, message, hint=f"ssh {host}")
        self.reason = reason
        self.returncode = returncode
        self.stderr = stderr


class AttachError(SwarmBrowseError):
    """Creating or attaching to a remote exec failed."""

    def __init__(self, message: str, container_id: Optional[str] = None):
        super().__init__(message)
        self.container_id = container_id


class StreamError(SwarmBrowseError):
    """I/O failure on the stream of an active session."""


class ResizeError(SwarmBrowseError):
    """Remote TTY resize failed. Never fatal."""


class ConfigError(SwarmBrowseError):
    """A configuration file or a reference inside it is missing or invalid."""


class PoolCloseError(SwarmBrowseError):
    """One or more hosts failed to close cleanly.

    Every host is still attempted; ``errors`` holds all failures.
    """

    def __init__(self, errors: Sequence[Exception]):
        self.errors: List[Exception] = list(errors)
        details = "; ".join(str(e) for e in self.errors)
        super().__init__(f"{len(self.errors)} host(s) failed to close: {details}")
