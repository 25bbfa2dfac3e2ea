# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Local terminal control: mode snapshot, raw mode, restore and size."""

import os
import sys
import termios
import tty
from typing import Any, List, Optional, Tuple

# Modes a remote shell may leave enabled when the stream drops mid-session
MODE_RESET_SEQUENCES = (
    "\033[?2004l"  # Disable bracketed paste
    "\033[?1006l"  # Disable SGR extended mouse mode
    "\033[?1003l"  # Disable any-event mouse tracking
    "\033[?1002l"  # Disable button-event mouse tracking
    "\033[?1000l"  # Disable basic mouse tracking
    "\033[?1049l"  # Leave alternate screen
    "\033[?25h"  # Show cursor
    "\033[0m"  # Reset all attributes
)

DEFAULT_SIZE = (80, 24)

TerminalMode = List[Any]


class LocalTerminal:
    """The operator's terminal, addressed through a tty file descriptor."""

    def __init__(self, fd: Optional[int] = None, output_fd: Optional[int] = None):
        self.fd = sys.stdin.fileno() if fd is None else fd
        self.output_fd = sys.stdout.fileno() if output_fd is None else output_fd

    def is_tty(self) -> bool:
        return os.isatty(self.fd)

    def capture(self) -> TerminalMode:
        """Snapshot the current termios attributes."""
        return termios.tcgetattr(self.fd)

    def make_raw(self) -> None:
        """Switch to raw mode: no echo, no line buffering, no signal keys."""
        tty.setraw(self.fd, termios.TCSANOW)

    def restore(self, mode: TerminalMode) -> None:
        termios.tcsetattr(self.fd, termios.TCSADRAIN, mode)

    def size(self) -> Tuple[int, int]:
        """Return (columns, rows), defaulting to 80x24."""
        for fd in (self.output_fd, self.fd):
            try:
                size = os.get_terminal_size(fd)
                return size.columns, size.lines
            except OSError:
                continue
        return DEFAULT_SIZE


def reset_terminal() -> None:
    """Turn off modes a remote program may have left enabled.

    Safe to call even if the terminal is already in normal mode.
    """
    try:
        sys.stdout.write(MODE_RESET_SEQUENCES)
        sys.stdout.flush()
    except OSError:
        # stdout is not a terminal
        pass
