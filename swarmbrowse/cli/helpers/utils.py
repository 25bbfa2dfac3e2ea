# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Utility functions for CLI helpers."""

import functools
import sys
from typing import Callable

from docker.errors import DockerException
from rich.console import Console
from rich.panel import Panel

from swarmbrowse.errors import (
    AttachError,
    ConfigError,
    HostConnectionError,
    PoolCloseError,
    SwarmBrowseError,
)

_console = Console()

_ERROR_TITLES = (
    (ConfigError, "Configuration Error"),
    (HostConnectionError, "Connection Error"),
    (AttachError, "Attach Error"),
    (PoolCloseError, "Cleanup Error"),
)


def show_error_panel(title: str, message: str) -> None:
    _console.print(Panel(message, title=f"[red]{title}[/red]", border_style="red"))


def _title_for(exc: SwarmBrowseError) -> str:
    for error_type, title in _ERROR_TITLES:
        if isinstance(exc, error_type):
            return title
    return "Error"


def handle_errors(func: Callable) -> Callable:
    """Decorator that wraps CLI commands with standard error handling.

    Catches exceptions, prints error with nice formatting, and exits with code 1.
    Special handling for:
    - SwarmBrowseError: Panel titled by error type, with hint if provided
    - DockerException: "Docker Error" panel
    - ClickException: Left to click
    - Other exceptions: Shows generic error panel

    Usage:
        @cli.command()
        @handle_errors
        def my_command():
            ...
    """
    import click

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SystemExit:
            raise
        except SwarmBrowseError as exc:
            content = str(exc)
            if exc.hint:
                content += f"\n\n[blue]Try:[/blue]\n  {exc.hint}"
            show_error_panel(_title_for(exc), content)
            sys.exit(1)
        except DockerException as exc:
            show_error_panel("Docker Error", str(exc))
            sys.exit(1)
        except click.ClickException:
            raise
        except Exception as exc:
            show_error_panel("Error", str(exc))
            sys.exit(1)

    return wrapper
