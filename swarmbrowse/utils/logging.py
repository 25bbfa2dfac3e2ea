# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Logging setup for swarmbrowse.

Everything is written to a rotating log file. The console is reserved for
user-facing CLI messages, and is muted entirely while an interactive
session owns the terminal.

Usage:
    from swarmbrowse.utils.logging import get_logger, configure_logging

    # In the CLI entry point:
    configure_logging(debug=debug)

    # In CLI modules:
    logger = get_logger(__name__)
    logger.info("Connecting")

    # In core modules (never print to the console):
    logger = logging.getLogger(__name__)

Environment Variables:
    SWARMBROWSE_DEBUG=1          Enable debug mode
    SWARMBROWSE_LOG_LEVEL=DEBUG  Set log level (DEBUG, INFO, WARNING, ERROR)
    SWARMBROWSE_LOG_FILE=/path   Override log file location
"""

import logging
import os
import sys
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterator, Optional

from rich.console import Console

from swarmbrowse.paths import HostPaths

_configured = False
_debug_mode = False
_console_muted = False
_log_file: Optional[Path] = None

console = Console()

LOGGER_NAMESPACE = "swarmbrowse"


def _get_log_file() -> Path:
    global _log_file
    if _log_file:
        return _log_file

    env_log_file = os.environ.get("SWARMBROWSE_LOG_FILE")
    if env_log_file:
        _log_file = Path(env_log_file)
    else:
        _log_file = HostPaths.log_dir() / "swarmbrowse.log"
    return _log_file


def is_debug_mode() -> bool:
    """Check if debug mode is enabled."""
    return _debug_mode or os.environ.get("SWARMBROWSE_DEBUG", "").lower() in ("1", "true", "yes")


def configure_logging(
    debug: bool = False,
    log_level: Optional[str] = None,
    log_file: Optional[Path] = None,
) -> None:
    """Configure the swarmbrowse logger hierarchy.

    Call once from the CLI entry point. Later calls are ignored.

    Args:
        debug: Enable debug mode (debug level, debug lines echoed to console)
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Override log file path
    """
    global _configured, _debug_mode, _log_file

    if _configured:
        return

    _debug_mode = debug or is_debug_mode()
    if log_file:
        _log_file = log_file

    if log_level:
        level_name = log_level.upper()
    else:
        level_name = os.environ.get(
            "SWARMBROWSE_LOG_LEVEL", "DEBUG" if _debug_mode else "INFO"
        ).upper()
    level = getattr(logging, level_name, logging.INFO)

    root_logger = logging.getLogger(LOGGER_NAMESPACE)
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.propagate = False

    try:
        path = _get_log_file()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root_logger.addHandler(file_handler)
    except OSError:
        # Can't write log file, keep going without it
        root_logger.addHandler(logging.NullHandler())

    _configured = True
    root_logger.debug(f"Logging configured: level={level_name}, debug={_debug_mode}")


@contextmanager
def console_muted() -> Iterator[None]:
    """Suppress console output while the terminal is handed to a session."""
    global _console_muted
    previous = _console_muted
    _console_muted = True
    try:
        yield
    finally:
        _console_muted = previous


def _console_enabled() -> bool:
    return not _console_muted


class SwarmBrowseLogger:
    """Logger that mirrors user-facing messages to the Rich console."""

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)
        self.console = console

    def debug(self, message: str, console_output: bool = False) -> None:
        self.logger.debug(message)
        if (console_output or is_debug_mode()) and _console_enabled():
            self.console.print(f"[dim][DEBUG] {message}[/dim]")

    def info(self, message: str, console_output: bool = True) -> None:
        self.logger.info(message)
        if console_output and _console_enabled():
            self.console.print(f"[blue]{message}[/blue]")

    def success(self, message: str, console_output: bool = True) -> None:
        self.logger.info(message)
        if console_output and _console_enabled():
            self.console.print(f"[green]✓ {message}[/green]")

    def warning(self, message: str, console_output: bool = True) -> None:
        self.logger.warning(message)
        if console_output and _console_enabled():
            self.console.print(f"[yellow]⚠ {message}[/yellow]")

    def error(
        self,
        message: str,
        exc: Optional[BaseException] = None,
        console_output: bool = True,
    ) -> None:
        """Log an error, optionally with the exception that caused it."""
        if exc:
            self.logger.error(f"{message}: {exc}", exc_info=exc)
            message = f"{message}: {exc}"
        else:
            self.logger.error(message)

        if console_output and _console_enabled():
            self.console.print(f"[red]✗ {message}[/red]")


def get_logger(name: str) -> SwarmBrowseLogger:
    """Get a console-aware logger for a CLI module.

    Safe at import time: handlers live on the namespace logger and are
    installed later by configure_logging().
    """
    if not name.startswith(LOGGER_NAMESPACE):
        name = f"{LOGGER_NAMESPACE}.{name}"
    return SwarmBrowseLogger(name)


def log_startup_info() -> None:
    """Log startup diagnostics (call from the CLI entry point)."""
    logger = get_logger("swarmbrowse.startup")
    logger.debug(f"Python: {sys.version}")
    logger.debug(f"Platform: {sys.platform}")
    logger.debug(f"CWD: {os.getcwd()}")
    logger.debug(f"Log file: {_get_log_file()}")

    for var in ["SWARMBROWSE_DEBUG", "SWARMBROWSE_LOG_LEVEL", "SWARMBROWSE_CONFIG"]:
        value = os.environ.get(var)
        if value:
            logger.debug(f"ENV {var}={value}")
