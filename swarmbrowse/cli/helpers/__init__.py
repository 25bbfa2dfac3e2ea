# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Shared helpers for the swarmbrowse CLI.

- utils.py: error handling for commands
- context.py: CLI options and browser construction

All functions are re-exported here for convenience.
"""

from rich.console import Console

console = Console()

from swarmbrowse.cli.helpers.utils import (  # noqa: E402
    handle_errors,
    show_error_panel,
)

from swarmbrowse.cli.helpers.context import (  # noqa: E402
    AppContext,
    closing,
    find_service,
    find_task,
    open_browser,
)
