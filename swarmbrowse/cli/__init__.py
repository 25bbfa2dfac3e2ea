# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""swarmbrowse CLI package."""

from pathlib import Path

import click

from swarmbrowse import __version__
from swarmbrowse.cli.helpers import AppContext
from swarmbrowse.utils.logging import configure_logging, log_startup_info


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="swarmbrowse")
@click.option("--debug", is_flag=True, help="Verbose logging, debug lines on the console.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="clusters.yml to use.",
)
@click.option(
    "--dev-config",
    "dev_config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    envvar="SWARMBROWSE_DEV_CONFIG",
    help="Browse mock data from this file; shells run locally.",
)
@click.pass_context
def cli(ctx, debug, config_path, dev_config_path):
    """swarmbrowse - Browse Docker Swarm clusters and attach to running tasks."""
    configure_logging(debug=debug)
    log_startup_info()
    ctx.obj = AppContext(config_path=config_path, dev_config_path=dev_config_path)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


def main():
    """Main entry point."""
    cli()


from swarmbrowse.cli.commands import browse  # noqa: E402,F401
from swarmbrowse.cli.commands import attach  # noqa: E402,F401
