# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Listing commands - clusters, stacks, services and tasks."""

from typing import Optional

import click
from rich.table import Table

from swarmbrowse.cli import cli
from swarmbrowse.cli.helpers import (
    AppContext,
    closing,
    console,
    find_service,
    handle_errors,
    open_browser,
)
from swarmbrowse.models.workload import TaskState

_STATUS_STYLES = {
    TaskState.RUNNING: "green",
    TaskState.PENDING: "yellow",
    TaskState.FAILED: "red",
    TaskState.REJECTED: "red",
}


@cli.command()
@click.pass_obj
@handle_errors
def clusters(app: AppContext):
    """List configured clusters."""
    configured = app.clusters()
    if not configured:
        console.print("[yellow]No clusters configured[/yellow]")
        return

    table = Table(title="Clusters")
    table.add_column("Cluster", style="cyan")
    table.add_column("Name", style="magenta")
    table.add_column("Manager", style="blue")
    table.add_column("Nodes", style="green")

    for key, cluster in configured.items():
        table.add_row(key, cluster.name, cluster.host, ", ".join(cluster.list_nodes()))

    console.print(table)


@cli.command()
@click.argument("cluster", required=False)
@click.pass_obj
@handle_errors
def stacks(app: AppContext, cluster: Optional[str]):
    """List stacks of CLUSTER (default: first configured cluster)."""
    with closing(open_browser(app, cluster)) as browser:
        found = browser.list_stacks()

    if not found:
        console.print("[yellow]No stacks found[/yellow]")
        return

    table = Table(title="Stacks")
    table.add_column("Stack", style="cyan")
    for stack in found:
        table.add_row(stack.name)
    console.print(table)


@cli.command()
@click.argument("cluster")
@click.argument("stack")
@click.pass_obj
@handle_errors
def services(app: AppContext, cluster: str, stack: str):
    """List services of STACK in CLUSTER."""
    with closing(open_browser(app, cluster)) as browser:
        matching = [s for s in browser.list_stacks() if s.name == stack]
        found = browser.list_services(matching[0]) if matching else []

    if not found:
        console.print(f"[yellow]No services found in stack {stack}[/yellow]")
        return

    table = Table(title=f"Services of {stack}")
    table.add_column("Service", style="cyan")
    table.add_column("ID", style="magenta")
    table.add_column("Replicas", style="green")
    for service in found:
        style = "green" if service.running_tasks >= service.desired_tasks else "yellow"
        table.add_row(
            service.name,
            service.id[:12],
            f"[{style}]{service.running_tasks}/{service.desired_tasks}[/{style}]",
        )
    console.print(table)


@cli.command()
@click.argument("cluster")
@click.argument("stack")
@click.argument("service")
@click.pass_obj
@handle_errors
def tasks(app: AppContext, cluster: str, stack: str, service: str):
    """List tasks of SERVICE (name within STACK, or full name)."""
    with closing(open_browser(app, cluster)) as browser:
        found_service = find_service(browser, stack, service)
        found = browser.list_tasks(found_service)

    if not found:
        console.print(f"[yellow]No tasks found for {found_service.name}[/yellow]")
        return

    table = Table(title=f"Tasks of {found_service.name}")
    table.add_column("Task", style="cyan")
    table.add_column("Container", style="magenta")
    table.add_column("Node", style="blue")
    table.add_column("Status")
    for task in found:
        style = _STATUS_STYLES.get(task.status, "dim")
        table.add_row(
            task.task_id[:12],
            task.container_id[:12],
            task.node.hostname,
            f"[{style}]{task.status.value}[/{style}]",
        )
    console.print(table)
