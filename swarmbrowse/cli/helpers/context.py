# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""CLI options shared by all commands, and browser construction."""

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from swarmbrowse.browser import ClusterBrowser
from swarmbrowse.browser.dev import DevBrowser
from swarmbrowse.browser.swarm import SwarmBrowser
from swarmbrowse.config import load_clusters_config, load_dev_config, resolve_cluster
from swarmbrowse.core.pool import HostConnectionPool
from swarmbrowse.core.tunnel import TunnelManager
from swarmbrowse.errors import AttachError, ConfigError, PoolCloseError
from swarmbrowse.models.cluster import Cluster, TunnelSettings
from swarmbrowse.models.workload import Service, Stack, Task
from swarmbrowse.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AppContext:
    """Global options, stored on click's context object."""

    config_path: Optional[Path] = None
    dev_config_path: Optional[Path] = None

    @property
    def dev_mode(self) -> bool:
        return self.dev_config_path is not None

    def clusters(self) -> Dict[str, Cluster]:
        if self.dev_mode:
            return load_dev_config(self.dev_config_path).clusters
        return load_clusters_config(self.config_path).clusters

    def tunnel_settings(self) -> TunnelSettings:
        if self.dev_mode:
            return TunnelSettings()
        return load_clusters_config(self.config_path).tunnel

    def pool(self) -> HostConnectionPool:
        return HostConnectionPool(TunnelManager(self.tunnel_settings()))


def open_browser(app: AppContext, cluster_name: Optional[str]) -> ClusterBrowser:
    """DevBrowser when a dev config was given, SwarmBrowser otherwise."""
    if app.dev_mode:
        dev_config = load_dev_config(app.dev_config_path)
        name = cluster_name or next(iter(dev_config.clusters), None)
        if name is None:
            raise ConfigError(f"No clusters in {app.dev_config_path}")
        logger.debug(f"Using dev browser for cluster {name}")
        return DevBrowser(name, dev_config)

    config = load_clusters_config(app.config_path)
    cluster = resolve_cluster(config.clusters, cluster_name)
    return SwarmBrowser(cluster, HostConnectionPool(TunnelManager(config.tunnel)))


@contextmanager
def closing(browser: ClusterBrowser) -> Iterator[ClusterBrowser]:
    """Close the browser on exit; close failures are reported, not raised."""
    try:
        yield browser
    finally:
        try:
            browser.close()
        except PoolCloseError as e:
            logger.warning(str(e))


def find_stack(browser: ClusterBrowser, name: str) -> Stack:
    for stack in browser.list_stacks():
        if stack.name == name:
            return stack
    raise ConfigError(f"Stack '{name}' not found")


def find_service(browser: ClusterBrowser, stack_name: str, name: str) -> Service:
    """Match a service by full name or by its name within the stack."""
    stack = find_stack(browser, stack_name)
    services = browser.list_services(stack)
    for service in services:
        if service.name in (name, f"{stack_name}_{name}") or service.id == name:
            return service
    available = ", ".join(s.name for s in services) or "none"
    raise ConfigError(f"Service '{name}' not found in stack {stack_name} (available: {available})")


def find_task(tasks: List[Task], task_id: str) -> Task:
    """Match a task by id or id prefix."""
    matches = [task for task in tasks if task.task_id.startswith(task_id)]
    if not matches:
        raise AttachError(f"Task '{task_id}' not found")
    if len(matches) > 1:
        raise AttachError(f"Task id '{task_id}' is ambiguous ({len(matches)} matches)")
    return matches[0]
