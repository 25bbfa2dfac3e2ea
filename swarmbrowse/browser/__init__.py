# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Cluster browsers: the stack -> service -> task view of a cluster.

Two implementations share the ClusterBrowser interface:
- SwarmBrowser: a live Swarm cluster reached through SSH tunnels
- DevBrowser: mock data from a YAML file, shells run locally
"""

from typing import List, Optional, Protocol

from swarmbrowse.core.bridge import Session, SessionBridge
from swarmbrowse.models.workload import Service, Stack, Task


class ClusterBrowser(Protocol):
    bridge: SessionBridge

    def list_stacks(self) -> List[Stack]: ...

    def list_services(self, stack: Stack) -> List[Service]: ...

    def list_tasks(self, service: Service) -> List[Task]: ...

    def attach_to_service(self, service: Service, cmd: Optional[List[str]] = None) -> Session: ...

    def attach_to_task(self, task: Task, cmd: Optional[List[str]] = None) -> Session: ...

    def close(self) -> None: ...


def first_running_task(tasks: List[Task]) -> Optional[Task]:
    for task in tasks:
        if task.is_running:
            return task
    return None
