# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Browser for a live Docker Swarm cluster.

Queries go to the cluster's manager host; attaching goes to the node that
runs the task. Both reach Docker through the pool's SSH tunnels.
"""

import logging
from typing import Dict, List, Optional

from swarmbrowse.browser import first_running_task
from swarmbrowse.core.bridge import Session, SessionBridge
from swarmbrowse.core.pool import HostConnectionPool
from swarmbrowse.errors import AttachError, ConfigError
from swarmbrowse.models.cluster import Cluster, Node
from swarmbrowse.models.workload import Service, Stack, Task, TaskState

logger = logging.getLogger(__name__)

STACK_LABEL = "com.docker.stack.namespace"


class SwarmBrowser:
    def __init__(
        self,
        cluster: Cluster,
        pool: HostConnectionPool,
        bridge: Optional[SessionBridge] = None,
    ):
        self.cluster = cluster
        self.pool = pool
        self.bridge = bridge or SessionBridge()

    def _api(self):
        return self.pool.client_for(self.cluster.host).client.api

    def list_stacks(self) -> List[Stack]:
        names = set()
        for service in self._api().services(status=True):
            name = service["Spec"].get("Labels", {}).get(STACK_LABEL)
            if name:
                names.add(name)
        return [Stack(name=name) for name in sorted(names)]

    def list_services(self, stack: Stack) -> List[Service]:
        raw_services = self._api().services(
            filters={"label": f"{STACK_LABEL}={stack.name}"}, status=True
        )
        services = []
        for raw in raw_services:
            status = raw.get("ServiceStatus", {})
            replicated = raw["Spec"].get("Mode", {}).get("Replicated")
            desired = replicated.get("Replicas", 0) if replicated else status.get("DesiredTasks", 0)
            services.append(
                Service(
                    id=raw["ID"],
                    name=raw["Spec"]["Name"],
                    running_tasks=status.get("RunningTasks", 0),
                    desired_tasks=desired,
                    stack=stack,
                )
            )
        return sorted(services, key=lambda s: s.name)

    def list_tasks(self, service: Service) -> List[Task]:
        """Tasks of ``service`` that should be running.

        Raises:
            ConfigError: A task runs on a node missing from the cluster config.
        """
        api = self._api()
        raw_tasks = api.tasks(filters={"service": service.id, "desired-state": "running"})
        nodes: Dict[str, Node] = {}
        tasks = []
        for raw in raw_tasks:
            node_id = raw["NodeID"]
            if node_id not in nodes:
                hostname = api.inspect_node(node_id)["Description"]["Hostname"]
                node = self.cluster.get_node_by_hostname(hostname)
                if node is None:
                    raise ConfigError(
                        f"Node hostname {hostname} is missing in the configuration "
                        f"of cluster {self.cluster.name}"
                    )
                nodes[node_id] = node

            status = raw.get("Status", {})
            tasks.append(
                Task(
                    task_id=raw["ID"],
                    container_id=status.get("ContainerStatus", {}).get("ContainerID", ""),
                    node=nodes[node_id],
                    status=TaskState.parse(status.get("State", "")),
                )
            )
        return tasks

    def attach_to_task(self, task: Task, cmd: Optional[List[str]] = None) -> Session:
        if not task.is_running:
            raise AttachError(
                f"Task {task.task_id} is not running (status: {task.status.value})",
                task.container_id,
            )
        client = self.pool.client_for(task.node.host)
        return self.bridge.attach(client, task.container_id, cmd)

    def attach_to_service(self, service: Service, cmd: Optional[List[str]] = None) -> Session:
        task = first_running_task(self.list_tasks(service))
        if task is None:
            raise AttachError(f"No running task found for service {service.name}")
        logger.debug(f"Attaching to task {task.task_id} of {service.name} on {task.node.host}")
        return self.attach_to_task(task, cmd)

    def close(self) -> None:
        self.bridge.close()
        self.pool.close()
