# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Pydantic models for clusters.yml and the offline dev config."""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from swarmbrowse.paths import BinPaths, RemotePaths


class Node(BaseModel):
    """A cluster node.

    host: address ssh can reach (alias from ~/.ssh/config works)
    hostname: hostname the node reports to Swarm
    """

    model_config = ConfigDict(frozen=True)

    host: str
    hostname: str


class Cluster(BaseModel):
    """A Swarm cluster: a manager host to query plus its known nodes."""

    name: str
    host: str
    nodes: Dict[str, Node] = Field(default_factory=dict)

    def get_node_by_hostname(self, hostname: str) -> Optional[Node]:
        for node in self.nodes.values():
            if node.hostname == hostname:
                return node
        return None

    def list_nodes(self) -> List[str]:
        return list(self.nodes.keys())


class TunnelSettings(BaseModel):
    """How SSH forwards to the nodes' Docker sockets are opened."""

    ssh_binary: str = BinPaths.SSH
    ssh_options: List[str] = Field(default_factory=list)
    remote_socket: str = RemotePaths.DOCKER_SOCKET
    timeout_seconds: float = Field(default=5.0, gt=0)
    poll_interval_seconds: float = Field(default=0.5, gt=0)
    close_timeout_seconds: float = Field(default=2.0, gt=0)


class ClustersConfig(BaseModel):
    """Top-level clusters.yml document."""

    clusters: Dict[str, Cluster] = Field(default_factory=dict)
    tunnel: TunnelSettings = Field(default_factory=TunnelSettings)

    def get_cluster(self, name: str) -> Optional[Cluster]:
        return self.clusters.get(name)

    def list_clusters(self) -> List[str]:
        return list(self.clusters.keys())


class TaskConfig(BaseModel):
    id: Optional[str] = None
    container_id: Optional[str] = None
    node: str = ""
    status: str = "running"


class ServiceConfig(BaseModel):
    id: Optional[str] = None
    name: str
    desired_tasks: int = 1
    running_tasks: int = 1
    tasks: List[TaskConfig] = Field(default_factory=list)


class StackConfig(BaseModel):
    name: str
    cluster: str
    services: List[ServiceConfig] = Field(default_factory=list)


class DevConfig(BaseModel):
    """Mock data for browsing without a real cluster."""

    clusters: Dict[str, Cluster] = Field(default_factory=dict)
    stacks: List[StackConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _normalize(self) -> "DevConfig":
        for stack in self.stacks:
            cluster = self.clusters.get(stack.cluster)
            if cluster is None:
                raise ValueError(
                    f"stack '{stack.name}' references non-existent cluster '{stack.cluster}'"
                )
            for index, service in enumerate(stack.services, start=1):
                if not service.id:
                    service.id = f"{stack.name}-{service.name}-{index:03d}"
                service.running_tasks = min(service.running_tasks, service.desired_tasks)
                for task in service.tasks:
                    if task.node and task.node not in cluster.nodes:
                        raise ValueError(
                            f"task in service '{service.name}' references non-existent node "
                            f"'{task.node}' in cluster '{stack.cluster}'"
                        )
        return self

    def stacks_for_cluster(self, cluster_name: str) -> List[StackConfig]:
        return [stack for stack in self.stacks if stack.cluster == cluster_name]
