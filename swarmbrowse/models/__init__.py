# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Configuration and workload models."""

from swarmbrowse.models.cluster import (
    Cluster,
    ClustersConfig,
    DevConfig,
    Node,
    ServiceConfig,
    StackConfig,
    TaskConfig,
    TunnelSettings,
)
from swarmbrowse.models.workload import Service, Stack, Task, TaskState

__all__ = [
    "Cluster",
    "ClustersConfig",
    "DevConfig",
    "Node",
    "Service",
    "ServiceConfig",
    "Stack",
    "StackConfig",
    "Task",
    "TaskConfig",
    "TaskState",
    "TunnelSettings",
]
