# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Swarm workload units as seen by the browser: stack, service, task."""

from dataclasses import dataclass
from enum import Enum

from swarmbrowse.models.cluster import Node


class TaskState(str, Enum):
    """Swarm task states that the browser distinguishes."""

    RUNNING = "running"
    PENDING = "pending"
    FAILED = "failed"
    COMPLETE = "complete"
    SHUTDOWN = "shutdown"
    REJECTED = "rejected"
    ORPHANED = "orphaned"
    REMOVE = "remove"

    @classmethod
    def parse(cls, value: str) -> "TaskState":
        """Map a Docker task state string; unknown values count as running."""
        try:
            return cls(value)
        except ValueError:
            return cls.RUNNING


@dataclass(frozen=True)
class Stack:
    name: str


@dataclass(frozen=True)
class Service:
    id: str
    name: str
    running_tasks: int
    desired_tasks: int
    stack: Stack

    def __str__(self) -> str:
        return f"{self.name} ({self.running_tasks}/{self.desired_tasks} replicas)"


@dataclass(frozen=True)
class Task:
    task_id: str
    container_id: str
    node: Node
    status: TaskState

    @property
    def is_running(self) -> bool:
        return self.status == TaskState.RUNNING
