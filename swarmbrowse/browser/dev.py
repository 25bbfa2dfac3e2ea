# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Offline browser backed by a YAML dev config.

Listing returns mock stacks, services and tasks. Attaching runs a local
shell whose stdio is one end of a socketpair; the other end is handed to the
session bridge like a real exec stream, so the whole terminal path can be
exercised without a cluster.
"""

import logging
import os
import shutil
import socket
import subprocess
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from swarmbrowse.browser import first_running_task
from swarmbrowse.core.bridge import Session, SessionBridge
from swarmbrowse.core.streams import ExecStream
from swarmbrowse.errors import AttachError, ConfigError
from swarmbrowse.models.cluster import Cluster, DevConfig, Node, ServiceConfig
from swarmbrowse.models.workload import Service, Stack, Task, TaskState

logger = logging.getLogger(__name__)

BANNER_RULE = "=" * 40


def default_shell() -> List[str]:
    """bash when available, sh otherwise."""
    return ["bash"] if shutil.which("bash") else ["sh"]


def _short(value: str) -> str:
    return value[:12]


@dataclass
class _LocalExec:
    cmd: List[str]
    process: Optional[subprocess.Popen] = None
    stream: Optional[ExecStream] = None


@dataclass
class LocalExecClient:
    """Exec interface that runs commands on this machine.

    Every exec gets the same extra environment and banner.
    """

    host: str
    env: Dict[str, str] = field(default_factory=dict)
    banner: str = ""

    def __post_init__(self):
        self._execs: Dict[str, _LocalExec] = {}
        self._listeners: List[Callable[[Any], None]] = []
        self._lock = threading.Lock()
        self._closed = False

    def exec_create(self, container_id: str, cmd: List[str]) -> str:
        exec_id = uuid.uuid4().hex
        with self._lock:
            self._execs[exec_id] = _LocalExec(cmd=list(cmd))
        return exec_id

    def exec_attach(self, exec_id: str) -> ExecStream:
        """Start the command with its stdio on a fresh socketpair.

        Raises:
            OSError: The command could not be started.
        """
        local = self._execs[exec_id]
        ours, theirs = socket.socketpair()
        try:
            if self.banner:
                theirs.sendall(self.banner.encode())
            local.process = subprocess.Popen(
                local.cmd,
                stdin=theirs,
                stdout=theirs,
                stderr=theirs,
                env={**os.environ, **self.env},
                start_new_session=True,
            )
        except OSError:
            ours.close()
            raise
        finally:
            theirs.close()

        local.stream = ExecStream(ours)
        logger.debug(f"Started local {local.cmd} (pid {local.process.pid}) for {self.host}")
        return local.stream

    def exec_inspect(self, exec_id: str) -> Dict[str, Any]:
        process = self._execs[exec_id].process
        if process is None:
            return {"Running": False, "ExitCode": None}
        returncode = process.poll()
        return {"Running": returncode is None, "ExitCode": returncode, "Pid": process.pid}

    def exec_resize(self, exec_id: str, width: int, height: int) -> None:
        # Pipes have no window size
        return None

    def add_close_listener(self, listener: Callable[[Any], None]) -> None:
        with self._lock:
            if not self._closed:
                self._listeners.append(listener)
                return
        listener(self)

    def remove_close_listener(self, listener: Callable[[Any], None]) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def close(self) -> None:
        """Close every stream and stop every process started here."""
        with self._lock:
            self._closed = True
            execs = list(self._execs.values())
            self._execs.clear()
            listeners = list(self._listeners)
            self._listeners.clear()

        for listener in listeners:
            listener(self)
        for local in execs:
            if local.stream is not None:
                local.stream.close()
            if local.process is not None and local.process.poll() is None:
                local.process.terminate()
                try:
                    local.process.wait(timeout=2)
                except subprocess.TimeoutExpired:
                    local.process.kill()


class DevBrowser:
    def __init__(
        self,
        cluster_name: str,
        dev_config: DevConfig,
        bridge: Optional[SessionBridge] = None,
    ):
        if cluster_name not in dev_config.clusters:
            raise ConfigError(f"Cluster '{cluster_name}' not found in dev config")
        self.cluster_name = cluster_name
        self.config = dev_config
        self.bridge = bridge or SessionBridge()
        self._clients: List[LocalExecClient] = []

    @property
    def cluster(self) -> Cluster:
        return self.config.clusters[self.cluster_name]

    def list_stacks(self) -> List[Stack]:
        return [Stack(name=s.name) for s in self.config.stacks_for_cluster(self.cluster_name)]

    def list_services(self, stack: Stack) -> List[Service]:
        for stack_config in self.config.stacks_for_cluster(self.cluster_name):
            if stack_config.name == stack.name:
                return [
                    Service(
                        id=svc.id,
                        name=f"{stack.name}_{svc.name}",
                        running_tasks=svc.running_tasks,
                        desired_tasks=svc.desired_tasks,
                        stack=stack,
                    )
                    for svc in stack_config.services
                ]
        return []

    def _service_config(self, service: Service) -> Optional[ServiceConfig]:
        for stack_config in self.config.stacks_for_cluster(self.cluster_name):
            if stack_config.name != service.stack.name:
                continue
            for svc in stack_config.services:
                if svc.id == service.id:
                    return svc
        return None

    def list_tasks(self, service: Service) -> List[Task]:
        """Configured tasks, or tasks generated from the service's counts.

        Generated tasks are running up to running_tasks, then alternate
        between pending and failed up to desired_tasks. Nodes are assigned
        round-robin.
        """
        svc = self._service_config(service)
        nodes: List[Node] = list(self.cluster.nodes.values())
        if svc is None or not nodes:
            return []

        def ids(index: int):
            number = index + 1
            return (
                f"{service.id}-task-{number:03d}",
                f"container-{service.id}-{number:03d}",
            )

        tasks = []
        if svc.tasks:
            for index, task_config in enumerate(svc.tasks):
                task_id, container_id = ids(index)
                if task_config.node:
                    node = self.cluster.nodes[task_config.node]
                else:
                    node = nodes[index % len(nodes)]
                tasks.append(
                    Task(
                        task_id=task_config.id or task_id,
                        container_id=task_config.container_id or container_id,
                        node=node,
                        status=TaskState.parse(task_config.status),
                    )
                )
            return tasks

        for index in range(svc.desired_tasks):
            task_id, container_id = ids(index)
            if index < svc.running_tasks:
                status = TaskState.RUNNING
            elif index % 2 == 1:
                status = TaskState.FAILED
            else:
                status = TaskState.PENDING
            tasks.append(
                Task(
                    task_id=task_id,
                    container_id=container_id,
                    node=nodes[index % len(nodes)],
                    status=status,
                )
            )
        return tasks

    def _attach(
        self, task: Task, cmd: Optional[List[str]], env: Dict[str, str], banner_lines: List[str]
    ) -> Session:
        env = {
            "MOCK_TASK_ID": task.task_id,
            "MOCK_CONTAINER_ID": task.container_id,
            "MOCK_NODE_HOST": task.node.host,
            "MOCK_CLUSTER": self.cluster_name,
            "MOCK_ENVIRONMENT": "development",
            **env,
        }
        banner = "\n".join(["", BANNER_RULE, *banner_lines, BANNER_RULE, "", ""])
        client = LocalExecClient(host=task.node.host, env=env, banner=banner)
        self._clients.append(client)
        return self.bridge.attach(client, task.container_id, cmd or default_shell())

    def attach_to_service(self, service: Service, cmd: Optional[List[str]] = None) -> Session:
        task = first_running_task(self.list_tasks(service))
        if task is None:
            raise AttachError(f"No running task found for service {service.name}")
        return self._attach(
            task,
            cmd,
            {
                "MOCK_SERVICE_NAME": service.name,
                "MOCK_STACK_NAME": service.stack.name,
                "PS1": "[DEV-CONTAINER]$ ",
            },
            [
                "  Development Browser - Mock Container",
                f"  Cluster: {self.cluster_name}",
                f"  Stack: {service.stack.name}",
                f"  Service: {service.name}",
                f"  Task: {task.task_id}",
                f"  Container: {task.container_id}",
                f"  Node: {task.node.hostname}",
            ],
        )

    def attach_to_task(self, task: Task, cmd: Optional[List[str]] = None) -> Session:
        return self._attach(
            task,
            cmd,
            {"PS1": "[DEV-TASK]$ "},
            [
                "  Development Browser - Task Terminal",
                f"  Cluster: {self.cluster_name}",
                f"  Task: {_short(task.task_id)}",
                f"  Container: {_short(task.container_id)}",
                f"  Node: {task.node.hostname}",
            ],
        )

    def close(self) -> None:
        for client in self._clients:
            client.close()
        self._clients.clear()
        self.bridge.close()
