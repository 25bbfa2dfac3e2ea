"""Tests for swarmbrowse/browser/"""

from unittest.mock import Mock

import pytest

from conftest import recv_all
from swarmbrowse.browser.dev import DevBrowser, LocalExecClient
from swarmbrowse.browser.swarm import STACK_LABEL, SwarmBrowser
from swarmbrowse.errors import AttachError, ConfigError
from swarmbrowse.models.cluster import Cluster, DevConfig, Node
from swarmbrowse.models.workload import Service, Stack, Task, TaskState


@pytest.fixture
def dev_config():
    return DevConfig.model_validate(
        {
            "clusters": {
                "dev": {
                    "name": "Development",
                    "host": "localhost",
                    "nodes": {
                        "node1": {"host": "host-1", "hostname": "dev-node-1"},
                        "node2": {"host": "host-2", "hostname": "dev-node-2"},
                    },
                },
                "other": {"name": "Other", "host": "elsewhere"},
            },
            "stacks": [
                {
                    "name": "web",
                    "cluster": "dev",
                    "services": [
                        {"name": "api", "desired_tasks": 4, "running_tasks": 1},
                        {
                            "name": "worker",
                            "tasks": [
                                {"node": "node2", "status": "failed"},
                                {"id": "t-2", "container_id": "c-2", "status": "running"},
                            ],
                        },
                        {"name": "idle", "desired_tasks": 1, "running_tasks": 0},
                    ],
                },
                {"name": "db", "cluster": "dev"},
                {"name": "hidden", "cluster": "other"},
            ],
        }
    )


@pytest.fixture
def dev_browser(dev_config):
    browser = DevBrowser("dev", dev_config)
    yield browser
    browser.close()


def service_named(browser, stack_name, name):
    stack = Stack(stack_name)
    return next(s for s in browser.list_services(stack) if s.name == f"{stack_name}_{name}")


class TestDevBrowserListing:
    """Mock stacks, services and tasks"""

    def test_unknown_cluster(self, dev_config):
        with pytest.raises(ConfigError):
            DevBrowser("prod", dev_config)

    def test_stacks_of_cluster_only(self, dev_browser):
        assert dev_browser.list_stacks() == [Stack("web"), Stack("db")]

    def test_services(self, dev_browser):
        services = dev_browser.list_services(Stack("web"))

        assert [s.name for s in services] == ["web_api", "web_worker", "web_idle"]
        assert services[0].id == "web-api-001"
        assert str(services[0]) == "web_api (1/4 replicas)"

    def test_services_of_unknown_stack(self, dev_browser):
        assert dev_browser.list_services(Stack("nope")) == []

    def test_generated_tasks(self, dev_browser):
        """Running first, then pending and failed alternating, nodes round-robin"""
        tasks = dev_browser.list_tasks(service_named(dev_browser, "web", "api"))

        assert [t.status for t in tasks] == [
            TaskState.RUNNING,
            TaskState.FAILED,
            TaskState.PENDING,
            TaskState.FAILED,
        ]
        assert tasks[0].task_id == "web-api-001-task-001"
        assert tasks[0].container_id == "container-web-api-001-001"
        assert [t.node.hostname for t in tasks] == [
            "dev-node-1",
            "dev-node-2",
            "dev-node-1",
            "dev-node-2",
        ]

    def test_configured_tasks(self, dev_browser):
        tasks = dev_browser.list_tasks(service_named(dev_browser, "web", "worker"))

        assert tasks[0].node.hostname == "dev-node-2"
        assert tasks[0].status == TaskState.FAILED
        assert tasks[0].task_id == "web-worker-002-task-001"
        assert tasks[1].task_id == "t-2"
        assert tasks[1].container_id == "c-2"
        assert tasks[1].node.hostname == "dev-node-2"

    def test_no_running_task(self, dev_browser):
        with pytest.raises(AttachError, match="No running task"):
            dev_browser.attach_to_service(service_named(dev_browser, "web", "idle"))


class TestDevBrowserAttach:
    """Local shells stand in for containers"""

    def test_attach_to_service_runs_local_command(self, dev_browser):
        service = service_named(dev_browser, "web", "api")

        session = dev_browser.attach_to_service(
            service, ["sh", "-c", 'echo "$MOCK_SERVICE_NAME on $MOCK_NODE_HOST"']
        )
        output = recv_all(session.stream._sock, timeout=5).decode()

        assert "Development Browser - Mock Container" in output
        assert "Service: web_api" in output
        assert "web_api on host-1" in output

    def test_attach_to_task_banner(self, dev_browser):
        node = dev_browser.cluster.nodes["node1"]
        task = Task("abcdef0123456789", "container-xyz", node, TaskState.RUNNING)

        session = dev_browser.attach_to_task(task, ["sh", "-c", "echo $MOCK_ENVIRONMENT"])
        output = recv_all(session.stream._sock, timeout=5).decode()

        assert "Task: abcdef012345\n" in output
        assert output.rstrip().endswith("development")

    def test_missing_command_falls_back(self, dev_browser):
        node = dev_browser.cluster.nodes["node1"]
        task = Task("t-1", "c-1", node, TaskState.RUNNING)

        session = dev_browser.attach_to_task(task, ["/nonexistent/shell"])

        assert session.command == ["/bin/sh"]

    def test_close_ends_sessions(self, dev_config):
        browser = DevBrowser("dev", dev_config)
        node = browser.cluster.nodes["node1"]
        session = browser.attach_to_task(
            Task("t-1", "c-1", node, TaskState.RUNNING), ["sh", "-c", "sleep 30"]
        )

        browser.close()

        assert session.stream.closed


class TestLocalExecClient:
    def test_inspect_and_resize(self):
        client = LocalExecClient(host="localhost")
        exec_id = client.exec_create("c-1", ["sh", "-c", "exit 3"])
        assert client.exec_inspect(exec_id) == {"Running": False, "ExitCode": None}

        stream = client.exec_attach(exec_id)
        assert recv_all(stream._sock, timeout=5) == b""
        client._execs[exec_id].process.wait(timeout=5)

        assert client.exec_inspect(exec_id)["ExitCode"] == 3
        assert client.exec_resize(exec_id, 80, 24) is None
        client.close()

    def test_close_notifies_listeners(self):
        client = LocalExecClient(host="localhost")
        listener = Mock()
        client.add_close_listener(listener)

        client.close()

        listener.assert_called_once_with(client)


@pytest.fixture
def swarm_cluster():
    return Cluster(
        name="Production",
        host="manager-1",
        nodes={
            "node1": Node(host="10.0.0.1", hostname="swarm-node-1"),
            "node2": Node(host="10.0.0.2", hostname="swarm-node-2"),
        },
    )


@pytest.fixture
def api():
    api = Mock(name="APIClient")
    api.inspect_node.side_effect = lambda node_id: {
        "Description": {"Hostname": {"n1": "swarm-node-1", "n2": "swarm-node-2"}.get(node_id, "ghost")}
    }
    return api


@pytest.fixture
def pool(api):
    pool = Mock(name="HostConnectionPool")
    pool.client_for.return_value.client.api = api
    return pool


@pytest.fixture
def bridge():
    return Mock(name="SessionBridge")


@pytest.fixture
def swarm_browser(swarm_cluster, pool, bridge):
    return SwarmBrowser(swarm_cluster, pool, bridge)


def raw_service(service_id, name, stack, running=1, desired=1, replicas=None):
    spec = {"Name": name, "Labels": {STACK_LABEL: stack}}
    spec["Mode"] = {"Replicated": {"Replicas": replicas}} if replicas is not None else {"Global": {}}
    return {
        "ID": service_id,
        "Spec": spec,
        "ServiceStatus": {"RunningTasks": running, "DesiredTasks": desired},
    }


def raw_task(task_id, node_id, state="running", container_id="cid"):
    return {
        "ID": task_id,
        "NodeID": node_id,
        "Status": {"State": state, "ContainerStatus": {"ContainerID": container_id}},
    }


class TestSwarmBrowser:
    """Listing through the manager and attaching through the task's node"""

    def test_stacks_from_labels(self, swarm_browser, api, pool):
        api.services.return_value = [
            raw_service("s1", "web_api", "web"),
            raw_service("s2", "web_worker", "web"),
            raw_service("s3", "db_main", "db"),
            {"ID": "s4", "Spec": {"Name": "loose"}},
        ]

        assert swarm_browser.list_stacks() == [Stack("db"), Stack("web")]
        pool.client_for.assert_called_with("manager-1")

    def test_services_of_stack(self, swarm_browser, api):
        api.services.return_value = [
            raw_service("s2", "web_worker", "web", running=0, desired=2, replicas=2),
            raw_service("s1", "web_api", "web", running=3, desired=3),
        ]

        services = swarm_browser.list_services(Stack("web"))

        api.services.assert_called_once_with(
            filters={"label": f"{STACK_LABEL}=web"}, status=True
        )
        assert [s.name for s in services] == ["web_api", "web_worker"]
        assert services[1] == Service("s2", "web_worker", 0, 2, Stack("web"))

    def test_tasks_resolve_nodes(self, swarm_browser, api):
        api.tasks.return_value = [
            raw_task("t1", "n1", container_id="c1"),
            raw_task("t2", "n2", state="starting", container_id="c2"),
            raw_task("t3", "n1", state="failed"),
        ]
        service = Service("s1", "web_api", 1, 3, Stack("web"))

        tasks = swarm_browser.list_tasks(service)

        api.tasks.assert_called_once_with(filters={"service": "s1", "desired-state": "running"})
        assert [t.node.host for t in tasks] == ["10.0.0.1", "10.0.0.2", "10.0.0.1"]
        assert tasks[0].container_id == "c1"
        assert tasks[2].status == TaskState.FAILED
        assert api.inspect_node.call_count == 2

    def test_unknown_node_hostname(self, swarm_browser, api):
        api.tasks.return_value = [raw_task("t1", "n9")]

        with pytest.raises(ConfigError, match="ghost"):
            swarm_browser.list_tasks(Service("s1", "web_api", 1, 1, Stack("web")))

    def test_attach_to_service_uses_first_running_task(self, swarm_browser, api, pool, bridge):
        api.tasks.return_value = [
            raw_task("t1", "n1", state="failed", container_id="c1"),
            raw_task("t2", "n2", container_id="c2"),
        ]
        node_client = Mock(name="node-2 client")
        pool.client_for.side_effect = lambda host: (
            node_client if host == "10.0.0.2" else Mock(client=Mock(api=api))
        )

        session = swarm_browser.attach_to_service(
            Service("s1", "web_api", 1, 2, Stack("web")), ["/bin/sh"]
        )

        bridge.attach.assert_called_once_with(node_client, "c2", ["/bin/sh"])
        assert session is bridge.attach.return_value

    def test_attach_without_running_task(self, swarm_browser, api, bridge):
        api.tasks.return_value = [raw_task("t1", "n1", state="failed")]

        with pytest.raises(AttachError, match="No running task"):
            swarm_browser.attach_to_service(Service("s1", "web_api", 0, 1, Stack("web")))
        bridge.attach.assert_not_called()

    def test_attach_to_stopped_task(self, swarm_browser, swarm_cluster, bridge):
        task = Task("t1", "c1", swarm_cluster.nodes["node1"], TaskState.SHUTDOWN)

        with pytest.raises(AttachError):
            swarm_browser.attach_to_task(task)
        bridge.attach.assert_not_called()

    def test_close_closes_pool(self, swarm_browser, pool, bridge):
        swarm_browser.close()

        pool.close.assert_called_once()
        bridge.close.assert_called_once()
