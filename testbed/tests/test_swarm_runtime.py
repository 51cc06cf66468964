"""Tests for the Docker Swarm runtime with a mocked Docker client."""

from unittest.mock import MagicMock, patch

import pytest
from docker.errors import APIError, NotFound

from testbed.config import Settings
from testbed.providers.swarm import DockerSwarmRuntime


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def runtime(client):
    runtime = DockerSwarmRuntime(Settings())
    runtime._docker = client
    return runtime


class TestStackCommands:
    """Tests for docker stack CLI calls."""

    def test_deploy(self, runtime, tmp_path):
        with patch("testbed.providers.swarm.run_cmd", return_value=(0, "Creating service", "")) as run_cmd:
            outcome = runtime.deploy_stack(tmp_path / "stack.yaml", "cluster")

        assert outcome.is_ok
        run_cmd.assert_called_once_with(
            ["docker", "stack", "deploy", "-c", str(tmp_path / "stack.yaml"), "cluster"]
        )

    def test_remove_failure(self, runtime):
        with patch("testbed.providers.swarm.run_cmd", return_value=(1, "", "nothing found in stack")):
            outcome = runtime.destroy_stack("cluster")

        assert outcome.is_error
        assert "nothing found" in outcome.error


class TestTasks:
    """Tests for task listing and inspection."""

    def test_list_tasks_strips_stack_prefix(self, runtime, client):
        service = MagicMock()
        service.name = "cluster_mariadb_000"
        service.tasks.return_value = [{"ID": "t1", "DesiredState": "running"}]
        client.services.list.return_value = [service]

        tasks = runtime.list_tasks("cluster").value

        client.services.list.assert_called_once_with(
            filters={"label": "com.docker.stack.namespace=cluster"}
        )
        assert tasks[0].task_id == "t1"
        assert tasks[0].service_name == "mariadb_000"
        assert tasks[0].desired_state == "running"

    def test_task_state_and_ip(self, runtime, client):
        client.api.inspect_task.return_value = {
            "DesiredState": "running",
            "Status": {"State": "running", "ContainerStatus": {"ContainerID": "c1"}},
            "NetworksAttachments": [{"Addresses": ["10.0.1.2/24"]}],
        }

        state = runtime.task_state_and_ip("t1").value

        assert state.state == "running"
        assert state.ip == "10.0.1.2"
        assert state.container_id == "c1"

    def test_task_without_network(self, runtime, client):
        client.api.inspect_task.return_value = {"Status": {"State": "pending"}}
        state = runtime.task_state_and_ip("t1").value
        assert state.ip is None
        assert state.container_id is None

    def test_inspect_failure(self, runtime, client):
        client.api.inspect_task.side_effect = NotFound("no such task")
        assert runtime.task_state_and_ip("t1").is_error


class TestContainers:
    """Tests for container exec and logs."""

    def test_run_in_container(self, runtime, client):
        client.containers.get.return_value.exec_run.return_value = (0, b"1\n")

        outcome = runtime.run_in_container("mysql -e 'SELECT 1'", "c1")

        assert outcome.value == "1\n"
        client.containers.get.return_value.exec_run.assert_called_once_with(
            ["sh", "-c", "mysql -e 'SELECT 1'"], demux=False
        )

    def test_non_zero_exit(self, runtime, client):
        client.containers.get.return_value.exec_run.return_value = (1, b"ERROR 2002")
        outcome = runtime.run_in_container("mysql", "c1")
        assert outcome.is_error
        assert "ERROR 2002" in outcome.error

    def test_logs(self, runtime, client):
        client.containers.get.return_value.logs.return_value = b"ready for connections"
        assert runtime.container_logs("c1") == "ready for connections"
        client.containers.get.return_value.logs.assert_called_once_with(tail=200)


class TestNetworks:
    """Tests for the bridge network."""

    def test_existing_network_is_reused(self, runtime, client):
        assert runtime.create_bridge_network("cluster_bridge").is_ok
        client.networks.create.assert_not_called()

    def test_network_is_created(self, runtime, client):
        client.networks.get.side_effect = NotFound("missing")

        assert runtime.create_bridge_network("cluster_bridge").is_ok

        client.networks.create.assert_called_once_with(
            name="cluster_bridge", driver="bridge", attachable=True
        )

    def test_already_connected(self, runtime, client):
        client.networks.get.return_value.connect.side_effect = APIError(
            "endpoint with name x already exists in network cluster_bridge"
        )
        assert runtime.connect_network("cluster_bridge", "c1").is_ok

    def test_connect_failure(self, runtime, client):
        client.networks.get.return_value.connect.side_effect = APIError("network not found")
        assert runtime.connect_network("cluster_bridge", "c1").is_error

    def test_list_container_ips(self, runtime, client):
        client.networks.get.return_value.attrs = {
            "Containers": {
                "c1": {"IPv4Address": "172.20.0.2/16"},
                "c2": {"IPv4Address": ""},
            }
        }

        addresses = runtime.list_container_ips("cluster_bridge").value

        assert addresses == {"c1": "172.20.0.2"}
        client.networks.get.return_value.reload.assert_called_once()
