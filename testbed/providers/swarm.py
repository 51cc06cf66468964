"""Docker Swarm runtime for container nodes.

Tasks, containers and networks are managed through the Docker SDK. Stacks
have no SDK counterpart, so ``docker stack deploy``/``rm``/``ps`` run as
CLI commands. Stack services are found through the
``com.docker.stack.namespace`` label the CLI puts on them.
"""

from __future__ import annotations

import logging
from pathlib import Path

import docker
from docker.errors import APIError, DockerException, NotFound

from testbed import result
from testbed.cmd import run_cmd
from testbed.config import Settings
from testbed.providers.base import ContainerRuntime, TaskRecord, TaskState
from testbed.result import Result

logger = logging.getLogger(__name__)

DOCKER_BIN = "docker"
STACK_LABEL = "com.docker.stack.namespace"
LOG_TAIL = 200


def _strip_prefix(address: str | None) -> str | None:
    """Drop the prefix length of an address such as 10.0.1.7/24."""
    if not address:
        return None
    return address.split("/")[0]


class DockerSwarmRuntime(ContainerRuntime):
    """Swarm stacks on the local Docker engine."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._docker: docker.DockerClient | None = None

    @property
    def docker(self) -> docker.DockerClient:
        """Lazy-initialize Docker client."""
        if self._docker is None:
            self._docker = docker.DockerClient(base_url=self.settings.docker_socket)
        return self._docker

    def _docker_cli(self, *args: str) -> Result[str]:
        cmd = [DOCKER_BIN, *args]
        code, stdout, stderr = run_cmd(cmd)
        if code != 0:
            return result.error(f"Command '{' '.join(cmd)}' failed with code {code}: {stderr.strip()}")
        return result.ok(stdout)

    def deploy_stack(self, stack_file: Path, stack_name: str) -> Result:
        logger.info(f"Deploying stack {stack_name} from {stack_file}")
        return self._docker_cli("stack", "deploy", "-c", str(stack_file), stack_name)

    def destroy_stack(self, stack_name: str) -> Result:
        logger.info(f"Removing stack {stack_name}")
        return self._docker_cli("stack", "rm", stack_name)

    def task_table(self, stack_name: str) -> str:
        return self._docker_cli("stack", "ps", "--no-trunc", stack_name).match(
            ok=lambda output: output,
            error=lambda message: message,
        )

    def create_bridge_network(self, name: str) -> Result:
        try:
            try:
                self.docker.networks.get(name)
                logger.debug(f"Network {name} already exists")
                return result.ok(name)
            except NotFound:
                pass
            self.docker.networks.create(name=name, driver="bridge", attachable=True)
            logger.info(f"Created bridge network {name}")
            return result.ok(name)
        except DockerException as e:
            return result.error(f"Unable to create network {name}: {e}")

    def list_tasks(self, stack_name: str) -> Result[list[TaskRecord]]:
        prefix = f"{stack_name}_"
        try:
            services = self.docker.services.list(filters={"label": f"{STACK_LABEL}={stack_name}"})
            tasks = []
            for service in services:
                service_name = service.name
                if service_name.startswith(prefix):
                    service_name = service_name[len(prefix):]
                for task in service.tasks():
                    tasks.append(
                        TaskRecord(
                            task_id=task["ID"],
                            service_name=service_name,
                            desired_state=task.get("DesiredState", ""),
                        )
                    )
        except DockerException as e:
            return result.error(f"Unable to get the list of tasks of stack {stack_name}: {e}")
        return result.ok(tasks)

    def task_state_and_ip(self, task_id: str) -> Result[TaskState]:
        try:
            task = self.docker.api.inspect_task(task_id)
        except DockerException as e:
            return result.error(f"Unable to get information about the task '{task_id}': {e}")

        status = task.get("Status", {})
        state = TaskState(
            state=status.get("State", ""),
            desired_state=task.get("DesiredState", ""),
            container_id=status.get("ContainerStatus", {}).get("ContainerID"),
            error=status.get("Err", ""),
        )
        for attachment in task.get("NetworksAttachments") or []:
            addresses = attachment.get("Addresses") or []
            if addresses:
                state.ip = _strip_prefix(addresses[0])
                break
        return result.ok(state)

    def run_in_container(self, command: str, container_id: str) -> Result[str]:
        try:
            container = self.docker.containers.get(container_id)
            exit_code, output = container.exec_run(["sh", "-c", command], demux=False)
        except DockerException as e:
            return result.error(f"Unable to run '{command}' in container {container_id}: {e}")
        output_str = output.decode("utf-8", errors="replace") if output else ""
        if exit_code != 0:
            return result.error(
                f"Command '{command}' in container {container_id} exited with {exit_code}: {output_str.strip()}"
            )
        return result.ok(output_str)

    def connect_network(self, network: str, container_id: str) -> Result:
        try:
            self.docker.networks.get(network).connect(container_id)
        except APIError as e:
            # May already be attached
            if "already exists" in str(e).lower():
                return result.ok()
            return result.error(f"Unable to connect container {container_id} to {network}: {e}")
        except DockerException as e:
            return result.error(f"Unable to connect container {container_id} to {network}: {e}")
        return result.ok()

    def list_container_ips(self, network: str) -> Result[dict[str, str]]:
        try:
            docker_network = self.docker.networks.get(network)
            docker_network.reload()
        except DockerException as e:
            return result.error(f"Unable to inspect network {network}: {e}")
        containers = docker_network.attrs.get("Containers") or {}
        return result.ok({
            container_id: _strip_prefix(info.get("IPv4Address"))
            for container_id, info in containers.items()
            if info.get("IPv4Address")
        })

    def container_logs(self, container_id: str) -> str:
        try:
            logs = self.docker.containers.get(container_id).logs(tail=LOG_TAIL)
        except DockerException as e:
            return f"Unable to get logs of container {container_id}: {e}"
        return logs.decode("utf-8", errors="replace")
