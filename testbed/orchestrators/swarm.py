"""Bring-up of container nodes as a Docker Swarm stack.

Only the services named by the requested nodes are deployed. After the
deployment the configurator waits for the stack tasks to start, for the
products inside the containers to become healthy, and finally attaches the
containers to a per-stack bridge network so that they are reachable from the
host running the tests.
"""

from __future__ import annotations

import logging
import time

import yaml

from testbed import result
from testbed.config import Settings
from testbed.configuration import Configuration
from testbed.network_settings import NetworkSettings, NodeNetwork
from testbed.orchestrators.fib_trie import discover_container_address
from testbed.providers.base import (
    TERMINAL_TASK_STATES,
    ContainerRuntime,
    TaskRecord,
    TaskState,
    TaskStatus,
)
from testbed.readiness import ReadinessProbe, get_probe_for_product
from testbed.result import Result

logger = logging.getLogger(__name__)


class DockerSwarmConfigurator:
    """Deploys the requested services and records how to reach them."""

    def __init__(
        self,
        configuration: Configuration,
        settings: Settings,
        runtime: ContainerRuntime,
    ):
        self.configuration = configuration
        self.settings = settings
        self.runtime = runtime
        self.attempts = settings.attempts
        self._probes: dict[str, ReadinessProbe] = {}

    def configure(self, node_names: list[str] | None = None) -> Result:
        logger.info("Bringing up docker nodes")
        nodes = node_names if node_names is not None else self.configuration.node_names
        return self.extract_node_configuration(nodes).and_then(self._bring_up_services)

    def _bring_up_services(self, services: list[str]) -> Result:
        return (
            self._reset_stack()
            .and_then(lambda _: self.runtime.create_bridge_network(self.configuration.bridge_network_name))
            .and_then(lambda _: self.bring_up_docker_stack())
            .and_then(lambda _: self.wait_for_tasks(services))
            .and_then(self.wait_for_applications)
            .and_then(lambda tasks: self.attach_to_bridge_network(tasks, services))
            .and_then(self.store_network_settings)
        )

    def extract_node_configuration(self, node_names: list[str]) -> Result[list[str]]:
        """Write the stack definition reduced to the requested services."""
        logger.info("Selecting Docker Swarm services to be brought up")
        return self.configuration.stack_definition().and_then(
            lambda definition: self._write_partial_definition(definition, node_names)
        )

    def _write_partial_definition(self, definition: dict, node_names: list[str]) -> Result[list[str]]:
        definition["services"] = {
            name: service
            for name, service in definition["services"].items()
            if name in node_names
        }
        if not definition["services"]:
            return result.error("No Docker services are configured to be brought up")
        self.configuration.stack_partial_file.write_text(
            yaml.safe_dump(definition, sort_keys=False, default_flow_style=False)
        )
        return result.ok(list(definition["services"]))

    def _reset_stack(self) -> Result:
        if not self.settings.recreate:
            return result.ok()
        destroy_result = self.runtime.destroy_stack(self.configuration.stack_name)
        if destroy_result.is_error:
            logger.warning(f"Unable to remove stack {self.configuration.stack_name}: {destroy_result.error}")
        return result.ok()

    def bring_up_docker_stack(self) -> Result:
        """Deploy the stack, several times if necessary."""
        logger.info("Bringing up the Docker Swarm stack")
        for attempt in range(self.attempts + 1):
            if attempt > 0:
                time.sleep(self.settings.deploy_retry_interval)
            deploy_result = self.runtime.deploy_stack(
                self.configuration.stack_partial_file, self.configuration.stack_name
            )
            if deploy_result.is_ok:
                return deploy_result
            logger.error(f"Unable to deploy the docker stack: {deploy_result.error}")
        return result.error(f"Unable to deploy stack {self.configuration.stack_name}")

    def wait_for_tasks(self, services: list[str]) -> Result[list[TaskRecord]]:
        """Wait until every service has a task that started or failed."""
        logger.info("Waiting for stack services to become ready")
        tracked: dict[str, TaskRecord] = {}
        missing = list(services)
        for iteration in range(self.settings.task_wait_attempts):
            if iteration > 0:
                time.sleep(self.settings.poll_interval)
            listed = self.runtime.list_tasks(self.configuration.stack_name)
            if listed.is_error:
                logger.warning(f"Unable to get the list of tasks: {listed.error}")
                continue
            self._track_tasks(tracked, listed.value, services)
            for task in tracked.values():
                if task.finished:
                    continue
                self.runtime.task_state_and_ip(task.task_id).match(
                    ok=lambda state, task=task: self._update_task(task, state),
                    error=lambda message: logger.warning(message),
                )
            for task_id in [task_id for task_id, task in tracked.items() if task.desired_state == TaskStatus.SHUTDOWN]:
                del tracked[task_id]
            missing = self._missing_services(tracked.values(), services)
            if not missing:
                return result.ok(list(tracked.values()))

        logger.error(f"Tasks of stack {self.configuration.stack_name}:\n{self.runtime.task_table(self.configuration.stack_name)}")
        return result.error(f"Services {', '.join(missing)} have not started")

    def _track_tasks(
        self,
        tracked: dict[str, TaskRecord],
        listed: list[TaskRecord],
        services: list[str],
    ) -> None:
        for task in listed:
            if task.service_name not in services:
                continue
            if task.desired_state == TaskStatus.SHUTDOWN:
                # Replaced or stopped by swarm, it will never finish
                tracked.pop(task.task_id, None)
                continue
            if task.task_id in tracked:
                tracked[task.task_id].desired_state = task.desired_state
            else:
                tracked[task.task_id] = task

    def _update_task(self, task: TaskRecord, state: TaskState) -> None:
        task.container_id = state.container_id or task.container_id
        task.desired_state = state.desired_state or task.desired_state
        if state.state == TaskStatus.RUNNING:
            task.running = True
            task.finished = True
            task.private_ip = state.ip
            logger.info(f"Task {task.task_id} of {task.service_name} is running at {state.ip}")
        elif state.state in TERMINAL_TASK_STATES:
            task.running = False
            task.finished = True
            logger.warning(f"Task {task.task_id} of {task.service_name} is {state.state}: {state.error}")

    def _missing_services(self, tasks, services: list[str]) -> list[str]:
        finished = {task.service_name for task in tasks if task.finished}
        return [service for service in services if service not in finished]

    def _probe_for(self, service_name: str) -> ReadinessProbe:
        if service_name not in self._probes:
            product = self.configuration.product_name(service_name)
            self._probes[service_name] = get_probe_for_product(product, self.settings)
        return self._probes[service_name]

    def wait_for_applications(self, tasks: list[TaskRecord]) -> Result[list[TaskRecord]]:
        """Wait until the products in the containers are healthy."""
        logger.info("Waiting for applications in the containers to become ready")
        for iteration in range(self.settings.app_wait_attempts):
            if iteration > 0:
                time.sleep(self.settings.poll_interval)
            for task in tasks:
                if task.ready:
                    continue
                if not task.private_ip or not task.container_id:
                    # Never started, reported by the task wait already
                    task.ready = True
                    continue
                check = self._probe_for(task.service_name).check(self.runtime, task.container_id)
                task.ready = check.is_ready
                if check.is_ready:
                    logger.info(f"Service {task.service_name} is ready: {check.message}")
                else:
                    logger.debug(f"Service {task.service_name} is not ready: {check.message}")
            if all(task.ready for task in tasks):
                return result.ok(tasks)

        not_ready = [task for task in tasks if not task.ready]
        for task in not_ready:
            logger.error(
                f"Service {task.service_name} in container {task.container_id} is not ready, logs:\n"
                f"{self.runtime.container_logs(task.container_id)}"
            )
        return result.error(
            f"Applications of services {', '.join(task.service_name for task in not_ready)} are not ready"
        )

    def attach_to_bridge_network(self, tasks: list[TaskRecord], services: list[str]) -> Result[list[TaskRecord]]:
        """Connect running containers to the bridge network and record their addresses."""
        running = [task for task in tasks if task.running and task.container_id]
        missing = self._missing_services(running, services)
        if missing:
            return result.error(f"Services {', '.join(missing)} have no running containers")
        bridge = self.configuration.bridge_network_name
        logger.info(f"Attaching containers to network {bridge}")
        return (
            self.runtime.list_container_ips(bridge)
            .and_then(lambda attached: self._connect_containers(running, attached, bridge))
            .and_then(lambda _: self.runtime.list_container_ips(bridge))
            .and_then(lambda addresses: self._assign_bridge_addresses(running, addresses))
        )

    def _connect_containers(self, tasks: list[TaskRecord], attached: dict[str, str], bridge: str) -> Result:
        for task in tasks:
            if task.container_id in attached:
                continue
            connect_result = self.runtime.connect_network(bridge, task.container_id)
            if connect_result.is_error:
                return connect_result
        return result.ok()

    def _assign_bridge_addresses(self, tasks: list[TaskRecord], addresses: dict[str, str]) -> Result[list[TaskRecord]]:
        for task in tasks:
            address = addresses.get(task.container_id)
            if address is None:
                discovered = discover_container_address(self.runtime, task.container_id, task.private_ip)
                if discovered.is_error:
                    return discovered
                address = discovered.value
            task.public_ip = address
        return result.ok(tasks)

    def store_network_settings(self, tasks: list[TaskRecord]) -> Result:
        logger.info("Generating network configuration file")
        network_settings = NetworkSettings.from_configuration(self.configuration)
        for task in tasks:
            network_settings.add_network_configuration(
                task.service_name,
                NodeNetwork(
                    public_ip=task.public_ip,
                    private_ip=task.private_ip or task.public_ip,
                    container_id=task.container_id,
                ),
            )
        network_settings.store_network_configuration(self.configuration)
        return result.ok(f"Stack {self.configuration.stack_name} has been brought up")
