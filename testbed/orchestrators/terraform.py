"""Bring-up and configuration of terraform managed nodes.

Each node runs through a bounded number of attempts:

    bring up (reuse, create, or destroy + create on retries)
        -> running?                 no: next attempt
        -> discover network
        -> wait for SSH             timeout: store discovered network, next attempt
        -> chef-solo + marker check failure: next attempt
        -> done

Infrastructure apply errors are not retried. Nodes are processed one after
another and the network settings are written once, after the last node,
whatever the outcome.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from testbed import result
from testbed.config import Settings
from testbed.configuration import Configuration
from testbed.network_settings import NetworkSettings, NodeNetwork
from testbed.products import get_files_location
from testbed.providers.base import ExtraFile, InfrastructureBackend, RemoteExecutor
from testbed.result import Result

logger = logging.getLogger(__name__)

PROVISION_MARKER = "/var/mdbci/provisioned"
PROVISIONED_COMMAND = f"test -e {PROVISION_MARKER} && printf PROVISIONED || printf NOT"
CONNECTION_PROBE = 'echo "connected"'


class TerraformConfigurator:
    """Brings terraform nodes up and configures them with chef-solo."""

    def __init__(
        self,
        configuration: Configuration,
        settings: Settings,
        infrastructure: InfrastructureBackend,
        machine_configurator: RemoteExecutor,
    ):
        self.configuration = configuration
        self.settings = settings
        self.infrastructure = infrastructure
        self.machine_configurator = machine_configurator
        self.attempts = settings.attempts
        self.recreate = settings.recreate

    def up(self, node_names: list[str] | None = None) -> Result:
        """Bring up and configure the nodes one by one.

        Network settings of the nodes that were reached are stored even if
        other nodes failed.
        """
        nodes = node_names if node_names is not None else self.configuration.node_names
        network_settings = NetworkSettings.from_configuration(self.configuration)
        failures = []
        try:
            for node in nodes:
                node_result = self.bring_up_and_configure(node, network_settings)
                if node_result.is_error:
                    failures.append(node_result.error)
        finally:
            network_settings.store_network_configuration(self.configuration)
        if failures:
            return result.error(failures)
        return result.ok("Terraform configuration has been configured")

    def bring_up_and_configure(self, node: str, network_settings: NetworkSettings) -> Result:
        """Create the node, or recreate it until it is configured."""
        last_error = None
        for attempt in range(self.attempts):
            logger.info(f"Bring up and configure node {node}. Attempt {attempt + 1}.")
            bring_up_result = self._bring_up_node(attempt, node)
            if bring_up_result is not None and bring_up_result.is_error:
                last_error = bring_up_result.error
                break
            if not self.infrastructure.is_running(node):
                logger.warning(f"Node {node} is not running after bring up")
                last_error = "node is not running after bring up"
                continue
            configure_result = self.configure_node(node, network_settings)
            if configure_result.is_ok:
                return configure_result
            last_error = configure_result.error
        message = f"Node '{node}' was not configured."
        if last_error:
            message = f"Node '{node}' was not configured: {last_error}"
        logger.error(message)
        return result.error(message)

    def _bring_up_node(self, attempt: int, node: str) -> Result | None:
        if self.recreate or attempt > 0:
            self._destroy_node(node)
            return self._bring_up_machine(node)
        if not self.infrastructure.is_running(node):
            return self._bring_up_machine(node)
        logger.info(f"Node {node} is already running")
        return None

    def _bring_up_machine(self, node: str) -> Result:
        logger.info(f"Bringing up node {node}")
        apply_result = self.infrastructure.apply(node)
        if apply_result.is_error:
            logger.error(f"Unable to bring up node {node}: {apply_result.error}")
        return apply_result

    def _destroy_node(self, node: str) -> None:
        logger.info(f"Destroying '{node}' node.")
        destroy_result = self.infrastructure.destroy(node)
        if destroy_result.is_error:
            logger.warning(f"Unable to destroy node {node}: {destroy_result.error}")

    def configure_node(self, node: str, network_settings: NetworkSettings) -> Result:
        """Wait for the node and run chef on it.

        The discovered network is stored even when the node never answered,
        so the operator can inspect it.
        """
        discovered: list[NodeNetwork] = []
        stored: list[NodeNetwork] = []

        def remember(node_network: NodeNetwork) -> Result[NodeNetwork]:
            discovered.append(node_network)
            return result.ok(node_network)

        def store(node_network: NodeNetwork) -> Result:
            network_settings.add_network_configuration(node, node_network)
            stored.append(node_network)
            return self.configure_with_chef(node, node_network)

        configure_result = (
            self.retrieve_network_settings(node)
            .and_then(remember)
            .and_then(lambda node_network: self.wait_for_node_availability(node, node_network))
            .and_then(store)
        )
        if configure_result.is_ok:
            logger.info(f"Node '{node}' has been configured.")
            return configure_result

        logger.error(f"Exception during node configuration: {configure_result.error}")
        if discovered and not stored:
            network_settings.add_network_configuration(node, discovered[0])
        return configure_result

    def retrieve_network_settings(self, node: str) -> Result[NodeNetwork]:
        logger.info(f"Generating network configuration for node '{node}'")
        return self.infrastructure.resource_network(node).and_then(
            lambda network: result.ok(
                NodeNetwork(
                    public_ip=network.public_ip,
                    private_ip=network.private_ip,
                    user=network.user,
                    key_file=network.key_file,
                    hostname=network.hostname,
                )
            )
        )

    def wait_for_node_availability(self, node: str, node_network: NodeNetwork) -> Result[NodeNetwork]:
        """Probe both addresses of the node until one of them answers."""
        logger.info(f"Waiting for node '{node}' to become available")
        private_network = node_network.private_variant()
        for attempt in range(self.settings.ssh_attempts):
            if attempt > 0:
                time.sleep(self.settings.ssh_retry_interval)
            if self._can_connect(private_network):
                return result.ok(private_network)
            if self._can_connect(node_network):
                return result.ok(node_network)
        return result.error(f"Unable to establish connection with remote node '{node}'.")

    def _can_connect(self, node_network: NodeNetwork) -> bool:
        return self.machine_configurator.run_command(node_network, CONNECTION_PROBE).is_ok

    def configure_with_chef(self, node: str, node_network: NodeNetwork) -> Result:
        role_file = self.configuration.role_file(node)
        if not role_file.exists():
            logger.info(f"Machine '{node}' should not be configured. Skipping.")
            return result.ok("")
        solo_config = f"{node}-config.json"
        extra_files = [
            ExtraFile(role_file, f"roles/{node}.json"),
            ExtraFile(self.configuration.node_config_file(node), f"configs/{solo_config}"),
            *self.cnf_extra_files(node),
        ]
        return self.machine_configurator.configure(node_network, solo_config, extra_files).and_then(
            lambda _: self.node_provisioned(node, node_network)
        )

    def cnf_extra_files(self, node: str) -> list[ExtraFile]:
        """cnf templates of the node's products and where they go on the node."""
        cnf_template_path = self.configuration.cnf_template_path(node)
        if cnf_template_path is None:
            return []
        extra_files = []
        for product in self.configuration.products_info(node):
            cnf_template = product.get("cnf_template")
            if not cnf_template:
                continue
            files_location = get_files_location(product.get("name", ""))
            if files_location is None:
                continue
            extra_files.append(
                ExtraFile(Path(cnf_template_path) / cnf_template, f"{files_location}/{cnf_template}")
            )
        return extra_files

    def node_provisioned(self, node: str, node_network: NodeNetwork) -> Result:
        """Check the marker chef leaves after a complete run."""
        return self.machine_configurator.run_command(node_network, PROVISIONED_COMMAND).and_then(
            lambda output: result.ok(f"Node '{node}' was configured.")
            if output.strip() == "PROVISIONED"
            else result.error(f"Node '{node}' was not provisioned.")
        )

    def refresh_network_settings(self, node_names: list[str] | None = None) -> Result:
        """Rewrite the network settings from the nodes that are running now."""
        nodes = node_names if node_names is not None else self.configuration.node_names
        network_settings = NetworkSettings()
        failures = []
        for node in nodes:
            if not self.infrastructure.is_running(node):
                logger.info(f"Node {node} is not running, skipping it")
                continue
            self.retrieve_network_settings(node).match(
                ok=lambda node_network, node=node: network_settings.add_network_configuration(
                    node, node_network
                ),
                error=failures.append,
            )
        if failures:
            logger.error("Unable to create new network configuration file")
            return result.error(failures)
        network_settings.store_network_configuration(self.configuration)
        return result.ok(f"Wrote network configuration file to {self.configuration.network_settings_file}")
