"""Terraform backend for cloud nodes.

Every node of a configuration is one terraform resource named after the
node, so single nodes are created and destroyed with ``-target``. The
generated terraform files export an output per node:

    output "node_000_network" {
      value = {
        public_ip  = aws_instance.node_000.public_ip
        private_ip = aws_instance.node_000.private_ip
        user       = "ubuntu"
        hostname   = "node-000"
        key_file   = "/home/ci/.ssh/node_000.pem"
      }
    }
"""

from __future__ import annotations

import json
import logging

from testbed import result
from testbed.cmd import run_cmd
from testbed.configuration import Configuration
from testbed.providers.base import InfrastructureBackend, ResourceNetwork
from testbed.result import Result

logger = logging.getLogger(__name__)

TERRAFORM_BIN = "terraform"
TERRAFORM_TIMEOUT = 1800  # seconds

RESOURCE_TYPES = {
    "aws": "aws_instance",
    "gcp": "google_compute_instance",
    "digitalocean": "digitalocean_droplet",
}

NETWORK_FIELDS = ("public_ip", "private_ip", "user", "hostname", "key_file")


def resource_type(provider: str) -> Result[str]:
    if provider not in RESOURCE_TYPES:
        return result.error(f"Provider '{provider}' is not supported by terraform backend")
    return result.ok(RESOURCE_TYPES[provider])


class TerraformBackend(InfrastructureBackend):
    """Runs the terraform CLI in the configuration directory."""

    def __init__(self, configuration: Configuration):
        self.configuration = configuration
        self._initialized = False

    def _terraform(self, *args: str) -> Result[str]:
        cmd = [TERRAFORM_BIN, *args]
        code, stdout, stderr = run_cmd(cmd, cwd=self.configuration.path, timeout=TERRAFORM_TIMEOUT)
        if code != 0:
            message = stderr.strip() or stdout.strip()
            return result.error(f"Command '{' '.join(cmd)}' failed with code {code}: {message}")
        return result.ok(stdout)

    def _init(self) -> Result:
        if self._initialized:
            return result.ok()
        init = self._terraform("init", "-input=false", "-no-color")
        if init.is_ok:
            self._initialized = True
        return init

    def _target(self, node: str) -> Result[str]:
        return resource_type(self.configuration.provider).and_then(
            lambda type_name: result.ok(f"{type_name}.{node}")
        )

    def apply(self, node: str) -> Result:
        logger.info(f"Applying terraform resources of node {node}")
        return self._init().and_then(lambda _: self._target(node)).and_then(
            lambda target: self._terraform(
                "apply", "-auto-approve", "-input=false", "-no-color", f"-target={target}"
            )
        )

    def destroy(self, node: str) -> Result:
        logger.info(f"Destroying terraform resources of node {node}")
        return self._init().and_then(lambda _: self._target(node)).and_then(
            lambda target: self._terraform(
                "destroy", "-auto-approve", "-input=false", "-no-color", f"-target={target}"
            )
        )

    def is_running(self, node: str) -> bool:
        state = self._init().and_then(lambda _: self._target(node)).and_then(
            lambda target: self._terraform("state", "list").and_then(
                lambda output: result.ok(target in output.split())
            )
        )
        return state.match(
            ok=lambda running: running,
            error=lambda message: self._not_running(node, message),
        )

    def _not_running(self, node: str, message: str) -> bool:
        logger.error(f"Unable to check state of node {node}: {message}")
        return False

    def resource_network(self, node: str) -> Result[ResourceNetwork]:
        return self._terraform("output", "-json").and_then(
            lambda output: self._parse_network(node, output)
        )

    def _parse_network(self, node: str, output: str) -> Result[ResourceNetwork]:
        try:
            outputs = json.loads(output or "{}")
        except json.JSONDecodeError as e:
            return result.error(f"Unable to parse terraform output: {e}")
        network = outputs.get(f"{node}_network", {}).get("value")
        if not isinstance(network, dict):
            return result.error(f"Terraform output has no network of node '{node}'")
        missing = [name for name in NETWORK_FIELDS if not network.get(name)]
        if missing:
            return result.error(
                f"Network of node '{node}' lacks {', '.join(missing)}"
            )
        return result.ok(ResourceNetwork(**{name: str(network[name]) for name in NETWORK_FIELDS}))
