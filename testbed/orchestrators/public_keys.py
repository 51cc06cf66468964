"""Installation of an operator's public key on running nodes.

The nodes are reached with the connection parameters stored by ``up``, so
only nodes present in the network settings file can receive the key.
"""

from __future__ import annotations

import logging
import shlex

from testbed import result
from testbed.configuration import Configuration
from testbed.network_settings import NetworkSettings
from testbed.providers.base import RemoteExecutor
from testbed.result import Result

logger = logging.getLogger(__name__)

AUTHORIZED_KEYS = "~/.ssh/authorized_keys"


def append_key_command(public_key: str) -> str:
    """Shell command adding the key to authorized_keys unless already present."""
    key = shlex.quote(public_key)
    return (
        f"mkdir -p ~/.ssh && chmod 700 ~/.ssh && touch {AUTHORIZED_KEYS}"
        f" && (grep -qxF {key} {AUTHORIZED_KEYS} || echo {key} >> {AUTHORIZED_KEYS})"
    )


class PublicKeysInstaller:
    """Appends a public key to authorized_keys of the selected nodes."""

    def __init__(self, configuration: Configuration, machine_configurator: RemoteExecutor):
        self.configuration = configuration
        self.machine_configurator = machine_configurator

    def install(self, network_settings: NetworkSettings, public_key: str) -> Result:
        nodes = [node for node in self.configuration.node_names if node in network_settings]
        if not nodes:
            return result.error("No available nodes")
        command = append_key_command(public_key.strip())
        for node in nodes:
            logger.info(f"Putting the key file to node '{node}'")
            outcome = self.machine_configurator.run_command(
                network_settings.node_settings(node), command
            )
            if outcome.is_error:
                logger.error(f"Could not put the key to node '{node}': {outcome.error}")
                return result.error(f"Could not initiate connection to the node '{node}'")
        return result.ok(f"Key has been added to nodes {', '.join(nodes)}")
