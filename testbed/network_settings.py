"""Persisted connection parameters of configuration nodes.

The settings file is the only durable artifact of a run. It maps node names
to flat records describing how to reach each node, and it is loaded by the
next run of either orchestrator:

    node_000:
      public_ip: 54.12.1.10
      private_ip: 172.31.5.4
      user: ubuntu
      key_file: /home/ci/.ssh/node_000.pem
      hostname: node-000
    maxscale:
      public_ip: 172.20.0.3
      private_ip: 10.0.1.7
      container_id: 3f1c2a...

Next to it a flat ``<node>_<field>=<value>`` file is written so shell based
test harnesses can source it.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

import yaml
from pydantic import BaseModel, ValidationError

from testbed import result
from testbed.result import Result

if TYPE_CHECKING:
    from testbed.configuration import Configuration

logger = logging.getLogger(__name__)

# Keys of the flat network config file, in field order
FLAT_KEYS = {
    "public_ip": "network",
    "private_ip": "private_ip",
    "user": "whoami",
    "key_file": "keyfile",
    "hostname": "hostname",
    "container_id": "docker_container_id",
}


class NodeNetwork(BaseModel):
    """How to reach one node."""

    public_ip: str
    private_ip: str | None = None
    user: str | None = None
    key_file: str | None = None
    hostname: str | None = None
    container_id: str | None = None

    def with_address(self, address: str) -> NodeNetwork:
        """Copy of the record that connects through another address."""
        return self.model_copy(update={"public_ip": address})

    def private_variant(self) -> NodeNetwork:
        """Copy of the record that connects through the private address."""
        return self.with_address(self.private_ip or self.public_ip)


class NetworkSettings:
    """Mapping from node name to NodeNetwork, whole-record updates only."""

    def __init__(self, nodes: dict[str, NodeNetwork] | None = None):
        self._nodes: dict[str, NodeNetwork] = dict(nodes or {})

    @classmethod
    def load(cls, path: str | Path) -> Result[NetworkSettings]:
        """Parse a settings file.

        A missing file is an Error; callers that treat it as "no nodes yet"
        construct an empty instance instead.
        """
        path = Path(path)
        if not path.exists():
            return result.error(f"Network settings file {path} does not exist")
        try:
            data = yaml.safe_load(path.read_text()) or {}
        except (OSError, yaml.YAMLError) as e:
            return result.error(f"Unable to read network settings from {path}: {e}")
        if not isinstance(data, dict):
            return result.error(f"Network settings file {path} does not contain a mapping")
        try:
            nodes = {
                str(name): NodeNetwork.model_validate(record)
                for name, record in data.items()
            }
        except ValidationError as e:
            return result.error(f"Invalid network settings in {path}: {e}")
        return result.ok(cls(nodes))

    @classmethod
    def from_configuration(cls, configuration: Configuration) -> NetworkSettings:
        """Load the configuration's settings, or start empty."""
        path = configuration.network_settings_file
        if not path.exists():
            return cls()
        return cls.load(path).match(
            ok=lambda settings: settings,
            error=lambda message: cls._empty_after_error(message),
        )

    @classmethod
    def _empty_after_error(cls, message: str) -> NetworkSettings:
        logger.warning(f"{message}, starting with empty network settings")
        return cls()

    def node_settings(self, name: str) -> NodeNetwork:
        """Stored record of the node.

        Raises KeyError if reachability was never established for the node.
        """
        return self._nodes[name]

    def add_network_configuration(self, name: str, network: NodeNetwork) -> None:
        self._nodes[name] = network

    def node_names(self) -> list[str]:
        return sorted(self._nodes)

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def __iter__(self) -> Iterator[str]:
        return iter(self.node_names())

    def __len__(self) -> int:
        return len(self._nodes)

    def to_dict(self) -> dict[str, dict[str, str]]:
        """Plain mapping in stable order, node names sorted."""
        return {
            name: self._nodes[name].model_dump(exclude_none=True)
            for name in self.node_names()
        }

    def to_flat_lines(self) -> list[str]:
        lines = []
        for name, record in self.to_dict().items():
            for field, key in FLAT_KEYS.items():
                if field in record:
                    lines.append(f"{name}_{key}={record[field]}")
        return lines

    def store_network_configuration(self, configuration: Configuration) -> None:
        """Rewrite the configuration's settings files with the current mapping."""
        self.write(configuration.network_settings_file)
        flat_file = configuration.network_config_file
        flat_file.write_text("\n".join(self.to_flat_lines()) + "\n")
        logger.info(f"Network settings of {len(self)} nodes stored in {configuration.network_settings_file}")

    def write(self, path: str | Path) -> None:
        Path(path).write_text(
            yaml.safe_dump(self.to_dict(), sort_keys=False, default_flow_style=False)
        )
