"""Read-only view of a generated configuration directory.

A configuration directory is produced by the generator before ``up`` runs:

    ten_machines/
        template                        path of the template JSON
        provider                        aws | gcp | digitalocean | docker
        node_000.json                   chef role of the node
        node_000-config.json            chef-solo node config
        docker-configuration.yaml       stack definition (docker only)
        main.tf ...                     terraform files (cloud providers)
    ten_machines_network_settings.yaml  written by the orchestrators
    ten_machines_network_config         flat variant of the settings

``Configuration("ten_machines/node_000")`` selects a single node of the
configuration.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from testbed import result
from testbed.result import Result

logger = logging.getLogger(__name__)

TEMPLATE_FILE = "template"
PROVIDER_FILE = "provider"
STACK_FILE = "docker-configuration.yaml"
STACK_PARTIAL_FILE = "docker-partial-configuration.yaml"
DOCKER_PROVIDER = "docker"

# Template keys that describe nodes' products
PRODUCT_KEYS = ("product", "products")


def is_configuration_directory(path: Path) -> bool:
    return (
        path.is_dir()
        and (path / TEMPLATE_FILE).is_file()
        and (path / PROVIDER_FILE).is_file()
    )


class Configuration:
    """Configuration directory together with the selected node set."""

    def __init__(self, spec: str | Path, labels: list[str] | None = None):
        spec = Path(spec)
        if is_configuration_directory(spec):
            self.path = spec.resolve()
            node = None
        elif is_configuration_directory(spec.parent):
            self.path = spec.parent.resolve()
            node = spec.name
        else:
            raise ValueError(f"Specified path {spec} does not point to configuration directory")

        self.name = self.path.name
        self.provider = (self.path / PROVIDER_FILE).read_text().strip()
        self.template_path = self._resolve_template_path()
        self.template = self._read_template()

        if node is not None and node not in self.template:
            raise ValueError(f"Node '{node}' is not defined in {self.template_path}")
        self.node_names = self._select_nodes(node, labels)
        logger.info(f"Using provider {self.provider} for nodes {', '.join(self.node_names)}")

    def _resolve_template_path(self) -> Path:
        template_file = self.path / TEMPLATE_FILE
        template_path = Path(template_file.read_text().strip())
        if not template_path.is_absolute():
            template_path = (self.path / template_path).resolve()
        if not template_path.is_file():
            raise ValueError(
                f"The template {template_path} specified in {template_file} does not exist."
            )
        return template_path

    def _read_template(self) -> dict[str, dict[str, Any]]:
        try:
            template = json.loads(self.template_path.read_text())
        except json.JSONDecodeError as e:
            raise ValueError(f"Unable to parse template {self.template_path}: {e}") from e
        # Non-node keys (e.g. "cookbook_path") hold plain values
        return {name: node for name, node in template.items() if isinstance(node, dict)}

    def _select_nodes(self, node: str | None, labels: list[str] | None) -> list[str]:
        if node is not None:
            return [node]
        names = list(self.template)
        if labels:
            names = [
                name for name in names
                if set(labels) & set(self.template[name].get("labels", []))
            ]
            if not names:
                raise ValueError(f"No nodes with labels {', '.join(labels)} in {self.name}")
        return names

    @property
    def is_docker(self) -> bool:
        return self.provider == DOCKER_PROVIDER

    @property
    def network_settings_file(self) -> Path:
        return self.path.parent / f"{self.name}_network_settings.yaml"

    @property
    def network_config_file(self) -> Path:
        return self.path.parent / f"{self.name}_network_config"

    @property
    def stack_file(self) -> Path:
        return self.path / STACK_FILE

    @property
    def stack_partial_file(self) -> Path:
        return self.path / STACK_PARTIAL_FILE

    @property
    def stack_name(self) -> str:
        return self.name

    @property
    def bridge_network_name(self) -> str:
        return f"{self.name}_bridge"

    def role_file(self, node: str) -> Path:
        return self.path / f"{node}.json"

    def node_config_file(self, node: str) -> Path:
        return self.path / f"{node}-config.json"

    def stack_definition(self) -> Result[dict[str, Any]]:
        """Full stack definition with an always present services mapping."""
        try:
            definition = yaml.safe_load(self.stack_file.read_text()) or {}
        except (OSError, yaml.YAMLError) as e:
            return result.error(f"Unable to read stack definition {self.stack_file}: {e}")
        if not isinstance(definition, dict):
            return result.error(f"Stack definition {self.stack_file} is not a mapping")
        services = definition.get("services") or {}
        if not isinstance(services, dict):
            return result.error(f"Services of stack definition {self.stack_file} are not a mapping")
        definition["services"] = services
        return result.ok(definition)

    def products_info(self, node: str) -> list[dict[str, Any]]:
        """Product entries of the node, whether given as one product or a list."""
        node_definition = self.template.get(node, {})
        products: list[dict[str, Any]] = []
        for key in PRODUCT_KEYS:
            value = node_definition.get(key)
            if isinstance(value, dict):
                products.append(value)
            elif isinstance(value, list):
                products.extend(item for item in value if isinstance(item, dict))
        return products

    def product_name(self, node: str) -> str | None:
        """Name of the node's first product, used to pick a health probe."""
        products = self.products_info(node)
        return products[0].get("name") if products else None

    def cnf_template_path(self, node: str) -> Path | None:
        """Directory holding the node's cnf templates, if any is configured."""
        for product in self.products_info(node):
            path = product.get("cnf_template_path")
            if path:
                path = Path(path).expanduser()
                if not path.is_absolute():
                    path = (self.template_path.parent / path).resolve()
                return path
        return None
