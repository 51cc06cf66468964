"""Product-specific settings for provisioned nodes.

This module is the registry of products that can be installed on test
nodes: the names templates may use for them, where cnf templates live
on the node and how container health is probed.

When adding a new product:
1. Add entry to PRODUCT_CONFIGS
2. If its containers need a health probe, add a probe class to
   testbed.readiness.PROBES and reference its key in readiness_probe
"""

from dataclasses import dataclass, field
import logging
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class ProductConfig:
    """Configuration of an installable product.

    Fields:
        name: Product identifier used in templates (e.g., "mdbe")
        files_location: Directory on the node where cnf templates are uploaded
        aliases: Alternative product names that resolve to this product
        readiness_probe: Key into testbed.readiness.PROBES ("none" = always ready)
    """

    name: str
    files_location: Optional[str] = None
    aliases: list[str] = field(default_factory=list)

    # - "none": container is ready once its task runs
    # - "sql": authenticated trivial query through the mysql client
    # - "maxctrl": MaxScale uptime reported by maxctrl
    readiness_probe: str = "none"


PRODUCT_CONFIGS: dict[str, ProductConfig] = {
    "mariadb": ProductConfig(
        name="mariadb",
        files_location="cookbooks/mariadb/files",
        aliases=["mariadb_server"],
        readiness_probe="sql",
    ),
    "mdbe": ProductConfig(
        name="mdbe",
        files_location="cookbooks/mariadb/files",
        aliases=["mariadb_enterprise"],
        readiness_probe="sql",
    ),
    "galera": ProductConfig(
        name="galera",
        files_location="cookbooks/galera/files",
        readiness_probe="sql",
    ),
    "mysql": ProductConfig(
        name="mysql",
        files_location="cookbooks/mysql/files",
        readiness_probe="sql",
    ),
    "maxscale": ProductConfig(
        name="maxscale",
        files_location="cookbooks/mariadb-maxscale/files",
        aliases=["maxscale_ci"],
        readiness_probe="maxctrl",
    ),
    "columnstore": ProductConfig(name="columnstore"),
    "packages": ProductConfig(name="packages"),
    "docker": ProductConfig(name="docker"),
}

_ALIAS_TO_PRODUCT: dict[str, str] = {}
for _key, _config in PRODUCT_CONFIGS.items():
    for _alias in _config.aliases:
        _ALIAS_TO_PRODUCT[_alias] = _key


def get_product_name(product: str) -> str:
    """Resolve a product alias to its canonical name."""
    product_lower = product.lower()
    return _ALIAS_TO_PRODUCT.get(product_lower, product_lower)


def get_product_config(product: str | None) -> ProductConfig | None:
    if not product:
        return None
    return PRODUCT_CONFIGS.get(get_product_name(product))


def get_files_location(product: str) -> str | None:
    """Directory on the node where the product's cnf templates belong."""
    config = get_product_config(product)
    if config is None:
        logger.debug(f"Unknown product {product}, no files location")
        return None
    return config.files_location


def get_readiness_probe_kind(product: str | None) -> str:
    config = get_product_config(product)
    if config is None:
        return "none"
    return config.readiness_probe
