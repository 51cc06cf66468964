"""Per-node convergence of terraform and Docker Swarm configurations."""

from testbed.orchestrators.public_keys import PublicKeysInstaller
from testbed.orchestrators.swarm import DockerSwarmConfigurator
from testbed.orchestrators.terraform import TerraformConfigurator

__all__ = [
    "DockerSwarmConfigurator",
    "PublicKeysInstaller",
    "TerraformConfigurator",
]
