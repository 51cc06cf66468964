"""Collaborators driving terraform, SSH and the Docker engine."""

from testbed.providers.base import (
    ContainerRuntime,
    ExtraFile,
    InfrastructureBackend,
    RemoteExecutor,
    ResourceNetwork,
    TaskRecord,
    TaskState,
    TaskStatus,
)
from testbed.providers.swarm import DockerSwarmRuntime
from testbed.providers.terraform import TerraformBackend

__all__ = [
    # Interfaces and records
    "ContainerRuntime",
    "InfrastructureBackend",
    "RemoteExecutor",
    "ExtraFile",
    "ResourceNetwork",
    "TaskRecord",
    "TaskState",
    "TaskStatus",
    # Implementations
    "DockerSwarmRuntime",
    "TerraformBackend",
]
