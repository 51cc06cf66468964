"""Collaborator interfaces used by the orchestrators."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from testbed.network_settings import NodeNetwork
    from testbed.result import Result


class TaskStatus(str, Enum):
    """Swarm task states the orchestrator distinguishes."""
    NEW = "new"
    PENDING = "pending"
    ASSIGNED = "assigned"
    PREPARING = "preparing"
    STARTING = "starting"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"
    REJECTED = "rejected"
    SHUTDOWN = "shutdown"
    ORPHANED = "orphaned"


# States a task never leaves
TERMINAL_TASK_STATES = {
    TaskStatus.COMPLETE.value,
    TaskStatus.FAILED.value,
    TaskStatus.REJECTED.value,
    TaskStatus.SHUTDOWN.value,
    TaskStatus.ORPHANED.value,
}


@dataclass
class ResourceNetwork:
    """Connection parameters of a cloud resource as reported by terraform."""
    public_ip: str
    private_ip: str
    user: str
    hostname: str
    key_file: str


@dataclass
class TaskRecord:
    """One scheduled container of a stack service."""
    task_id: str
    service_name: str
    desired_state: str = ""
    container_id: str | None = None
    private_ip: str | None = None
    public_ip: str | None = None  # bridge network address
    finished: bool = False
    running: bool = False
    ready: bool = False


@dataclass
class TaskState:
    """Current state of a task."""
    state: str
    desired_state: str = ""
    ip: str | None = None
    container_id: str | None = None
    error: str = ""


@dataclass
class ExtraFile:
    """Local file uploaded to the node before provisioning."""
    source: Path
    target: str


class InfrastructureBackend(ABC):
    """Declarative cloud infrastructure (terraform)."""

    @abstractmethod
    def apply(self, node: str) -> Result:
        """Create or update the node's resources."""
        ...

    @abstractmethod
    def destroy(self, node: str) -> Result:
        """Destroy the node's resources."""
        ...

    @abstractmethod
    def is_running(self, node: str) -> bool:
        ...

    @abstractmethod
    def resource_network(self, node: str) -> Result[ResourceNetwork]:
        ...


class RemoteExecutor(ABC):
    """Command execution and provisioning on remote nodes."""

    @abstractmethod
    def run_command(self, network: NodeNetwork, command: str) -> Result[str]:
        """Run the command on the node, returning its stdout."""
        ...

    @abstractmethod
    def configure(
        self,
        network: NodeNetwork,
        config_name: str,
        extra_files: list[ExtraFile] | None = None,
    ) -> Result:
        """Upload files and run chef-solo with the named node config."""
        ...


class ContainerRuntime(ABC):
    """Container stack runtime (Docker Swarm)."""

    @abstractmethod
    def deploy_stack(self, stack_file: Path, stack_name: str) -> Result:
        ...

    @abstractmethod
    def destroy_stack(self, stack_name: str) -> Result:
        ...

    @abstractmethod
    def create_bridge_network(self, name: str) -> Result:
        """Create the bridge network unless it already exists."""
        ...

    @abstractmethod
    def list_tasks(self, stack_name: str) -> Result[list[TaskRecord]]:
        ...

    @abstractmethod
    def task_state_and_ip(self, task_id: str) -> Result[TaskState]:
        ...

    @abstractmethod
    def run_in_container(self, command: str, container_id: str) -> Result[str]:
        """Run the command in the container, Error on non-zero exit."""
        ...

    @abstractmethod
    def connect_network(self, network: str, container_id: str) -> Result:
        ...

    @abstractmethod
    def list_container_ips(self, network: str) -> Result[dict[str, str]]:
        """Map of container id to its address on the network."""
        ...

    @abstractmethod
    def container_logs(self, container_id: str) -> str:
        ...

    def task_table(self, stack_name: str) -> str:
        """Human readable task listing shown when the stack fails.

        Default implementation returns an empty string.
        """
        return ""
