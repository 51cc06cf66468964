"""Application readiness detection for stack containers.

The problem: a task in state "running" doesn't mean the product inside the
container accepts connections. MariaDB initializes its data directory and
restarts, MaxScale waits for its backends before reporting uptime.

Solution: product-specific probes that run a command inside the container.
Products pick their probe through ``ProductConfig.readiness_probe``; the
PROBES table maps that key to a probe class, anything unknown gets
NoopProbe.
"""

from __future__ import annotations

import logging
import re
import shlex
from abc import ABC, abstractmethod
from dataclasses import dataclass

from testbed.config import Settings
from testbed.products import get_readiness_probe_kind
from testbed.providers.base import ContainerRuntime

logger = logging.getLogger(__name__)

UPTIME_PATTERN = re.compile(r"^Uptime\s+(\d+)", re.MULTILINE)


@dataclass
class ReadinessResult:
    """Result of a readiness probe check."""

    is_ready: bool
    message: str = ""


class ReadinessProbe(ABC):
    """Base class for readiness probes."""

    def __init__(self, settings: Settings):
        self.settings = settings

    @abstractmethod
    def check(self, runtime: ContainerRuntime, container_id: str) -> ReadinessResult:
        """Check if the container's application is ready."""
        pass


class NoopProbe(ReadinessProbe):
    """No-op probe that always returns ready."""

    def check(self, runtime: ContainerRuntime, container_id: str) -> ReadinessResult:
        return ReadinessResult(is_ready=True, message="No readiness probe configured")


class SqlProbe(ReadinessProbe):
    """Run a trivial authenticated query with the mysql client."""

    def command(self) -> str:
        password = self.settings.mariadb_root_password
        auth = f" -p{shlex.quote(password)}" if password else ""
        return f"mysql -uroot{auth} -e 'SELECT 1'"

    def check(self, runtime: ContainerRuntime, container_id: str) -> ReadinessResult:
        return runtime.run_in_container(self.command(), container_id).match(
            ok=lambda _: ReadinessResult(is_ready=True, message="Database accepts queries"),
            error=lambda message: ReadinessResult(is_ready=False, message=str(message)),
        )


class MaxctrlProbe(ReadinessProbe):
    """Ask MaxScale for its uptime, ready once it is above zero."""

    COMMAND = "maxctrl --tsv show maxscale"

    def check(self, runtime: ContainerRuntime, container_id: str) -> ReadinessResult:
        return runtime.run_in_container(self.COMMAND, container_id).match(
            ok=self._parse_uptime,
            error=lambda message: ReadinessResult(is_ready=False, message=str(message)),
        )

    def _parse_uptime(self, output: str) -> ReadinessResult:
        match = UPTIME_PATTERN.search(output)
        if match is None:
            return ReadinessResult(is_ready=False, message="Uptime is not reported")
        uptime = int(match.group(1))
        if uptime > 0:
            return ReadinessResult(is_ready=True, message=f"MaxScale is up for {uptime}s")
        return ReadinessResult(is_ready=False, message="MaxScale is starting")


PROBES: dict[str, type[ReadinessProbe]] = {
    "none": NoopProbe,
    "sql": SqlProbe,
    "maxctrl": MaxctrlProbe,
}


def get_probe_for_product(product: str | None, settings: Settings) -> ReadinessProbe:
    """Get the readiness probe for a product name (None: no product)."""
    kind = get_readiness_probe_kind(product)
    probe_class = PROBES.get(kind, NoopProbe)
    return probe_class(settings)
