"""Address discovery from the kernel routing table of a container.

``/proc/net/fib_trie`` lists every local address of the network namespace as
a leaf followed by a ``/32 host LOCAL`` line:

    |-- 10.0.1.7
       /32 host LOCAL
    |-- 172.20.0.3
       /32 host LOCAL
"""

from __future__ import annotations

import re

from testbed import result
from testbed.providers.base import ContainerRuntime
from testbed.result import Result

IPV4_PATTERN = re.compile(r"\d+\.\d+\.\d+\.\d+")
LOCAL_ROUTE_MARKER = "host LOCAL"
LOOPBACK = "127.0.0.1"
FIB_TRIE_COMMAND = "cat /proc/net/fib_trie"


def extract_ip_addresses(fib_contents: str) -> list[str]:
    """Addresses of all locally owned routes, in table order."""
    addresses = []
    last_address_line = ""
    for line in fib_contents.splitlines():
        if LOCAL_ROUTE_MARKER in line:
            found = IPV4_PATTERN.search(last_address_line)
            if found:
                addresses.append(found.group(0))
        elif IPV4_PATTERN.search(line):
            last_address_line = line
    return addresses


def candidate_addresses(fib_contents: str, known_address: str | None) -> list[str]:
    """Local addresses other than loopback and the already known address."""
    return [
        address for address in extract_ip_addresses(fib_contents)
        if address not in (LOOPBACK, known_address)
    ]


def select_public_address(fib_contents: str, known_address: str | None) -> Result[str]:
    candidates = candidate_addresses(fib_contents, known_address)
    if not candidates:
        return result.error("No address besides loopback and the known one")
    return result.ok(candidates[0])


def discover_container_address(
    runtime: ContainerRuntime,
    container_id: str,
    known_address: str | None,
) -> Result[str]:
    """Find the container address that is neither loopback nor known_address."""
    return runtime.run_in_container(FIB_TRIE_COMMAND, container_id).and_then(
        lambda contents: select_public_address(contents, known_address)
    ).match(
        ok=result.ok,
        error=lambda message: result.error(
            f"Unable to determine the IP address of the container {container_id}: {message}"
        ),
    )
