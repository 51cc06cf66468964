"""Tests for container address discovery from /proc/net/fib_trie."""

from unittest.mock import MagicMock

from testbed import result
from testbed.orchestrators.fib_trie import (
    candidate_addresses,
    discover_container_address,
    extract_ip_addresses,
    select_public_address,
)

FIB_TRIE = """\
Main:
  +-- 0.0.0.0/0 3 0 5
     |-- 0.0.0.0
        /0 universe UNICAST
     +-- 10.0.0.0/8 2 0 2
        |-- 10.0.0.0
           /24 link UNICAST
        |-- 10.0.0.5
           /32 host LOCAL
     +-- 127.0.0.0/8 2 0 2
        |-- 127.0.0.1
           /32 host LOCAL
     |-- 172.20.0.3
        /32 host LOCAL
Local:
  +-- 0.0.0.0/0 3 0 5
     |-- 10.0.0.5
        /32 host LOCAL
"""


class TestExtractAddresses:
    """Tests for fib_trie parsing."""

    def test_local_routes_only(self):
        assert extract_ip_addresses(FIB_TRIE) == [
            "10.0.0.5", "127.0.0.1", "172.20.0.3", "10.0.0.5",
        ]

    def test_single_local_address(self):
        contents = "  |-- 10.0.0.5\n     /32 host LOCAL\n"
        assert extract_ip_addresses(contents) == ["10.0.0.5"]

    def test_empty(self):
        assert extract_ip_addresses("") == []


class TestSelectAddress:
    """Tests for picking the public address."""

    def test_excludes_loopback_and_known(self):
        assert candidate_addresses(FIB_TRIE, "10.0.0.5") == ["172.20.0.3"]
        assert select_public_address(FIB_TRIE, "10.0.0.5").value == "172.20.0.3"

    def test_no_candidates(self):
        contents = "|-- 127.0.0.1\n   /32 host LOCAL\n|-- 10.0.0.5\n   /32 host LOCAL\n"
        assert select_public_address(contents, "10.0.0.5").is_error


class TestDiscoverContainerAddress:
    """Tests for discovery through the container runtime."""

    def test_reads_fib_trie_in_container(self):
        runtime = MagicMock()
        runtime.run_in_container.return_value = result.ok(FIB_TRIE)

        discovered = discover_container_address(runtime, "abc", "10.0.0.5")

        assert discovered.value == "172.20.0.3"
        runtime.run_in_container.assert_called_once_with("cat /proc/net/fib_trie", "abc")

    def test_exec_failure(self):
        runtime = MagicMock()
        runtime.run_in_container.return_value = result.error("no such container")

        discovered = discover_container_address(runtime, "abc", None)

        assert discovered.is_error
        assert "abc" in discovered.error
