"""Tests for adding an operator key to running nodes."""

from unittest.mock import MagicMock

import pytest

from testbed import result
from testbed.configuration import Configuration
from testbed.network_settings import NetworkSettings, NodeNetwork
from testbed.orchestrators.public_keys import PublicKeysInstaller, append_key_command

PUBLIC_KEY = "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAI operator@ci\n"


@pytest.fixture
def network_settings():
    settings = NetworkSettings()
    for index, node in enumerate(["node_a", "node_b"], start=1):
        settings.add_network_configuration(
            node,
            NodeNetwork(public_ip=f"54.0.0.{index}", user="ubuntu", key_file=f"/keys/{node}.pem"),
        )
    return settings


@pytest.fixture
def machine():
    machine = MagicMock()
    machine.run_command.return_value = result.ok("")
    return machine


class TestAppendKeyCommand:
    """Tests for the remote shell command."""

    def test_key_is_quoted_and_not_duplicated(self):
        command = append_key_command("ssh-rsa AAAA user@host")
        assert "mkdir -p ~/.ssh" in command
        assert "grep -qxF 'ssh-rsa AAAA user@host' ~/.ssh/authorized_keys" in command
        assert "echo 'ssh-rsa AAAA user@host' >> ~/.ssh/authorized_keys" in command


class TestPublicKeysInstaller:
    """Tests for PublicKeysInstaller.install()."""

    def test_key_put_to_stored_nodes(self, cloud_configuration, network_settings, machine):
        installer = PublicKeysInstaller(cloud_configuration, machine)

        outcome = installer.install(network_settings, PUBLIC_KEY)

        assert outcome.is_ok
        addresses = [call.args[0].public_ip for call in machine.run_command.call_args_list]
        assert addresses == ["54.0.0.1", "54.0.0.2"]
        command = machine.run_command.call_args.args[1]
        assert command == append_key_command(PUBLIC_KEY.strip())

    def test_selected_node_only(self, cloud_configuration, network_settings, machine):
        configuration = Configuration(cloud_configuration.path / "node_b")
        installer = PublicKeysInstaller(configuration, machine)

        assert installer.install(network_settings, PUBLIC_KEY).is_ok
        machine.run_command.assert_called_once()
        assert machine.run_command.call_args.args[0].public_ip == "54.0.0.2"

    def test_no_available_nodes(self, cloud_configuration, machine):
        outcome = PublicKeysInstaller(cloud_configuration, machine).install(NetworkSettings(), PUBLIC_KEY)

        assert outcome.error == "No available nodes"
        machine.run_command.assert_not_called()

    def test_stops_on_unreachable_node(self, cloud_configuration, network_settings, machine):
        machine.run_command.return_value = result.error("Connection refused")

        outcome = PublicKeysInstaller(cloud_configuration, machine).install(network_settings, PUBLIC_KEY)

        assert outcome.error == "Could not initiate connection to the node 'node_a'"
        assert machine.run_command.call_count == 1
