"""SSH command execution and chef-solo provisioning of remote nodes.

The orchestrators are synchronous, so every public call opens its own SSH
connection inside ``asyncio.run`` and closes it before returning. Files are
laid out on the node as chef-solo expects them:

    ~/chef-solo/solo.rb
    ~/chef-solo/cookbooks/...
    ~/chef-solo/roles/<node>.json
    ~/chef-solo/configs/<node>-config.json
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import shlex

import asyncssh

from testbed import result
from testbed.config import Settings
from testbed.network_settings import NodeNetwork
from testbed.providers.base import ExtraFile, RemoteExecutor
from testbed.result import Result

logger = logging.getLogger(__name__)

SOLO_CONFIG = """\
cookbook_path File.join(__dir__, 'cookbooks')
role_path File.join(__dir__, 'roles')
file_cache_path File.join(__dir__, 'cache')
"""

CHEF_INSTALL_URL = "https://omnitruck.chef.io/install.sh"


class MachineConfigurator(RemoteExecutor):
    """Runs commands and chef-solo on nodes over SSH."""

    def __init__(self, settings: Settings, chef_version: str = "14.13.11"):
        self.settings = settings
        self.chef_version = chef_version

    def _connect(self, network: NodeNetwork):
        return asyncssh.connect(
            network.public_ip,
            username=network.user,
            client_keys=[network.key_file] if network.key_file else None,
            known_hosts=None,  # Nodes are recreated with new host keys
            connect_timeout=self.settings.ssh_connect_timeout,
        )

    def _run_sync(self, coro, network: NodeNetwork, action: str) -> Result:
        try:
            return asyncio.run(coro)
        # Unreadable key files raise asyncssh.KeyImportError, a ValueError
        except (asyncssh.Error, OSError, ValueError, asyncio.TimeoutError) as e:
            return result.error(f"Unable to {action} on {network.public_ip}: {e}")

    def run_command(self, network: NodeNetwork, command: str) -> Result[str]:
        return self._run_sync(
            self._run_command(network, command), network, f"run '{command}'"
        )

    async def _run_command(self, network: NodeNetwork, command: str) -> Result[str]:
        async with self._connect(network) as conn:
            return await self._exec(conn, command)

    async def _exec(self, conn: asyncssh.SSHClientConnection, command: str) -> Result[str]:
        completed = await conn.run(command, check=False)
        stdout = completed.stdout or ""
        if completed.exit_status != 0:
            stderr = (completed.stderr or "").strip()
            return result.error(
                f"Command '{command}' exited with {completed.exit_status}: {stderr or stdout.strip()}"
            )
        return result.ok(stdout)

    def configure(
        self,
        network: NodeNetwork,
        config_name: str,
        extra_files: list[ExtraFile] | None = None,
    ) -> Result:
        return self._run_sync(
            self._configure(network, config_name, extra_files or []),
            network,
            "provision node with chef",
        )

    async def _configure(
        self,
        network: NodeNetwork,
        config_name: str,
        extra_files: list[ExtraFile],
    ) -> Result:
        chef_dir = self.settings.chef_dir
        async with self._connect(network) as conn:
            install = await self._install_chef(conn)
            if install.is_error:
                return install

            async with conn.start_sftp_client() as sftp:
                for directory in ("roles", "configs", "cookbooks"):
                    await sftp.makedirs(posixpath.join(chef_dir, directory), exist_ok=True)
                async with sftp.open(posixpath.join(chef_dir, "solo.rb"), "w") as solo:
                    await solo.write(SOLO_CONFIG)
                if self.settings.cookbooks_path:
                    await sftp.put(
                        self.settings.cookbooks_path,
                        posixpath.join(chef_dir, "cookbooks"),
                        recurse=True,
                    )
                for extra_file in extra_files:
                    target = posixpath.join(chef_dir, extra_file.target)
                    await sftp.makedirs(posixpath.dirname(target), exist_ok=True)
                    await sftp.put(str(extra_file.source), target)
                    logger.debug(f"Uploaded {extra_file.source} to {target}")

            config_path = posixpath.join(chef_dir, "configs", config_name)
            logger.info(f"Running chef-solo with {config_name} on {network.public_ip}")
            return await self._exec(
                conn,
                f"sudo chef-solo -c {shlex.quote(posixpath.join(chef_dir, 'solo.rb'))}"
                f" -j {shlex.quote(config_path)}",
            )

    async def _install_chef(self, conn: asyncssh.SSHClientConnection) -> Result:
        found = await self._exec(conn, "command -v chef-solo")
        if found.is_ok:
            return found
        logger.info(f"Installing chef {self.chef_version}")
        return await self._exec(
            conn,
            f"curl -sL {CHEF_INSTALL_URL} | sudo bash -s -- -v {shlex.quote(self.chef_version)}",
        )
