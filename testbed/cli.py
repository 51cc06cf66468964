"""Command line entry points.

    testbed up [--attempts N] [--recreate] [--labels a,b] CONFIG[/NODE]
    testbed show-network-config [--labels a,b] CONFIG[/NODE]
    testbed public-keys --key FILE [--labels a,b] CONFIG[/NODE]
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from testbed.config import Settings, settings
from testbed.configuration import Configuration
from testbed.network_settings import NetworkSettings
from testbed.orchestrators.public_keys import PublicKeysInstaller
from testbed.orchestrators.swarm import DockerSwarmConfigurator
from testbed.orchestrators.terraform import TerraformConfigurator
from testbed.providers.swarm import DockerSwarmRuntime
from testbed.providers.terraform import TerraformBackend
from testbed.remote import MachineConfigurator
from testbed.result import Result

logger = logging.getLogger(__name__)

SUCCESS_RESULT = 0
ERROR_RESULT = 1
ARGUMENT_ERROR_RESULT = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="testbed", description="Bring up test cluster nodes.")
    parser.add_argument("--log-level", default=None, help="Logging level (default: TESTBED_LOG_LEVEL)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    up = subparsers.add_parser("up", help="Bring up and configure the nodes of a configuration")
    up.add_argument("configuration", help="Configuration directory, optionally followed by /NODE")
    up.add_argument("--attempts", type=int, default=None, help="Attempts per node")
    up.add_argument("--recreate", action="store_true", help="Destroy existing nodes first")
    up.add_argument("--labels", default="", help="Comma separated node labels to bring up")

    show = subparsers.add_parser(
        "show-network-config", help="Regenerate the network settings of running nodes"
    )
    show.add_argument("configuration", help="Configuration directory, optionally followed by /NODE")
    show.add_argument("--labels", default="", help="Comma separated node labels")

    keys = subparsers.add_parser(
        "public-keys", help="Add a public key to authorized_keys of running nodes"
    )
    keys.add_argument("configuration", help="Configuration directory, optionally followed by /NODE")
    keys.add_argument("--key", required=True, help="Public key file to put to the nodes")
    keys.add_argument("--labels", default="", help="Comma separated node labels")
    return parser


def run_settings(args: argparse.Namespace, base: Settings) -> Settings:
    """Settings of this run with command line overrides applied."""
    update = {}
    if getattr(args, "attempts", None) is not None:
        update["attempts"] = args.attempts
    if getattr(args, "recreate", False):
        update["recreate"] = True
    if args.log_level:
        update["log_level"] = args.log_level
    return base.model_copy(update=update)


def up(configuration: Configuration, run: Settings) -> Result:
    if configuration.is_docker:
        configurator = DockerSwarmConfigurator(configuration, run, DockerSwarmRuntime(run))
        return configurator.configure()
    configurator = TerraformConfigurator(
        configuration, run, TerraformBackend(configuration), MachineConfigurator(run)
    )
    return configurator.up()


def show_network_config(configuration: Configuration, run: Settings) -> Result:
    configurator = TerraformConfigurator(
        configuration, run, TerraformBackend(configuration), MachineConfigurator(run)
    )
    return configurator.refresh_network_settings()


def public_keys(
    configuration: Configuration,
    run: Settings,
    network_settings: NetworkSettings,
    public_key: str,
) -> Result:
    installer = PublicKeysInstaller(configuration, MachineConfigurator(run))
    return installer.install(network_settings, public_key)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    run = run_settings(args, settings)
    logging.basicConfig(
        level=run.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    labels = [label for label in args.labels.split(",") if label]
    try:
        configuration = Configuration(args.configuration, labels or None)
    except (OSError, ValueError) as e:
        logger.error(str(e))
        return ARGUMENT_ERROR_RESULT

    if args.command == "up":
        outcome = up(configuration, run)
    elif args.command == "public-keys":
        try:
            public_key = Path(args.key).read_text()
        except OSError as e:
            logger.error(f"Please specify the key file to put to nodes: {e}")
            return ARGUMENT_ERROR_RESULT
        loaded = NetworkSettings.load(configuration.network_settings_file)
        if loaded.is_error:
            logger.error(loaded.error)
            return ARGUMENT_ERROR_RESULT
        outcome = public_keys(configuration, run, loaded.value, public_key)
    else:
        if configuration.is_docker:
            logger.error("Network settings of docker configurations are written by 'up'")
            return ARGUMENT_ERROR_RESULT
        outcome = show_network_config(configuration, run)

    return outcome.match(
        ok=lambda message: _report_success(message),
        error=lambda error: _report_error(error),
    )


def _report_success(message) -> int:
    if message:
        logger.info(str(message))
    return SUCCESS_RESULT


def _report_error(error) -> int:
    errors = error if isinstance(error, list) else [error]
    for message in errors:
        if message:
            logger.error(str(message))
    return ERROR_RESULT


if __name__ == "__main__":
    raise SystemExit(main())
