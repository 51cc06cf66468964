from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from testbed.config import Settings
from testbed.configuration import Configuration


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with small attempt counts and no waiting."""
    return Settings(
        attempts=3,
        ssh_attempts=2,
        ssh_retry_interval=0,
        task_wait_attempts=3,
        app_wait_attempts=3,
        poll_interval=0,
        deploy_retry_interval=0,
    )


def write_configuration(
    root: Path,
    name: str,
    provider: str,
    template: dict,
    stack: dict | None = None,
    roles: list[str] | None = None,
) -> Path:
    """Create a generated configuration directory under root."""
    template_path = root / f"{name}.json"
    template_path.write_text(json.dumps(template))
    path = root / name
    path.mkdir()
    (path / "template").write_text(str(template_path))
    (path / "provider").write_text(provider + "\n")
    for node in roles or []:
        (path / f"{node}.json").write_text(json.dumps({"name": node}))
        (path / f"{node}-config.json").write_text(json.dumps({"run_list": [f"role[{node}]"]}))
    if stack is not None:
        (path / "docker-configuration.yaml").write_text(yaml.safe_dump(stack))
    return path


@pytest.fixture
def make_configuration(tmp_path):
    """Factory building a Configuration from a template dict."""

    def _make(provider="aws", template=None, stack=None, roles=None, name="cluster", labels=None):
        path = write_configuration(tmp_path, name, provider, template or {}, stack, roles)
        return Configuration(path, labels)

    return _make


@pytest.fixture
def cloud_configuration(make_configuration):
    """Three aws nodes, each with a chef role."""
    return make_configuration(
        provider="aws",
        template={
            "node_a": {"box": "ubuntu_jammy_aws", "labels": ["first"]},
            "node_b": {"box": "ubuntu_jammy_aws"},
            "node_c": {"box": "ubuntu_jammy_aws", "labels": ["first"]},
        },
        roles=["node_a", "node_b", "node_c"],
    )


@pytest.fixture
def docker_configuration(make_configuration):
    """Docker configuration with a database and a maxscale service."""
    return make_configuration(
        provider="docker",
        template={
            "mariadb_000": {"box": "docker", "product": {"name": "mariadb", "version": "10.11"}},
            "maxscale_000": {"box": "docker", "product": {"name": "maxscale", "version": "23.08"}},
            "cookbook_path": "../cookbooks",
        },
        stack={
            "version": "3.7",
            "services": {
                "mariadb_000": {"image": "mariadb:10.11"},
                "maxscale_000": {"image": "mariadb/maxscale:23.08"},
            },
            "networks": {"default": {"driver": "overlay"}},
        },
    )
