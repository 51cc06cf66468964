"""Tests for reading configuration directories."""

import pytest
import yaml

from testbed.configuration import Configuration


class TestConfigurationPaths:
    """Tests for locating the configuration and the selected nodes."""

    def test_whole_configuration(self, cloud_configuration):
        assert cloud_configuration.name == "cluster"
        assert cloud_configuration.provider == "aws"
        assert not cloud_configuration.is_docker
        assert cloud_configuration.node_names == ["node_a", "node_b", "node_c"]

    def test_single_node(self, cloud_configuration):
        configuration = Configuration(cloud_configuration.path / "node_b")
        assert configuration.node_names == ["node_b"]
        assert configuration.path == cloud_configuration.path

    def test_unknown_node(self, cloud_configuration):
        with pytest.raises(ValueError):
            Configuration(cloud_configuration.path / "node_x")

    def test_not_a_configuration(self, tmp_path):
        with pytest.raises(ValueError):
            Configuration(tmp_path)

    def test_labels_select_nodes(self, cloud_configuration):
        configuration = Configuration(cloud_configuration.path, ["first"])
        assert configuration.node_names == ["node_a", "node_c"]

    def test_unmatched_labels(self, cloud_configuration):
        with pytest.raises(ValueError):
            Configuration(cloud_configuration.path, ["missing"])

    def test_settings_files_next_to_directory(self, cloud_configuration):
        parent = cloud_configuration.path.parent
        assert cloud_configuration.network_settings_file == parent / "cluster_network_settings.yaml"
        assert cloud_configuration.network_config_file == parent / "cluster_network_config"

    def test_role_files(self, cloud_configuration):
        assert cloud_configuration.role_file("node_a").exists()
        assert cloud_configuration.node_config_file("node_a").name == "node_a-config.json"


class TestDockerConfiguration:
    """Tests for docker specific accessors."""

    def test_non_node_template_keys_are_ignored(self, docker_configuration):
        assert docker_configuration.is_docker
        assert docker_configuration.node_names == ["mariadb_000", "maxscale_000"]

    def test_stack_names(self, docker_configuration):
        assert docker_configuration.stack_name == "cluster"
        assert docker_configuration.bridge_network_name == "cluster_bridge"

    def test_stack_definition(self, docker_configuration):
        definition = docker_configuration.stack_definition().value
        assert set(definition["services"]) == {"mariadb_000", "maxscale_000"}

    def test_stack_definition_without_services(self, docker_configuration):
        docker_configuration.stack_file.write_text(yaml.safe_dump({"version": "3.7"}))
        assert docker_configuration.stack_definition().value["services"] == {}

    def test_stack_definition_with_empty_services(self, docker_configuration):
        docker_configuration.stack_file.write_text("version: '3.7'\nservices:\n")
        assert docker_configuration.stack_definition().value["services"] == {}

    def test_missing_stack_definition(self, docker_configuration):
        docker_configuration.stack_file.unlink()
        assert docker_configuration.stack_definition().is_error

    def test_malformed_stack_definition(self, docker_configuration):
        docker_configuration.stack_file.write_text("services: [unclosed\n")
        assert docker_configuration.stack_definition().is_error

    def test_product_name(self, docker_configuration):
        assert docker_configuration.product_name("maxscale_000") == "maxscale"
        assert docker_configuration.product_name("unknown") is None


class TestProducts:
    """Tests for product entries of template nodes."""

    def test_products_list_and_cnf_path(self, make_configuration):
        configuration = make_configuration(
            template={
                "node": {
                    "products": [
                        {"name": "mariadb", "cnf_template": "server1.cnf", "cnf_template_path": "cnf"},
                        {"name": "packages"},
                    ]
                }
            }
        )
        assert [p["name"] for p in configuration.products_info("node")] == ["mariadb", "packages"]
        assert configuration.cnf_template_path("node") == (
            configuration.template_path.parent / "cnf"
        ).resolve()

    def test_no_cnf_path(self, cloud_configuration):
        assert cloud_configuration.cnf_template_path("node_a") is None
