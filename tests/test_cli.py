"""Tests for the CLI entry point."""

import logging
from unittest.mock import MagicMock, patch

import pytest
import yaml

from azure_classic_provisioner.cli import main
from azure_classic_provisioner.exceptions import FleetSubmissionFailure, ModeConflict


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({
        "azure": {"subscription_id": "sub-123"},
        "storage": {"account_name": "acct", "account_key": "a2V5"},
        "logging": {"format": "text"},
    }))
    return str(path)


def _plan(*names):
    plan = MagicMock()
    plan.instances = [MagicMock(computer_name=name) for name in names]
    return plan


class TestValidate:
    def test_validate_valid_config(self, config_path):
        assert main(["-c", config_path, "validate"]) == 0

    def test_validate_invalid_config(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"azure": {}}))
        assert main(["-c", str(path), "validate"]) == 1

    def test_missing_config_file(self):
        assert main(["-c", "/nonexistent/config.yaml", "validate"]) == 1

    def test_command_required(self, config_path):
        with pytest.raises(SystemExit):
            main(["-c", config_path])


class TestCommands:
    def test_affinity_group(self, config_path):
        provisioner = MagicMock()
        result = main(
            ["-c", config_path, "affinity-group", "--name", "ag1", "--location", "West US"],
            provisioner=provisioner,
        )
        assert result == 0
        provisioner.ensure_affinity_group.assert_called_once_with("ag1", "West US")

    def test_network_site(self, config_path):
        provisioner = MagicMock()
        result = main([
            "-c", config_path, "network-site", "--name", "vnet1", "--subnet", "Subnet-1",
            "--affinity-group", "ag1", "--address-prefix", "10.0.0.0/16", "--subnet-prefix", "10.0.1.0/24",
        ], provisioner=provisioner)
        assert result == 0
        site, group = provisioner.ensure_network_site.call_args[0]
        assert site.name == "vnet1"
        assert site.subnet_prefix == "10.0.1.0/24"
        assert group == "ag1"

    def test_fleet_builds_request(self, config_path, capsys):
        provisioner = MagicMock()
        provisioner.deploy_fleet.return_value = _plan("web1", "web2")
        result = main([
            "-c", config_path, "fleet", "--service", "svc", "--base-name", "web", "--count", "2",
            "--new-fleet", "--size", "Small", "--image", "win2012", "--endpoint-name", "web",
            "--probe-protocol", "http", "--probe-path", "/health", "--location", "West US",
        ], provisioner=provisioner)

        assert result == 0
        request, site = provisioner.deploy_fleet.call_args[0]
        assert request.new_fleet is True
        assert request.count == 2
        assert request.endpoint.load_balancer_set_name == "webLB"
        assert request.endpoint.probe_path == "/health"
        assert site is None
        assert capsys.readouterr().out.split() == ["web1", "web2"]

    def test_fleet_with_site(self, config_path):
        provisioner = MagicMock()
        provisioner.deploy_fleet.return_value = _plan()
        main([
            "-c", config_path, "fleet", "--service", "svc", "--base-name", "web", "--count", "1",
            "--affinity-group", "ag1", "--vnet", "vnet1", "--subnet", "Subnet-1",
            "--address-prefix", "10.0.0.0/16", "--subnet-prefix", "10.0.1.0/24",
        ], provisioner=provisioner)
        _, site = provisioner.deploy_fleet.call_args[0]
        assert site.name == "vnet1"
        assert site.subnet_name == "Subnet-1"

    def test_site_prefix_without_site_name(self, config_path):
        with pytest.raises(SystemExit):
            main([
                "-c", config_path, "fleet", "--service", "svc", "--base-name", "web", "--count", "1",
                "--address-prefix", "10.0.0.0/16",
            ], provisioner=MagicMock())

    def test_mode_conflict_exit_code(self, config_path):
        provisioner = MagicMock()
        provisioner.deploy_fleet.side_effect = ModeConflict("fleet exists")
        result = main([
            "-c", config_path, "fleet", "--service", "svc", "--base-name", "web", "--count", "1", "--new-fleet",
        ], provisioner=provisioner)
        assert result == 1

    def test_submission_failure_exit_code(self, config_path):
        provisioner = MagicMock()
        provisioner.deploy_fleet.side_effect = FleetSubmissionFailure("quota", index=3, created=["web2"])
        result = main([
            "-c", config_path, "fleet", "--service", "svc", "--base-name", "web", "--count", "2",
        ], provisioner=provisioner)
        assert result == 1

    def test_stripe_disks(self, config_path):
        provisioner = MagicMock()
        result = main([
            "-c", config_path, "stripe-disks", "--service", "svc", "--instance", "sql1",
            "--pools", "2", "--database", "sales",
        ], provisioner=provisioner)
        assert result == 0
        provisioner.stripe_disks.assert_called_once_with("svc", "sql1", 2, "sales")


class TestUpload:
    def _container(self, exists):
        container = MagicMock()
        container.container_name = "backups"
        container.exists.return_value = exists
        return container

    def test_uploads_directory(self, config_path, tmp_path):
        source = tmp_path / "src"
        source.mkdir()
        (source / "a.bak").write_bytes(b"a")
        container = self._container(exists=False)
        with patch("azure_classic_provisioner.cli.build_container_client", return_value=container):
            result = main(["-c", config_path, "upload", "--source", str(source), "--container", "backups"])
        assert result == 0
        container.get_blob_client.assert_called_once_with("a.bak")

    def test_declined_prompt(self, config_path, tmp_path):
        container = self._container(exists=True)
        with patch("azure_classic_provisioner.cli.build_container_client", return_value=container), \
                patch("builtins.input", return_value="n"):
            result = main(["-c", config_path, "upload", "--source", str(tmp_path), "--container", "backups"])
        assert result == 1
        container.get_blob_client.assert_not_called()

    def test_force_skips_prompt(self, config_path, tmp_path):
        container = self._container(exists=True)
        with patch("azure_classic_provisioner.cli.build_container_client", return_value=container), \
                patch("builtins.input") as mock_input:
            result = main([
                "-c", config_path, "upload", "--source", str(tmp_path), "--container", "backups", "--force",
            ])
        assert result == 0
        mock_input.assert_not_called()
