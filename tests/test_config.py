"""Tests for configuration loading and validation."""

import pytest
import yaml

from azure_classic_provisioner.config import AppConfig, load_config
from azure_classic_provisioner.exceptions import ConfigurationError


def _write_config(tmp_path, data) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump(data))
    return str(path)


class TestLoadConfig:
    def test_minimal_valid_config(self, tmp_path):
        data = {"azure": {"subscription_id": "sub-123"}}
        config = load_config(_write_config(tmp_path, data))
        assert config.azure.subscription_id == "sub-123"
        assert config.azure.api_version == "2015-04-01"
        assert config.instances.os_type == "windows"
        assert config.storage.max_workers is None
        assert config.remote.endpoint_name == "WinRmHTTPs"

    def test_missing_file_raises(self):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config("/nonexistent/file.yaml")

    def test_non_mapping_raises(self, tmp_path):
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(_write_config(tmp_path, ["a", "b"]))

    def test_missing_subscription_id_raises(self, tmp_path):
        with pytest.raises(ConfigurationError, match="subscription_id"):
            load_config(_write_config(tmp_path, {"azure": {}}))

    def test_unknown_credential_type(self, tmp_path):
        data = {"azure": {"subscription_id": "s", "credential_type": "password"}}
        with pytest.raises(ConfigurationError, match="credential_type"):
            load_config(_write_config(tmp_path, data))

    def test_certificate_requires_path(self, tmp_path):
        data = {"azure": {"subscription_id": "s", "credential_type": "certificate"}}
        with pytest.raises(ConfigurationError, match="certificate_path"):
            load_config(_write_config(tmp_path, data))

    def test_invalid_os_type(self, tmp_path):
        data = {"azure": {"subscription_id": "s"}, "instances": {"os_type": "solaris"}}
        with pytest.raises(ConfigurationError, match="os_type"):
            load_config(_write_config(tmp_path, data))

    def test_worker_count_must_be_positive(self, tmp_path):
        data = {"azure": {"subscription_id": "s"}, "storage": {"max_workers": 0}}
        with pytest.raises(ConfigurationError, match="max_workers"):
            load_config(_write_config(tmp_path, data))

    def test_invalid_log_format(self, tmp_path):
        data = {"azure": {"subscription_id": "s"}, "logging": {"format": "xml"}}
        with pytest.raises(ConfigurationError, match="logging.format"):
            load_config(_write_config(tmp_path, data))

    def test_env_var_interpolation(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_ADMIN_PASSWORD", "pa55word")
        data = {"azure": {"subscription_id": "s"}, "instances": {"admin_password": "${TEST_ADMIN_PASSWORD}"}}
        config = load_config(_write_config(tmp_path, data))
        assert config.instances.admin_password == "pa55word"

    def test_env_var_missing_raises(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SURELY_MISSING_VAR", raising=False)
        data = {"azure": {"subscription_id": "${SURELY_MISSING_VAR}"}}
        with pytest.raises(ConfigurationError, match="SURELY_MISSING_VAR"):
            load_config(_write_config(tmp_path, data))

    def test_full_config(self, tmp_path):
        data = {
            "azure": {
                "subscription_id": "s1",
                "credential_type": "certificate",
                "certificate_path": "/etc/azure/mgmt.pem",
                "operation_poll_seconds": 1,
            },
            "instances": {"os_type": "linux", "admin_username": "ops", "storage_account": "vhdstore"},
            "storage": {"account_name": "backups", "max_workers": 8},
            "remote": {"username": "admin", "verify_ssl": False},
            "logging": {"level": "DEBUG", "format": "text"},
            "unknown_section": {"ignored": True},
        }
        config = load_config(_write_config(tmp_path, data))
        assert isinstance(config, AppConfig)
        assert config.azure.certificate_path == "/etc/azure/mgmt.pem"
        assert config.instances.storage_account == "vhdstore"
        assert config.storage.max_workers == 8
        assert config.remote.verify_ssl is False
        assert config.logging.format == "text"
