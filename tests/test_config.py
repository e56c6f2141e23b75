"""Tests for scanner configuration."""

import os
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from network_inventory.config import ScannerConfig


@pytest.fixture
def temp_dir():
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


class TestFromEnv:
    """Tests for environment configuration."""

    def test_defaults(self):
        """Should use defaults when no env vars set."""
        with patch.dict(os.environ, {}, clear=True):
            config = ScannerConfig.from_env()

        assert config.default_range is None
        assert config.port_profile == "Default"
        assert config.connect_timeout_seconds == 0.15
        assert config.max_concurrent_hosts == 1
        assert config.enable_enrichment is False
        assert config.api_port == 8083

    def test_overrides(self):
        env = {
            "SCAN_RANGE": "10.0.0.0/24",
            "PORT_PROFILE": "VoIP",
            "CONNECT_TIMEOUT": "0.5",
            "MAX_CONCURRENT_HOSTS": "8",
            "DB_PATH": "/tmp/results.db",
            "ENABLE_ENRICHMENT": "TRUE",
            "WINRM_USERNAME": "scanner",
            "WINRM_PASSWORD": "secret",
        }
        with patch.dict(os.environ, env, clear=True):
            config = ScannerConfig.from_env()

        assert config.default_range == "10.0.0.0/24"
        assert config.port_profile == "VoIP"
        assert config.connect_timeout_seconds == 0.5
        assert config.max_concurrent_hosts == 8
        assert config.db_path == Path("/tmp/results.db")
        assert config.enable_enrichment is True
        assert config.winrm_credentials().username == "scanner"


class TestFromYaml:
    """Tests for YAML configuration."""

    def test_full_file(self, temp_dir):
        path = temp_dir / "config.yaml"
        path.write_text(
            "range: 192.168.10.0/24\n"
            "profiles:\n"
            "  active: Lab\n"
            "  custom:\n"
            "    Lab: [22, 80, 8443]\n"
            "probe:\n"
            "  connect_timeout: 0.3\n"
            "  max_concurrent_hosts: 4\n"
            "api:\n"
            "  port: 9000\n"
            "paths:\n"
            "  oui: /srv/oui.txt\n"
            "log_level: DEBUG\n"
        )

        config = ScannerConfig.from_yaml(path)

        assert config.default_range == "192.168.10.0/24"
        assert config.port_profile == "Lab"
        assert config.profiles["Lab"].ports == frozenset({22, 80, 8443})
        assert config.connect_timeout_seconds == 0.3
        assert config.max_concurrent_hosts == 4
        assert config.api_port == 9000
        assert config.oui_path == Path("/srv/oui.txt")
        assert config.log_level == "DEBUG"
        assert config.validate() == []

    def test_missing_file(self, temp_dir):
        config = ScannerConfig.from_yaml(temp_dir / "absent.yaml")

        assert config.port_profile == "Default"


class TestCredentials:
    """Credentials live in their own file."""

    def test_load_credentials(self, temp_dir):
        creds = temp_dir / "credentials.yaml"
        creds.write_text("winrm:\n  username: scanner\n  password: secret\n")
        config = ScannerConfig(credentials_path=creds)

        assert config.load_credentials() is True
        assert config.winrm_username == "scanner"
        assert config.winrm_password == "secret"

    def test_missing_credentials(self, temp_dir):
        config = ScannerConfig(credentials_path=temp_dir / "none.yaml")

        assert config.load_credentials() is False
        assert config.winrm_credentials() is None


class TestValidate:
    """Tests for configuration validation."""

    def test_defaults_valid(self):
        assert ScannerConfig().validate() == []

    def test_unknown_profile(self):
        errors = ScannerConfig(port_profile="Nope").validate()

        assert "Unknown port profile: Nope" in errors

    def test_bad_range(self):
        errors = ScannerConfig(default_range="10.0.0.0/40").validate()

        assert len(errors) == 1
        assert "10.0.0.0/40" in errors[0]

    def test_bad_timing(self):
        errors = ScannerConfig(connect_timeout_seconds=0, max_concurrent_hosts=0).validate()

        assert len(errors) == 2

    def test_bad_custom_port(self):
        errors = ScannerConfig(custom_profiles={"Bad": [70000]}).validate()

        assert errors

    def test_enrichment_requires_credentials(self):
        errors = ScannerConfig(enable_enrichment=True).validate()

        assert any("credentials" in e for e in errors)
