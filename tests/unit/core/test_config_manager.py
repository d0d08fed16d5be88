"""
Tests for ConfigManager.
"""

import json

import pytest
import yaml
from pydantic import ValidationError

from warden.core.config_manager import ConfigManager, LogLevel, WardenConfig
from warden.core.resolver import BoundFunctionRef, EnvRef, FunctionRef

SECRET = "A" * 64

WARDEN_ENV = [
    "WARDEN_ISSUER",
    "WARDEN_SECRET_KEY",
    "WARDEN_ALLOWED_ALGOS",
    "WARDEN_VERIFY_ISSUER",
    "WARDEN_ALLOWED_DRIFT",
    "WARDEN_LOG_LEVEL",
    "WARDEN_LOG_FILE",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in WARDEN_ENV:
        monkeypatch.delenv(name, raising=False)


class TestWardenConfig:
    """Test suite for the configuration schema."""

    def test_defaults(self):
        """Test defaults for everything but issuer and secret."""
        config = WardenConfig(issuer="my_app", secret_key=SECRET)

        assert config.allowed_algos == ["HS512"]
        assert config.ttl == (4, "weeks")
        assert config.token_ttl == {}
        assert config.default_token_type == "access"
        assert config.allowed_drift == 0
        assert config.verify_issuer is False
        assert config.key_fetch_timeout == 5.0
        assert config.logging.level == LogLevel.INFO

    def test_issuer_and_secret_required(self):
        """Test issuer and secret_key must be given."""
        with pytest.raises(ValidationError):
            WardenConfig(secret_key=SECRET)
        with pytest.raises(ValidationError):
            WardenConfig(issuer="my_app")

    @pytest.mark.parametrize("secret", ["", [], None])
    def test_empty_secret_rejected(self, secret):
        """Test an empty secret is refused."""
        with pytest.raises(ValidationError):
            WardenConfig(issuer="my_app", secret_key=secret)

    def test_blank_issuer_rejected(self):
        """Test a blank issuer is refused."""
        with pytest.raises(ValidationError):
            WardenConfig(issuer="  ", secret_key=SECRET)

    def test_descriptor_file_forms(self):
        """Test file-form descriptors become descriptor variants."""
        config = WardenConfig(
            issuer="my_app",
            secret_key=[{"env": "APP_SECRET"}, {"function": "myapp.keys:load", "args": ["kid-1"]}],
            ttl={"function": "myapp.ttl:default"},
            token_ttl={"refresh": {"env": "REFRESH_TTL"}},
        )

        assert config.secret_key == [EnvRef("APP_SECRET"), BoundFunctionRef("myapp.keys:load", ("kid-1",))]
        assert config.ttl == FunctionRef("myapp.ttl:default")
        assert config.token_ttl == {"refresh": EnvRef("REFRESH_TTL")}

    def test_ttl_for(self):
        """Test per-type TTLs fall back to the default."""
        config = WardenConfig(issuer="my_app", secret_key=SECRET, token_ttl={"refresh": [30, "days"]})

        assert config.ttl_for("refresh") == [30, "days"]
        assert config.ttl_for("access") == (4, "weeks")
        assert config.ttl_for(None) == (4, "weeks")

    @pytest.mark.parametrize("algos", [[], ["none"], ["HS999"]])
    def test_bad_algorithms(self, algos):
        """Test empty, unsigned and unknown algorithm lists are refused."""
        with pytest.raises(ValidationError):
            WardenConfig(issuer="my_app", secret_key=SECRET, allowed_algos=algos)

    def test_negative_drift_rejected(self):
        """Test allowed_drift cannot be negative."""
        with pytest.raises(ValidationError):
            WardenConfig(issuer="my_app", secret_key=SECRET, allowed_drift=-1)

    def test_trusted_urls_must_be_http(self):
        """Test trusted key URLs must be http(s)."""
        with pytest.raises(ValidationError):
            WardenConfig(issuer="my_app", secret_key=SECRET, trusted_key_urls=["ftp://keys.example.com"])


class TestConfigManager:
    """Test suite for ConfigManager."""

    def test_load_from_yaml_file(self, tmp_path):
        """Test loading configuration from a YAML file."""
        config_file = tmp_path / "warden.yaml"
        config_file.write_text(yaml.dump({
            "issuer": "my_app",
            "secret_key": {"env": "APP_SECRET"},
            "allowed_algos": ["HS256", "HS512"],
            "token_ttl": {"refresh": [30, "days"]},
            "logging": {"level": "DEBUG"},
        }))

        config = ConfigManager().load(config_file=str(config_file))

        assert config.issuer == "my_app"
        assert config.secret_key == EnvRef("APP_SECRET")
        assert config.allowed_algos == ["HS256", "HS512"]
        assert config.token_ttl == {"refresh": [30, "days"]}
        assert config.logging.level == LogLevel.DEBUG

    def test_load_from_json_file(self, tmp_path):
        """Test loading configuration from a JSON file."""
        config_file = tmp_path / "warden.json"
        config_file.write_text(json.dumps({"issuer": "json_app", "secret_key": SECRET}))

        config = ConfigManager().load(config_file=str(config_file))

        assert config.issuer == "json_app"
        assert config.secret_key == SECRET

    def test_load_from_env_variables(self, monkeypatch):
        """Test loading configuration from WARDEN_* variables."""
        monkeypatch.setenv("WARDEN_ISSUER", "env_app")
        monkeypatch.setenv("WARDEN_SECRET_KEY", SECRET)
        monkeypatch.setenv("WARDEN_ALLOWED_ALGOS", "HS256, HS512")
        monkeypatch.setenv("WARDEN_VERIFY_ISSUER", "true")
        monkeypatch.setenv("WARDEN_ALLOWED_DRIFT", "2.5")
        monkeypatch.setenv("WARDEN_LOG_LEVEL", "warning")

        config = ConfigManager().load()

        assert config.issuer == "env_app"
        assert config.allowed_algos == ["HS256", "HS512"]
        assert config.verify_issuer is True
        assert config.allowed_drift == 2.5
        assert config.logging.level == LogLevel.WARNING

    def test_configuration_precedence(self, tmp_path, monkeypatch):
        """Test precedence: overrides > ENV > FILE > defaults."""
        config_file = tmp_path / "warden.yaml"
        config_file.write_text(yaml.dump({
            "issuer": "file_app",
            "secret_key": SECRET,
            "default_token_type": "file_type",
            "logging": {"level": "DEBUG", "format": "text"},
        }))
        monkeypatch.setenv("WARDEN_ISSUER", "env_app")

        config = ConfigManager().load(
            config_file=str(config_file),
            overrides={"default_token_type": "override_type", "logging": {"level": "ERROR"}},
        )

        assert config.issuer == "env_app"
        assert config.default_token_type == "override_type"
        assert config.logging.level == LogLevel.ERROR
        assert config.logging.format == "text"

    def test_missing_required_values(self):
        """Test loading with nothing configured fails validation."""
        with pytest.raises(ValidationError):
            ConfigManager().load()

    def test_file_not_found(self):
        """Test that a missing config file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            ConfigManager().load(config_file="/nonexistent/warden.yaml")

    def test_unsupported_file_format(self, tmp_path):
        """Test that an unsupported file format raises ValueError."""
        config_file = tmp_path / "warden.txt"
        config_file.write_text("issuer=my_app")

        with pytest.raises(ValueError) as exc_info:
            ConfigManager().load(config_file=str(config_file))

        assert "Unsupported config file format" in str(exc_info.value)

    def test_get_config_before_load(self):
        """Test get_config requires a prior load."""
        with pytest.raises(RuntimeError):
            ConfigManager().get_config()

    def test_reload(self, tmp_path):
        """Test reload picks up file changes."""
        config_file = tmp_path / "warden.yaml"
        config_file.write_text(yaml.dump({"issuer": "v1", "secret_key": SECRET}))
        manager = ConfigManager()
        manager.load(config_file=str(config_file))

        config_file.write_text(yaml.dump({"issuer": "v2", "secret_key": SECRET}))
        config = manager.reload()

        assert config.issuer == "v2"
        assert manager.get_config() is config

    def test_secret_not_logged(self, tmp_path, caplog):
        """Test the active configuration log never shows the secret."""
        config_file = tmp_path / "warden.yaml"
        config_file.write_text(yaml.dump({"issuer": "my_app", "secret_key": "super-secret-value-0123456789"}))

        with caplog.at_level("INFO", logger="warden.core.config_manager"):
            ConfigManager().load(config_file=str(config_file))

        assert "super-secret-value-0123456789" not in caplog.text
        assert "Active configuration" in caplog.text
