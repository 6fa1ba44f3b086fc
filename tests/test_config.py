"""
Configuration tests.

Run with: pytest tests/test_config.py -v
"""

import pytest

from tyron.account import SSIAccount
from tyron.config import (
    AccountConfig,
    ConfigError,
    ConfigManager,
    ConfigValidationError,
    get_config,
    get_config_manager,
)

from conftest import make_key


class TestDefaults:
    """Default values."""

    def test_defaults(self):
        config = AccountConfig().to_dict()
        assert config["domain"] == {"name": "Tyron", "version": "1", "chain_id": 31337}
        assert config["guardians"]["min_threshold"] == 3
        assert config["recovery"]["count_duplicate_votes"] is False
        assert config["ownership"]["pending_ttl_seconds"] == 0
        assert config["observability"] == {"log_level": "info", "log_format": "json"}

    def test_singleton(self):
        assert ConfigManager() is get_config_manager()
        assert get_config() is get_config_manager().config

    def test_reset_drops_singleton(self):
        first = ConfigManager()
        ConfigManager.reset()
        assert ConfigManager() is not first


class TestValues:
    """Setting and validating values."""

    def test_set_by_path(self):
        mgr = get_config_manager()
        mgr.set("domain.chain_id", 1)
        assert mgr.get("domain.chain_id") == 1

    def test_string_values_are_coerced(self):
        mgr = get_config_manager()
        mgr.set("guardians.min_threshold", "5")
        mgr.set("recovery.count_duplicate_votes", "yes")
        assert mgr.get("guardians.min_threshold") == 5
        assert mgr.get("recovery.count_duplicate_votes") is True

    @pytest.mark.parametrize("path,value", [
        ("domain.chain_id", -1),
        ("guardians.min_threshold", 0),
        ("ownership.pending_ttl_seconds", -5),
        ("observability.log_level", "verbose"),
        ("observability.log_format", "xml"),
        ("domain.name", ""),
    ])
    def test_invalid_values_rejected(self, path, value):
        with pytest.raises(ConfigValidationError):
            get_config_manager().set(path, value)

    def test_unknown_path(self):
        with pytest.raises(ConfigError):
            get_config_manager().get("domain.nope")
        with pytest.raises(ConfigError):
            get_config_manager().set("domain", 1)

    def test_change_callback(self):
        seen = []
        config = AccountConfig()
        config.domain.chain_id.on_change(lambda old, new: seen.append((old, new)))
        config.domain.chain_id.set(7)
        assert seen == [(None, 7)]

    def test_validate_clean_config(self):
        assert get_config_manager().validate() == []

    def test_copy_is_independent(self):
        config = AccountConfig()
        clone = config.copy()
        clone.domain.chain_id.set(9)
        assert config.domain.chain_id.get() == 31337


class TestEnvironment:
    """TYRON_* environment variables take precedence."""

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("TYRON_CHAIN_ID", "10")
        monkeypatch.setenv("TYRON_RECOVERY_COUNT_DUPLICATE_VOTES", "true")
        config = AccountConfig()
        config.domain.chain_id.set(5)
        assert config.domain.chain_id.get() == 10
        assert config.recovery.count_duplicate_votes.get() is True

    def test_env_reaches_account_domain(self, monkeypatch):
        monkeypatch.setenv("TYRON_DOMAIN_NAME", "Staging")
        account = SSIAccount.create(make_key(1).identity)
        assert account.domain.name == "Staging"


class TestFiles:
    """YAML configuration files."""

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "tyron.yaml"
        path.write_text(
            "domain:\n  chain_id: 8453\nownership:\n  pending_ttl_seconds: 600\n",
            encoding="utf-8",
        )
        mgr = get_config_manager()
        mgr.load_from_file(path)
        assert mgr.get("domain.chain_id") == 8453
        assert mgr.get("ownership.pending_ttl_seconds") == 600

    def test_unknown_key_in_file(self, tmp_path):
        path = tmp_path / "tyron.yaml"
        path.write_text("domain:\n  chain: 1\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            get_config_manager().load_from_file(path)

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "tyron.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            get_config_manager().load_from_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            get_config_manager().load_from_file(tmp_path / "absent.yaml")

    def test_load_defaults_from_working_directory(self, tmp_path, monkeypatch):
        (tmp_path / "tyron.yaml").write_text("guardians:\n  min_threshold: 2\n", encoding="utf-8")
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        mgr = get_config_manager()
        mgr.load_defaults()
        assert mgr.get("guardians.min_threshold") == 2

    def test_reload_notifies_watchers(self, tmp_path):
        path = tmp_path / "tyron.yaml"
        path.write_text("domain:\n  chain_id: 1\n", encoding="utf-8")
        mgr = get_config_manager()
        mgr.load_from_file(path)
        seen = []
        mgr.watch(lambda cfg: seen.append(cfg.domain.chain_id.get()))

        path.write_text("domain:\n  chain_id: 2\n", encoding="utf-8")
        mgr.reload()
        assert seen == [2]

    def test_yaml_round_trip(self):
        config = AccountConfig()
        config.domain.chain_id.set(42)
        import yaml
        assert AccountConfig.from_dict(yaml.safe_load(config.to_yaml())).domain.chain_id.get() == 42


class TestSchemaExport:
    """Documentation schema."""

    def test_export_schema(self):
        schema = get_config_manager().export_schema()
        chain_id = schema["properties"]["domain"]["chain_id"]
        assert chain_id["env_var"] == "TYRON_CHAIN_ID"
        assert chain_id["type"] == "int"
        assert chain_id["default"] == "31337"
