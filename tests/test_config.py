"""Tests for layered configuration and logging setup."""

from __future__ import annotations

import json
import logging
import logging.handlers

import pytest
import yaml

from botsight.core.config import (
    BotSightConfig,
    LoggingConfig,
    configure_logging,
    dict_to_config,
    generate_default_config,
    get_config,
    load_config,
    load_config_file,
    load_env_config,
    merge_configs,
    reset_config,
    save_config,
    set_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "BOTSIGHT_DB_PATH",
        "BOTSIGHT_DB_ECHO",
        "BOTSIGHT_MIN_ACTIONS",
        "BOTSIGHT_EXCLUDE_SUBJECT",
        "BOTSIGHT_MAX_WORKERS",
        "BOTSIGHT_LOG_LEVEL",
        "BOTSIGHT_LOG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
    reset_config()


class TestDefaults:
    """Test default values."""

    def test_defaults(self):
        config = BotSightConfig()

        assert config.analysis.min_actions == 20
        assert config.analysis.exclude_subject_from_baseline is True
        assert config.analysis.verified_humans == []
        assert config.store.db_path.endswith("analysis.db")
        assert config.batch.max_workers >= 1
        assert config.logging.level == "INFO"


class TestConfigFiles:
    """Test loading from files."""

    def test_yaml(self, tmp_path):
        path = tmp_path / "botsight.yaml"
        path.write_text(
            "store:\n  db_path: /tmp/bs.db\nanalysis:\n  verified_humans: [7, 9]\n"
        )
        config = load_config(path, include_env=False)

        assert config.store.db_path == "/tmp/bs.db"
        assert config.analysis.verified_humans == [7, 9]
        assert config.analysis.min_actions == 20

    def test_toml(self, tmp_path):
        path = tmp_path / "botsight.toml"
        path.write_text("[analysis]\nmin_actions = 40\n\n[batch]\nmax_workers = 2\n")
        config = load_config(path, include_env=False)

        assert config.analysis.min_actions == 40
        assert config.batch.max_workers == 2

    def test_json(self, tmp_path):
        path = tmp_path / "botsight.json"
        path.write_text(json.dumps({"logging": {"level": "DEBUG"}}))

        assert load_config(path, include_env=False).logging.level == "DEBUG"

    def test_missing_and_unknown_format(self, tmp_path):
        assert load_config_file(tmp_path / "absent.yaml") == {}
        odd = tmp_path / "config.ini"
        odd.write_text("[x]")
        assert load_config_file(odd) == {}

    def test_unknown_keys_ignored(self):
        config = dict_to_config({"analysis": {"min_actions": 5, "bogus": 1}, "extra": {}})
        assert config.analysis.min_actions == 5
        assert not hasattr(config.analysis, "bogus")


class TestEnvironment:
    """Test environment overrides."""

    def test_env_values_coerced(self, monkeypatch):
        monkeypatch.setenv("BOTSIGHT_MIN_ACTIONS", "30")
        monkeypatch.setenv("BOTSIGHT_EXCLUDE_SUBJECT", "false")
        monkeypatch.setenv("BOTSIGHT_LOG_LEVEL", "WARNING")

        assert load_env_config() == {
            "analysis": {"min_actions": 30, "exclude_subject_from_baseline": False},
            "logging": {"level": "WARNING"},
        }

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "botsight.yaml"
        path.write_text("analysis:\n  min_actions: 40\n  exclude_subject_from_baseline: true\n")
        monkeypatch.setenv("BOTSIGHT_MIN_ACTIONS", "25")

        config = load_config(path)

        assert config.analysis.min_actions == 25
        assert config.analysis.exclude_subject_from_baseline is True

    def test_merge_is_recursive(self):
        merged = merge_configs(
            {"store": {"db_path": "a.db", "echo": False}}, {"store": {"echo": True}}
        )
        assert merged == {"store": {"db_path": "a.db", "echo": True}}


class TestSaving:
    """Test writing config files."""

    def test_save_yaml(self, tmp_path):
        config = BotSightConfig()
        config.analysis.min_actions = 33
        path = tmp_path / "out.yaml"

        save_config(config, path)

        data = yaml.safe_load(path.read_text())
        assert data["analysis"]["min_actions"] == 33
        assert load_config(path, include_env=False).analysis.min_actions == 33

    def test_save_unsupported(self, tmp_path):
        with pytest.raises(ValueError):
            save_config(BotSightConfig(), tmp_path / "out.toml")

    def test_generate_default(self, tmp_path):
        path = tmp_path / "botsight.yaml"
        generate_default_config(path)

        config = load_config(path, include_env=False)
        assert config.analysis.min_actions == 20
        assert config.batch.replay_suffix == ".json"


class TestGlobalConfig:
    """Test the process-wide instance."""

    def test_set_and_reset(self):
        custom = BotSightConfig()
        custom.analysis.min_actions = 99
        set_config(custom)

        assert get_config() is custom
        reset_config()
        assert get_config() is not custom


class TestConfigureLogging:
    """Test root logger setup."""

    def test_level_and_file(self, tmp_path):
        log_file = tmp_path / "logs" / "botsight.log"
        configure_logging(LoggingConfig(level="WARNING", file=str(log_file)))
        root = logging.getLogger()
        try:
            assert root.level == logging.WARNING
            assert any(
                isinstance(h, logging.handlers.RotatingFileHandler) for h in root.handlers
            )
            assert log_file.parent.exists()
        finally:
            for handler in list(root.handlers):
                root.removeHandler(handler)
                handler.close()

    def test_verbose_forces_debug(self):
        configure_logging(LoggingConfig(level="ERROR"), verbose=True)
        assert logging.getLogger().level == logging.DEBUG
