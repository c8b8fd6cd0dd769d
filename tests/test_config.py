"""Tests for configuration loading."""

from pathlib import Path

import pytest

from chime.config import (
    ChimeConfig,
    ConfigError,
    get_default_config,
    get_store_path,
    load_config,
)
from chime.config.paths import get_all_paths


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults_when_no_file(self, chime_home: Path):
        config = load_config()
        assert config == get_default_config()
        assert config.scheduler.store_path == chime_home / "schedules.json"
        assert config.dispatch.mode == "webhook"
        assert config.server.port == 8080

    def test_reads_home_config(self, chime_home: Path):
        (chime_home / "config.toml").write_text(
            """
[scheduler]
dispatch_timeout = 2.5
default_tz_offset = -5

[dispatch]
mode = "log"

[server]
port = 9000

[logging]
level = "debug"
"""
        )
        config = load_config()
        assert config.scheduler.dispatch_timeout == 2.5
        assert config.scheduler.default_tz_offset == -5
        assert config.dispatch.mode == "log"
        assert config.server.port == 9000
        assert config.logging.level == "DEBUG"

    def test_explicit_path(self, chime_home: Path, tmp_path: Path):
        path = tmp_path / "custom.toml"
        path.write_text('[scheduler]\nstore_path = "/srv/chime/schedules.json"\n')
        config = load_config(path)
        assert config.scheduler.store_path == Path("/srv/chime/schedules.json")

    def test_explicit_missing_path(self, chime_home: Path, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.toml")

    def test_invalid_toml(self, chime_home: Path):
        (chime_home / "config.toml").write_text("[scheduler\n")
        with pytest.raises(ConfigError):
            load_config()

    def test_invalid_values(self, chime_home: Path):
        (chime_home / "config.toml").write_text("[scheduler]\ndispatch_timeout = 0\n")
        with pytest.raises(ConfigError):
            load_config()

    def test_offset_out_of_range(self, chime_home: Path):
        (chime_home / "config.toml").write_text("[scheduler]\ndefault_tz_offset = 20\n")
        with pytest.raises(ConfigError):
            load_config()

    def test_token_from_environment(
        self, chime_home: Path, monkeypatch: pytest.MonkeyPatch
    ):
        monkeypatch.setenv("CHIME_DISPATCH_TOKEN", "env-secret-token")
        config = load_config()
        assert config.dispatch.auth_token is not None
        assert config.dispatch.auth_token.get_secret_value() == "env-secret-token"

    def test_file_token_wins_over_environment(
        self, chime_home: Path, monkeypatch: pytest.MonkeyPatch
    ):
        monkeypatch.setenv("CHIME_DISPATCH_TOKEN", "env-secret-token")
        (chime_home / "config.toml").write_text('[dispatch]\nauth_token = "from-file"\n')
        config = load_config()
        assert config.dispatch.auth_token.get_secret_value() == "from-file"


class TestPaths:
    """Tests for CHIME_HOME path resolution."""

    def test_paths_follow_chime_home(self, chime_home: Path):
        paths = get_all_paths()
        assert paths["home"] == chime_home
        assert get_store_path() == chime_home / "schedules.json"
        assert paths["logs"] == chime_home / "logs"

    def test_secret_not_in_repr(self):
        config = ChimeConfig.model_validate({"dispatch": {"auth_token": "hunter2hunter2"}})
        assert "hunter2hunter2" not in repr(config)
