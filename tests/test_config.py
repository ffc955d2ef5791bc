"""
Tests for configuration loading — config.yml parsing, lookup order,
validation and fingerprinting.
"""

import textwrap
from pathlib import Path

import pytest

from transmission_manager.core.config import loader
from transmission_manager.core.config.loader import (
    ConfigError,
    config_hash,
    find_config_file,
    load_config,
)
from transmission_manager.core.models.config import DEFAULT_SOURCE_URLS, ManagerConfig


@pytest.fixture
def no_system_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("TM_CONFIG", raising=False)
    monkeypatch.setattr(loader, "SYSTEM_CONFIG_FILE", tmp_path / "absent" / "config.yml")


class TestLoadConfig:
    def test_flat_file(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text(textwrap.dedent("""\
            user: debian-transmission
            download_dir: /srv/torrents
            rpc_port: 9092
            sysctl:
              net.core.rmem_max: "8388608"
        """))
        config = load_config(path)
        assert config.user == "debian-transmission"
        assert config.download_dir == "/srv/torrents"
        assert config.rpc_port == 9092
        assert config.sysctl == {"net.core.rmem_max": "8388608"}
        assert config.service_name == "transmission-daemon"

    def test_wrapped_format(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text("manager:\n  default_version: 4.0.6\n  stop_timeout: 10\n")
        config = load_config(path)
        assert config.default_version == "4.0.6"
        assert config.stop_timeout == 10

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text("")
        assert load_config(path) == ManagerConfig()

    def test_missing_file_raises(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yml")

    def test_invalid_yaml_raises(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text("user: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_non_mapping_raises(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    def test_invalid_value_raises(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text("rpc_port: not-a-number\n")
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_config(path)

    def test_defaults_without_file(self, no_system_config):
        config = load_config()
        assert config.user == "transmission"
        assert config.source_urls == DEFAULT_SOURCE_URLS
        assert config.settings_file == Path("/home/transmission/.config/transmission-daemon/settings.json")

    def test_env_var(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        path = tmp_path / "env.yml"
        path.write_text("user: from-env\n")
        monkeypatch.setenv("TM_CONFIG", str(path))
        assert load_config().user == "from-env"


class TestFindConfigFile:
    def test_explicit_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("TM_CONFIG", str(tmp_path / "env.yml"))
        assert find_config_file(tmp_path / "explicit.yml") == tmp_path / "explicit.yml"

    def test_system_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("TM_CONFIG", raising=False)
        system = tmp_path / "config.yml"
        system.write_text("user: x\n")
        monkeypatch.setattr(loader, "SYSTEM_CONFIG_FILE", system)
        assert find_config_file() == system

    def test_none(self, no_system_config):
        assert find_config_file() is None


class TestConfigModel:
    def test_derived_paths(self):
        config = ManagerConfig(config_dir="/cfg", install_prefix="/opt/tr", systemd_unit_dir="/units")
        assert config.password_file == Path("/cfg/.rpc_password.txt")
        assert config.binary_path == Path("/opt/tr/bin/transmission-daemon")
        assert config.systemd_unit_path == Path("/units/transmission-daemon.service")

    def test_mutable_defaults_not_shared(self):
        a, b = ManagerConfig(), ManagerConfig()
        a.required_tools.append("jq")
        assert "jq" not in b.required_tools


class TestConfigHash:
    def test_stable(self):
        assert config_hash(ManagerConfig()) == config_hash(ManagerConfig())
        assert len(config_hash(ManagerConfig())) == 16

    def test_changes_with_config(self):
        assert config_hash(ManagerConfig()) != config_hash(ManagerConfig(rpc_port=9999))

    def test_changes_with_extra(self):
        config = ManagerConfig()
        assert config_hash(config, {"version": "4.0.5"}) != config_hash(config, {"version": "4.0.6"})
