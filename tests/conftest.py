"""
Shared test fixtures and configuration.

Every path the manager touches is redirected under ``tmp_path``; the
host itself is a ``SimulatedHost`` driven by the mock capabilities.
"""

from pathlib import Path

import pytest

from transmission_manager.adapters.mock import SimulatedHost, mock_capabilities
from transmission_manager.adapters.registry import CapabilityRegistry
from transmission_manager.core.models.config import ManagerConfig
from transmission_manager.core.persistence.audit import HistoryWriter
from transmission_manager.core.persistence.lock import LockManager
from transmission_manager.core.persistence.state_file import StateStore
from transmission_manager.core.use_cases.runtime import Runtime

REQUIRED_TOOLS = ["cc", "make", "cmake", "pkg-config", "tar", "xz", "curl"]


@pytest.fixture
def tm_config(tmp_path: Path) -> ManagerConfig:
    """A config whose every path lives under tmp_path."""
    root = tmp_path / "host"
    return ManagerConfig(
        home_dir=str(root / "home/transmission"),
        config_dir=str(root / "home/transmission/.config/transmission-daemon"),
        download_dir=str(root / "downloads"),
        daemon_log_dir=str(root / "var/log/transmission"),
        install_prefix=str(root / "usr/local"),
        systemd_unit_dir=str(root / "etc/systemd/system"),
        init_script_dir=str(root / "etc/init.d"),
        sysctl_file=str(root / "etc/sysctl.d/99-transmission-seedbox.conf"),
        limits_file=str(root / "etc/security/limits.d/transmission.conf"),
        logrotate_file=str(root / "etc/logrotate.d/transmission"),
        installer_logrotate_file=str(root / "etc/logrotate.d/transmission-installer"),
        os_release_file=str(root / "etc/os-release"),
        lock_file=str(root / "run/transmission-manager.lock"),
        state_file=str(root / "etc/transmission-manager.installed"),
        history_file=str(root / "var/log/transmission-steps.ndjson"),
        log_file=str(root / "var/log/transmission-install.log"),
        backup_dir=str(root / "root"),
        cmake_install_dir=str(root / "opt"),
        stop_timeout=2,
        config_init_wait=1,
    )


@pytest.fixture
def sim_host() -> SimulatedHost:
    """A fresh Debian/systemd host with only apt present."""
    return SimulatedHost()


@pytest.fixture
def converged_host() -> SimulatedHost:
    """A host already converged to 4.0.6, daemon running."""
    return SimulatedHost(
        tools={"pm:apt", *REQUIRED_TOOLS},
        installed_version="4.0.6",
        binary_path="/usr/local/bin/transmission-daemon",
        running=True,
        account=True,
        unit=True,
        settings_written=True,
        runtime_config=True,
        log_rotation=True,
        password_hash="{" + "a" * 40 + "12345678",
    )


@pytest.fixture
def capabilities(sim_host: SimulatedHost) -> CapabilityRegistry:
    return mock_capabilities(sim_host)


def _build_runtime(config: ManagerConfig, host: SimulatedHost) -> Runtime:
    capabilities = mock_capabilities(host)
    return Runtime(
        config=config,
        probe=host.facts,
        select_capabilities=lambda facts: capabilities,
        store=StateStore(Path(config.state_file), HistoryWriter(Path(config.history_file))),
        lock=LockManager(Path(config.lock_file), command="pytest"),
    )


@pytest.fixture
def runtime(tm_config: ManagerConfig, sim_host: SimulatedHost) -> Runtime:
    return _build_runtime(tm_config, sim_host)


@pytest.fixture
def runtime_factory():
    """Build further runtimes sharing a config and host."""
    return _build_runtime


@pytest.fixture
def cli_obj(runtime: Runtime) -> dict:
    """``obj`` for CliRunner: the simulated runtime, no root check."""
    return {"runtime": runtime, "root_check": False}
