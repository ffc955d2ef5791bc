"""
ManagerConfig — host layout and tunables.

Every default mirrors the layout the manager has always used, so an
empty (or missing) config file gives the standard seedbox install.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

DEFAULT_SOURCE_URLS = [
    "https://github.com/transmission/transmission/releases/download/{version}/transmission-{version}.tar.xz",
    "https://github.com/transmission/transmission/releases/download/v{version}/transmission-{version}.tar.xz",
    "https://github.com/transmission/transmission-releases/raw/master/transmission-{version}.tar.xz",
    "https://github.com/transmission/transmission/archive/refs/tags/{version}.tar.gz",
    "https://github.com/transmission/transmission/archive/refs/tags/v{version}.tar.gz",
    "https://download.transmissionbt.com/files/transmission-{version}.tar.xz",
]

DEFAULT_SYSCTL = {
    "net.core.rmem_max": "16777216",
    "net.core.wmem_max": "16777216",
    "net.ipv4.tcp_rmem": "4096 87380 16777216",
    "net.ipv4.tcp_wmem": "4096 65536 16777216",
    "net.ipv4.tcp_window_scaling": "1",
    "fs.file-max": "100000",
    "net.core.netdev_max_backlog": "5000",
    "net.ipv4.tcp_max_syn_backlog": "4096",
    "net.ipv4.tcp_fin_timeout": "30",
    "net.ipv4.tcp_keepalive_time": "1200",
    "net.ipv4.tcp_max_tw_buckets": "1440000",
}

DEFAULT_REQUIRED_TOOLS = ["cc", "make", "cmake", "pkg-config", "tar", "xz", "curl"]


class ManagerConfig(BaseModel):
    """Paths, identities and budgets used by actions and adapters."""

    # ── Identity ─────────────────────────────────────────────────
    user: str = "transmission"
    service_name: str = "transmission-daemon"

    # ── Daemon layout ────────────────────────────────────────────
    home_dir: str = "/home/transmission"
    config_dir: str = "/home/transmission/.config/transmission-daemon"
    download_dir: str = "/downloads"
    daemon_log_dir: str = "/var/log/transmission"
    install_prefix: str = "/usr/local"

    # ── Host files ───────────────────────────────────────────────
    systemd_unit_dir: str = "/etc/systemd/system"
    init_script_dir: str = "/etc/init.d"
    sysctl_file: str = "/etc/sysctl.d/99-transmission-seedbox.conf"
    limits_file: str = "/etc/security/limits.d/transmission.conf"
    logrotate_file: str = "/etc/logrotate.d/transmission"
    installer_logrotate_file: str = "/etc/logrotate.d/transmission-installer"
    os_release_file: str = "/etc/os-release"

    # ── Manager files ────────────────────────────────────────────
    lock_file: str = "/var/run/transmission-manager.lock"
    state_file: str = "/etc/transmission-manager.installed"
    history_file: str = "/var/log/transmission-steps.ndjson"
    log_file: str = "/var/log/transmission-install.log"
    backup_dir: str = "/root"

    # ── Versions and sources ─────────────────────────────────────
    default_version: str = "5.0.0"
    latest_release_api: str = "https://api.github.com/repos/transmission/transmission/releases/latest"
    download_page: str = "https://transmissionbt.com/download"
    source_urls: list[str] = Field(default_factory=lambda: list(DEFAULT_SOURCE_URLS))
    min_artifact_bytes: int = 1_000_000
    cmake_min_version: str = "3.16.0"
    cmake_fallback_version: str = "3.27.7"
    cmake_binary_url: str = (
        "https://github.com/Kitware/CMake/releases/download/v{version}/cmake-{version}-linux-{arch}.tar.gz"
    )
    cmake_install_dir: str = "/opt"

    # ── Budgets ──────────────────────────────────────────────────
    download_attempts: int = 3
    download_timeout: int = 30
    package_timeout: int = 1800
    build_timeout: int = 3600
    command_timeout: int = 120
    stop_timeout: int = 30
    config_init_wait: int = 5

    # ── Tuning ───────────────────────────────────────────────────
    required_tools: list[str] = Field(default_factory=lambda: list(DEFAULT_REQUIRED_TOOLS))
    sysctl: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_SYSCTL))
    nofile_limit: int = 100000

    # ── Daemon defaults ──────────────────────────────────────────
    rpc_port: int = 9091
    peer_port: int = 51413

    @property
    def settings_file(self) -> Path:
        return Path(self.config_dir) / "settings.json"

    @property
    def password_file(self) -> Path:
        return Path(self.config_dir) / ".rpc_password.txt"

    @property
    def systemd_unit_path(self) -> Path:
        return Path(self.systemd_unit_dir) / f"{self.service_name}.service"

    @property
    def init_script_path(self) -> Path:
        return Path(self.init_script_dir) / self.service_name

    @property
    def binary_path(self) -> Path:
        return Path(self.install_prefix) / "bin" / self.service_name
