"""
Linux host operations — service account, runtime config, kernel tuning,
log rotation, installed files.

Tuning values are configuration (``ManagerConfig.sysctl``,
``nofile_limit``); this module only writes them where the kernel and
PAM look for drop-ins.
"""

from __future__ import annotations

import logging
import shutil
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from transmission_manager.adapters.base import HostOperations
from transmission_manager.adapters.shell.command import Runner, run_command
from transmission_manager.core.errors import ActionFailed
from transmission_manager.core.models.action import ActionResult
from transmission_manager.core.models.config import ManagerConfig
from transmission_manager.core.services.detection import (
    DAEMON_PROCESS_PATTERN,
    system_account_exists,
)
from transmission_manager.core.services.settings_file import (
    DOWNLOAD_DIR_KEY,
    chown_quietly,
    try_read_settings,
    update_settings,
)

logger = logging.getLogger(__name__)


def render_sysctl(config: ManagerConfig, now: datetime | None = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    lines = [
        "# Transmission seedbox network tuning",
        f"# Written by transmission-manager on {stamp}",
        "",
    ]
    lines += [f"{key} = {value}" for key, value in config.sysctl.items()]
    return "\n".join(lines) + "\n"


def render_limits(config: ManagerConfig) -> str:
    n = config.nofile_limit
    return (
        "# Transmission user limits\n"
        f"{config.user} soft nofile {n}\n"
        f"{config.user} hard nofile {n}\n"
        f"* soft nofile {n}\n"
        f"* hard nofile {n}\n"
    )


def render_logrotate(config: ManagerConfig) -> str:
    """Daily rotation of the daemon logs; the daemon reopens them on SIGHUP."""
    user = config.user
    return (
        f"{config.daemon_log_dir}/*.log {{\n"
        "    daily\n"
        "    missingok\n"
        "    rotate 14\n"
        "    compress\n"
        "    delaycompress\n"
        "    notifempty\n"
        f"    create 640 {user} {user}\n"
        "    sharedscripts\n"
        "    postrotate\n"
        f"        pkill -HUP -u {user} -f {DAEMON_PROCESS_PATTERN} 2>/dev/null || true\n"
        "    endscript\n"
        "}\n"
    )


def render_installer_logrotate(config: ManagerConfig) -> str:
    return (
        f"{config.log_file} {config.history_file} {{\n"
        "    weekly\n"
        "    rotate 4\n"
        "    compress\n"
        "    delaycompress\n"
        "    notifempty\n"
        "    create 640 root root\n"
        "    missingok\n"
        "}\n"
    )


class LinuxHostOperations(HostOperations):
    """Host changes via coreutils/shadow commands and direct file writes."""

    def __init__(
        self,
        config: ManagerConfig,
        runner: Runner = run_command,
        account_exists: Callable[[str], bool] = system_account_exists,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._config = config
        self._runner = runner
        self._sleep = sleep
        self._account_check = account_exists

    @property
    def name(self) -> str:
        return "linux"

    def is_available(self) -> bool:
        return shutil.which("useradd") is not None

    # ── Account ─────────────────────────────────────────────────

    def account_exists(self) -> bool:
        return self._account_check(self._config.user)

    def ensure_account(self) -> ActionResult:
        cfg = self._config
        created = False
        if not self.account_exists():
            result = self._runner(
                ["useradd", "-r", "-s", "/sbin/nologin", "-m", "-d", cfg.home_dir, cfg.user],
                timeout=cfg.command_timeout,
            )
            if not result.ok:
                return result.to_result("create-service-account")
            created = True

        try:
            for directory, mode in (
                (Path(cfg.home_dir), 0o750),
                (Path(cfg.config_dir), 0o750),
                (Path(cfg.download_dir), 0o775),
                (Path(cfg.daemon_log_dir), 0o750),
            ):
                directory.mkdir(parents=True, exist_ok=True)
                directory.chmod(mode)
                chown_quietly(directory, cfg.user)
        except OSError as e:
            return ActionResult.failure("create-service-account", reason=f"Cannot prepare directories: {e}")

        return ActionResult.success(
            "create-service-account",
            output=f"User {cfg.user} {'created' if created else 'present'}",
            metadata={"created": created},
        )

    def remove_account(self) -> ActionResult:
        cfg = self._config
        self._runner(["pkill", "-u", cfg.user, "-f", DAEMON_PROCESS_PATTERN], timeout=cfg.command_timeout)
        if self.account_exists():
            result = self._runner(["userdel", "-r", cfg.user], timeout=cfg.command_timeout)
            if not result.ok and self.account_exists():
                return result.to_result("remove-account-and-data")

        removed = []
        for directory in (cfg.home_dir, cfg.download_dir, cfg.daemon_log_dir):
            path = Path(directory)
            if path.exists():
                shutil.rmtree(path, ignore_errors=True)
                removed.append(directory)
        return ActionResult.success("remove-account-and-data", metadata={"removed": removed})

    # ── Runtime config ──────────────────────────────────────────

    def runtime_config_ready(self) -> bool:
        settings = try_read_settings(self._config.settings_file)
        return settings is not None and settings.get(DOWNLOAD_DIR_KEY) == self._config.download_dir

    def wait_for_settings(self, timeout: int) -> bool:
        waited = 0
        while not self._config.settings_file.is_file():
            if waited >= timeout:
                return False
            self._sleep(1)
            waited += 1
        return True

    def configure_runtime(self) -> ActionResult:
        cfg = self._config
        try:
            update_settings(
                cfg.settings_file,
                {DOWNLOAD_DIR_KEY: cfg.download_dir},
                backup=False,
                owner=cfg.user,
            )
            Path(cfg.config_dir).chmod(0o750)
        except ActionFailed as e:
            return ActionResult.failure("initialize-runtime-config", reason=e.reason)
        except OSError as e:
            return ActionResult.failure("initialize-runtime-config", reason=str(e))
        return ActionResult.success(
            "initialize-runtime-config",
            metadata={"settings_file": str(cfg.settings_file), "download_dir": cfg.download_dir},
        )

    # ── Kernel tuning ───────────────────────────────────────────

    def tuning_present(self) -> bool:
        return Path(self._config.sysctl_file).is_file() and Path(self._config.limits_file).is_file()

    def write_tuning(self) -> ActionResult:
        cfg = self._config
        sysctl_file = Path(cfg.sysctl_file)
        limits_file = Path(cfg.limits_file)
        try:
            sysctl_file.parent.mkdir(parents=True, exist_ok=True)
            sysctl_file.write_text(render_sysctl(cfg), encoding="utf-8")
            limits_file.parent.mkdir(parents=True, exist_ok=True)
            limits_file.write_text(render_limits(cfg), encoding="utf-8")
        except OSError as e:
            return ActionResult.failure("apply-network-tuning", reason=f"Cannot write tuning files: {e}")

        loaded = self._runner(["sysctl", "-p", str(sysctl_file)], timeout=cfg.command_timeout)
        if not loaded.ok:
            logger.warning("Some kernel settings require a reboot to take effect")
        return ActionResult.success(
            "apply-network-tuning",
            output=f"{len(cfg.sysctl)} sysctl settings, nofile={cfg.nofile_limit}",
            metadata={
                "sysctl_file": str(sysctl_file),
                "limits_file": str(limits_file),
                "loaded": loaded.ok,
            },
        )

    def remove_tuning(self) -> ActionResult:
        removed = []
        for path in (Path(self._config.sysctl_file), Path(self._config.limits_file)):
            if path.exists():
                try:
                    path.unlink()
                except OSError as e:
                    return ActionResult.failure("remove-network-tuning", reason=f"Cannot remove {path}: {e}")
                removed.append(str(path))
        return ActionResult.success("remove-network-tuning", metadata={"removed": removed})

    # ── Log rotation ────────────────────────────────────────────

    def log_rotation_present(self) -> bool:
        cfg = self._config
        return Path(cfg.logrotate_file).is_file() and Path(cfg.installer_logrotate_file).is_file()

    def write_log_rotation(self) -> ActionResult:
        cfg = self._config
        written = []
        try:
            for path, text in (
                (Path(cfg.logrotate_file), render_logrotate(cfg)),
                (Path(cfg.installer_logrotate_file), render_installer_logrotate(cfg)),
            ):
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(text, encoding="utf-8")
                path.chmod(0o644)
                written.append(str(path))
        except OSError as e:
            return ActionResult.failure("configure-log-rotation", reason=f"Cannot write logrotate rules: {e}")
        return ActionResult.success("configure-log-rotation", metadata={"files": written})

    def remove_log_rotation(self) -> ActionResult:
        # Installer rules are kept
        path = Path(self._config.logrotate_file)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            return ActionResult.failure("remove-log-rotation", reason=f"Cannot remove {path}: {e}")
        return ActionResult.success("remove-log-rotation", metadata={"removed": [str(path)]})

    # ── Installed files ─────────────────────────────────────────

    def _installed_paths(self) -> list[Path]:
        prefix = Path(self._config.install_prefix)
        paths = sorted((prefix / "bin").glob("transmission-*"))
        share = prefix / "share" / "transmission"
        if share.exists():
            paths.append(share)
        paths += sorted((prefix / "share" / "doc").glob("transmission*"))
        return paths

    def binaries_present(self) -> bool:
        return bool(self._installed_paths())

    def remove_binaries(self) -> ActionResult:
        removed = []
        try:
            for path in self._installed_paths():
                if path.is_dir() and not path.is_symlink():
                    shutil.rmtree(path)
                else:
                    path.unlink()
                removed.append(str(path))
        except OSError as e:
            return ActionResult.failure("remove-binaries", reason=str(e), metadata={"removed": removed})
        return ActionResult.success("remove-binaries", metadata={"removed": removed})
