"""
Inspection use cases — read-only views for the CLI and menu.

Firewall rules, daemon and installer logs, host performance and the
daemon configuration. None of these take the lock or change the host.
"""

from __future__ import annotations

import logging
import shutil
from collections import deque
from collections.abc import Callable
from pathlib import Path

from transmission_manager.adapters.shell.command import Runner, run_command
from transmission_manager.core.models.config import ManagerConfig
from transmission_manager.core.persistence.audit import HistoryWriter, RunHistoryEntry
from transmission_manager.core.services.settings_file import (
    DOWNLOAD_DIR_KEY,
    PEER_PORT_KEY,
    RPC_PASSWORD_KEY,
    RPC_PORT_KEY,
    try_read_settings,
)

logger = logging.getLogger(__name__)

DAEMON_LOG_NAME = "transmission.log"

# Shown by the config view, in this order
CONFIG_VIEW_KEYS = (
    DOWNLOAD_DIR_KEY,
    "incomplete-dir",
    "incomplete-dir-enabled",
    RPC_PORT_KEY,
    "rpc-enabled",
    "rpc-authentication-required",
    "rpc-username",
    RPC_PASSWORD_KEY,
    "rpc-whitelist-enabled",
    "rpc-whitelist",
    PEER_PORT_KEY,
    "peer-limit-global",
    "peer-limit-per-torrent",
    "speed-limit-down-enabled",
    "speed-limit-up-enabled",
    "encryption",
)

NETWORK_SYSCTLS = ("net.core.rmem_max", "net.core.wmem_max")


# ── Firewall ────────────────────────────────────────────────────


def firewall_report(
    config: ManagerConfig,
    runner: Runner = run_command,
    which: Callable[[str], str | None] = shutil.which,
) -> dict:
    """Ports from settings.json and the firewall rules that mention them."""
    settings = try_read_settings(config.settings_file)
    if settings is None:
        return {"error": "Install Transmission first (no settings.json)"}

    rpc_port = settings.get(RPC_PORT_KEY, config.rpc_port)
    peer_port = settings.get(PEER_PORT_KEY, config.peer_port)
    report: dict = {"rpc_port": rpc_port, "peer_port": peer_port, "firewall": None, "rules": []}

    if which("ufw"):
        report["firewall"] = "ufw"
        listing = runner(["ufw", "status"], timeout=config.command_timeout)
    elif which("firewall-cmd"):
        report["firewall"] = "firewalld"
        listing = runner(["firewall-cmd", "--list-ports"], timeout=config.command_timeout)
    else:
        return report

    if not listing.ok:
        report["error"] = f"{listing.command_line}: {listing.failure_reason()}"
        return report

    # firewalld prints every port on one line
    entries = listing.stdout.split() if report["firewall"] == "firewalld" else listing.stdout.splitlines()
    ports = (str(rpc_port), str(peer_port))
    report["rules"] = [e.strip() for e in entries if any(port in e for port in ports)]
    return report


# ── Logs ────────────────────────────────────────────────────────


def tail_file(path: Path, lines: int = 20) -> list[str] | None:
    """Last ``lines`` lines of ``path``, or None when it cannot be read."""
    try:
        with path.open("r", encoding="utf-8", errors="replace") as f:
            return [line.rstrip("\n") for line in deque(f, maxlen=lines)]
    except OSError as e:
        logger.debug("Cannot read %s: %s", path, e)
        return None


def daemon_log(config: ManagerConfig, lines: int = 20) -> dict:
    path = Path(config.daemon_log_dir) / DAEMON_LOG_NAME
    content = tail_file(path, lines)
    if content is None:
        return {"path": str(path), "error": "No logs found"}
    return {"path": str(path), "lines": content}


def install_history(config: ManagerConfig, count: int = 20) -> list[RunHistoryEntry]:
    """Most recent completed runs, oldest first."""
    return HistoryWriter(Path(config.history_file)).read_recent(count)


# ── Performance ─────────────────────────────────────────────────


def parse_meminfo(text: str) -> dict[str, int]:
    """``/proc/meminfo`` → ``{"MemTotal": kB, ...}``."""
    values: dict[str, int] = {}
    for line in text.splitlines():
        key, _, rest = line.partition(":")
        fields = rest.split()
        if fields and fields[0].isdigit():
            values[key.strip()] = int(fields[0])
    return values


def performance_report(config: ManagerConfig, proc_root: Path = Path("/proc")) -> dict:
    """Memory, disk usage of the download dir and socket buffer sysctls."""
    report: dict = {"memory": {}, "disk": {}, "network": {}}

    try:
        meminfo = parse_meminfo((proc_root / "meminfo").read_text(encoding="utf-8"))
        report["memory"] = {
            "total_kb": meminfo.get("MemTotal"),
            "available_kb": meminfo.get("MemAvailable"),
            "swap_total_kb": meminfo.get("SwapTotal"),
            "swap_free_kb": meminfo.get("SwapFree"),
        }
    except OSError as e:
        logger.debug("Cannot read meminfo: %s", e)

    target = Path(config.download_dir)
    if not target.exists():
        target = Path("/")
    try:
        usage = shutil.disk_usage(target)
        report["disk"] = {
            "path": str(target),
            "total_bytes": usage.total,
            "used_bytes": usage.used,
            "free_bytes": usage.free,
        }
    except OSError as e:
        logger.debug("Cannot stat %s: %s", target, e)

    for key in NETWORK_SYSCTLS:
        path = proc_root / "sys" / Path(*key.split("."))
        try:
            report["network"][key] = path.read_text(encoding="utf-8").strip()
        except OSError:
            report["network"][key] = None
    return report


# ── Config view ─────────────────────────────────────────────────


def config_view(config: ManagerConfig) -> dict:
    """Settings file location and its key settings (password masked)."""
    path = config.settings_file
    settings = try_read_settings(path)
    view: dict = {
        "settings_file": str(path),
        "exists": settings is not None,
        "password_file": str(config.password_file) if config.password_file.is_file() else None,
        "settings": {},
    }
    if settings is None:
        return view
    for key in CONFIG_VIEW_KEYS:
        if key not in settings:
            continue
        view["settings"][key] = "********" if key == RPC_PASSWORD_KEY else settings[key]
    return view
