"""
Environment probe — read-only host inspection.

``EnvironmentProbe.snapshot()`` never fails: an inconclusive probe
degrades the fact to ``unknown`` / absent and is logged at DEBUG.
Absent tools are facts, not errors.

Host access goes through injectable callables (``which``, ``runner``,
``path_exists``, ``account_exists``) so the probe can be exercised
against a simulated host.
"""

from __future__ import annotations

import logging
import os
import pwd
import re
import shutil
from collections.abc import Callable
from pathlib import Path

from transmission_manager.adapters.shell.command import Runner, run_command
from transmission_manager.core.errors import ProbeError
from transmission_manager.core.models.config import ManagerConfig
from transmission_manager.core.models.facts import (
    EnvironmentFacts,
    InitSystem,
    OsFamily,
    normalize_version,
    version_tuple,
)
from transmission_manager.core.services.settings_file import (
    DOWNLOAD_DIR_KEY,
    RPC_PASSWORD_KEY,
    try_read_settings,
)

logger = logging.getLogger(__name__)

# ── Host knowledge ──────────────────────────────────────────────

OS_FAMILY_IDS: dict[OsFamily, tuple[str, ...]] = {
    OsFamily.DEBIAN: ("ubuntu", "debian", "linuxmint", "pop", "raspbian"),
    OsFamily.RHEL: ("fedora", "centos", "rhel", "rocky", "almalinux"),
    OsFamily.ARCH: ("arch", "manjaro"),
    OsFamily.SUSE: ("suse", "opensuse", "sles"),
    OsFamily.ALPINE: ("alpine",),
}

# Fallback probing order when the OS family is unknown
PACKAGE_MANAGER_ORDER = ("apt", "dnf", "yum", "pacman", "zypper", "apk")
PACKAGE_MANAGER_COMMANDS = {
    "apt": "apt-get",
    "dnf": "dnf",
    "yum": "yum",
    "pacman": "pacman",
    "zypper": "zypper",
    "apk": "apk",
}

# Capability tag → any of these commands
TOOL_COMMANDS: dict[str, tuple[str, ...]] = {
    "cc": ("cc", "gcc", "clang"),
    "make": ("make",),
    "cmake": ("cmake",),
    "pkg-config": ("pkg-config", "pkgconf"),
    "tar": ("tar",),
    "xz": ("xz",),
    "curl": ("curl",),
    "wget": ("wget",),
    "jq": ("jq",),
    "openssl": ("openssl",),
    "checkinstall": ("checkinstall",),
    "ufw": ("ufw",),
    "firewalld": ("firewall-cmd",),
}

SYSTEMD_MARKERS = ("/run/systemd/system",)
OPENRC_MARKERS = ("/sbin/openrc-run", "/bin/openrc-run", "/run/openrc")
SYSV_MARKERS = ("/etc/init.d/rc", "/etc/rc.d")

# States ``systemctl is-system-running`` reports when systemd is PID 1
_SYSTEMD_STATES = {"initializing", "starting", "running", "degraded", "maintenance", "stopping"}

# pgrep matches the 15-char comm name, hence the truncation
DAEMON_PROCESS_PATTERN = "transmission-da"

_DAEMON_VERSION_RE = re.compile(r"transmission-daemon\s+v?(\d+(?:\.\d+)+\S*)", re.IGNORECASE)
_CMAKE_VERSION_RE = re.compile(r"cmake version\s+(\d+(?:\.\d+)+)", re.IGNORECASE)


# ── Pure parsers ────────────────────────────────────────────────


def parse_os_release(text: str) -> dict[str, str]:
    """Parse /etc/os-release ``KEY=value`` lines (quotes stripped)."""
    data: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        data[key.strip()] = value.strip().strip('"').strip("'")
    return data


def os_family_from_release(release: dict[str, str]) -> OsFamily:
    """Map ``ID`` (then each ``ID_LIKE`` entry) to a family."""
    candidates = [release.get("ID", "").lower()]
    candidates += release.get("ID_LIKE", "").lower().split()
    for candidate in candidates:
        if not candidate:
            continue
        for family, ids in OS_FAMILY_IDS.items():
            if candidate in ids or (family == OsFamily.SUSE and candidate.startswith("opensuse")):
                return family
    return OsFamily.UNKNOWN


def parse_daemon_version(output: str) -> str | None:
    """``transmission-daemon 4.0.5 (a6fe2a64aa)`` → ``4.0.5``."""
    match = _DAEMON_VERSION_RE.search(output)
    return normalize_version(match.group(1)) if match else None


def parse_cmake_version(output: str) -> str | None:
    match = _CMAKE_VERSION_RE.search(output)
    return match.group(1) if match else None


# ── Individual probes ───────────────────────────────────────────


def detect_init_system(
    which: Callable[[str], str | None],
    path_exists: Callable[[str], bool],
    runner: Runner,
) -> InitSystem:
    """systemd → OpenRC → SysV → unknown."""
    if which("systemctl"):
        if any(path_exists(p) for p in SYSTEMD_MARKERS):
            return InitSystem.SYSTEMD
        answer = runner(["systemctl", "is-system-running"], timeout=10)
        if answer.stdout.strip() in _SYSTEMD_STATES:
            return InitSystem.SYSTEMD
    if any(path_exists(p) for p in OPENRC_MARKERS):
        return InitSystem.OPENRC
    if any(path_exists(p) for p in SYSV_MARKERS):
        return InitSystem.SYSV
    return InitSystem.UNKNOWN


def detect_tools(
    which: Callable[[str], str | None],
    runner: Runner,
    cmake_min_version: str = "3.16.0",
) -> frozenset[str]:
    """Capability tags present on the host.

    ``pm:<kind>`` for each package manager; one tag per tool in
    ``TOOL_COMMANDS``. ``cmake`` counts only at or above the minimum
    version the build needs.
    """
    tags: set[str] = set()
    for kind in PACKAGE_MANAGER_ORDER:
        if which(PACKAGE_MANAGER_COMMANDS[kind]):
            tags.add(f"pm:{kind}")
    for tag, commands in TOOL_COMMANDS.items():
        if any(which(c) for c in commands):
            tags.add(tag)

    if "cmake" in tags:
        found = parse_cmake_version(runner(["cmake", "--version"], timeout=10).stdout)
        if found is None or version_tuple(found) < version_tuple(cmake_min_version):
            logger.debug("cmake %s is older than %s — not counted", found, cmake_min_version)
            tags.discard("cmake")
    return frozenset(tags)


def missing_tools(required: list[str], available: frozenset[str]) -> list[str]:
    return [tag for tag in required if tag not in available]


def system_account_exists(name: str) -> bool:
    try:
        pwd.getpwnam(name)
    except KeyError:
        return False
    return True


# ── Probe ───────────────────────────────────────────────────────


class EnvironmentProbe:
    """Captures an ``EnvironmentFacts`` snapshot of the host."""

    def __init__(
        self,
        config: ManagerConfig,
        *,
        which: Callable[[str], str | None] = shutil.which,
        runner: Runner = run_command,
        path_exists: Callable[[str], bool] = os.path.exists,
        account_exists: Callable[[str], bool] = system_account_exists,
    ):
        self._config = config
        self._which = which
        self._runner = runner
        self._exists = path_exists
        self._account_exists = account_exists

    def snapshot(self) -> EnvironmentFacts:
        """Inspect the host. Side-effect free; never raises."""
        cfg = self._config

        os_family = self._guard("os_family", self._os_family, OsFamily.UNKNOWN)
        init_system = self._guard(
            "init_system",
            lambda: detect_init_system(self._which, self._exists, self._runner),
            InitSystem.UNKNOWN,
        )
        tools = self._guard(
            "tools",
            lambda: detect_tools(self._which, self._runner, cfg.cmake_min_version),
            frozenset(),
        )
        binary = self._guard("binary", self._binary_path, None)
        version = self._guard("version", lambda: self._installed_version(binary), None)
        running = self._guard("running", lambda: self._is_running(init_system), False)
        account = self._guard("account", lambda: self._account_exists(cfg.user), False)
        unit = self._guard("service_unit", lambda: self._unit_present(init_system), False)
        settings = try_read_settings(cfg.settings_file) or {}
        tuned = self._guard(
            "network_tuned",
            lambda: self._exists(cfg.sysctl_file) and self._exists(cfg.limits_file),
            False,
        )
        rotated = self._guard(
            "log_rotation",
            lambda: self._exists(cfg.logrotate_file) and self._exists(cfg.installer_logrotate_file),
            False,
        )

        facts = EnvironmentFacts(
            os_family=os_family,
            init_system=init_system,
            installed_version=version,
            is_running=running,
            available_tools=tools,
            binary_path=binary,
            service_account=account,
            service_unit=unit,
            runtime_config=settings.get(DOWNLOAD_DIR_KEY) == cfg.download_dir,
            network_tuned=tuned,
            log_rotation=rotated,
            rpc_password_hash=settings.get(RPC_PASSWORD_KEY) or None,
        )
        logger.debug(
            "Facts: os=%s init=%s version=%s running=%s tools=%s",
            facts.os_family, facts.init_system, facts.installed_version,
            facts.is_running, sorted(facts.available_tools),
        )
        return facts

    def _guard(self, fact: str, probe: Callable, default):
        try:
            return probe()
        except (ProbeError, OSError, ValueError) as e:
            logger.debug("Probe %s inconclusive: %s", fact, e)
            return default

    def _os_family(self) -> OsFamily:
        path = Path(self._config.os_release_file)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ProbeError(f"Cannot read {path}: {e}") from e
        return os_family_from_release(parse_os_release(text))

    def _binary_path(self) -> str | None:
        found = self._which(self._config.service_name)
        if found:
            return found
        fallback = str(self._config.binary_path)
        return fallback if self._exists(fallback) else None

    def _installed_version(self, binary: str | None) -> str | None:
        if not binary:
            return None
        result = self._runner([binary, "--version"], timeout=10)
        version = parse_daemon_version(result.stdout + "\n" + result.stderr)
        if version is None:
            raise ProbeError(f"Unrecognised version output from {binary}")
        return version

    def _is_running(self, init_system: InitSystem) -> bool:
        cfg = self._config
        if self._runner(["pgrep", "-u", cfg.user, "-f", DAEMON_PROCESS_PATTERN], timeout=10).ok:
            return True
        if init_system == InitSystem.SYSTEMD:
            return self._runner(
                ["systemctl", "is-active", "--quiet", cfg.service_name], timeout=10
            ).ok
        return False

    def _unit_present(self, init_system: InitSystem) -> bool:
        if init_system == InitSystem.SYSTEMD:
            return self._exists(str(self._config.systemd_unit_path))
        return self._exists(str(self._config.init_script_path))
