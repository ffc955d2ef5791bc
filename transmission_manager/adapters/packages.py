"""
Package installers — build dependencies per package manager.

Package names are domain facts kept in the variant tables below; they
are not computed. After installing, the installer re-checks the
capability tags so a package that silently failed (or a too-old cmake)
is reported instead of discovered later by the build. When only the
distro cmake falls short, the Kitware binary release is installed.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable, Iterable

from transmission_manager.adapters.base import PackageInstaller
from transmission_manager.adapters.cmake import KitwareCmakeInstaller
from transmission_manager.adapters.shell.command import Runner, run_command
from transmission_manager.core.models.action import ActionResult
from transmission_manager.core.models.config import ManagerConfig
from transmission_manager.core.models.facts import EnvironmentFacts, OsFamily
from transmission_manager.core.models.run import REASON_TIMEOUT
from transmission_manager.core.services.detection import (
    PACKAGE_MANAGER_ORDER,
    detect_tools,
    missing_tools,
)

logger = logging.getLogger(__name__)

ACTION = "install-deps"


class CommandPackageInstaller(PackageInstaller):
    """Package manager driven through its CLI.

    Subclasses fill in the command table. ``tolerant`` variants keep
    going when one install command fails (some packages are missing
    from the base repos); the tag re-check decides the outcome.
    """

    kind: str = ""
    command: str = ""
    packages: tuple[str, ...] = ()
    env: dict[str, str] = {}
    tolerant: bool = False

    def __init__(
        self,
        config: ManagerConfig,
        runner: Runner = run_command,
        which: Callable[[str], str | None] = shutil.which,
        cmake_fallback: Callable[[], ActionResult] | None = None,
    ):
        self._config = config
        self._runner = runner
        self._which = which
        self._cmake_fallback = cmake_fallback or KitwareCmakeInstaller(config).install

    @property
    def name(self) -> str:
        return self.kind

    def is_available(self) -> bool:
        return self._which(self.command) is not None

    def commands(self) -> list[list[str]]:
        """Commands run in order to install ``packages``."""
        raise NotImplementedError

    def ensure_tools(self, required: Iterable[str]) -> ActionResult:
        required = list(required)
        missing = self._missing(required)
        if not missing:
            return ActionResult.satisfied(ACTION, reason="all build tools present")

        logger.info("Installing build dependencies with %s (missing: %s)", self.kind, ", ".join(missing))
        outputs: list[str] = []
        for cmd in self.commands():
            result = self._runner(cmd, timeout=self._config.package_timeout, env_overrides=self.env)
            outputs.append(result.stdout.strip())
            if result.timed_out:
                return ActionResult.failure(
                    ACTION, reason=REASON_TIMEOUT, metadata={"command": result.command_line}
                )
            if not result.ok:
                if not self.tolerant:
                    return result.to_result(ACTION, package_manager=self.kind)
                logger.warning("%s reported errors (continuing): %s", self.kind, result.failure_reason())

        still_missing = self._missing(required)
        if "cmake" in still_missing:
            logger.warning(
                "cmake %s or newer not available from %s; installing the Kitware release",
                self._config.cmake_min_version, self.kind,
            )
            fallback = self._cmake_fallback()
            if fallback.ok:
                outputs.append(fallback.output)
                still_missing = self._missing(required)
            else:
                logger.warning("CMake fallback failed: %s", fallback.reason)

        if still_missing:
            return ActionResult.failure(
                ACTION,
                reason=f"still missing after {self.kind} install: {', '.join(still_missing)}",
                output="\n".join(o for o in outputs if o),
                metadata={"package_manager": self.kind, "missing": still_missing},
            )
        return ActionResult.success(
            ACTION,
            output="\n".join(o for o in outputs if o),
            metadata={"package_manager": self.kind, "installed_for": missing},
        )

    def _missing(self, required: list[str]) -> list[str]:
        available = detect_tools(self._which, self._runner, self._config.cmake_min_version)
        return missing_tools(required, available)


class AptInstaller(CommandPackageInstaller):
    kind = "apt"
    command = "apt-get"
    env = {"DEBIAN_FRONTEND": "noninteractive"}
    packages = (
        "build-essential", "checkinstall", "pkg-config", "libtool", "intltool",
        "libcurl4-openssl-dev", "libssl-dev", "libevent-dev", "libmbedtls-dev",
        "xz-utils", "wget", "curl", "cmake", "jq",
    )

    def commands(self) -> list[list[str]]:
        return [
            ["apt-get", "update", "-qq"],
            ["apt-get", "install", "-y", "-qq", *self.packages],
        ]


class DnfInstaller(CommandPackageInstaller):
    kind = "dnf"
    command = "dnf"
    tolerant = True
    packages = (
        "checkinstall", "libtool", "intltool", "libcurl-devel", "openssl-devel",
        "libevent-devel", "mbedtls-devel", "xz", "wget", "curl", "cmake", "jq",
    )

    def commands(self) -> list[list[str]]:
        return [
            [self.command, "-y", "-q", "groupinstall", "Development Tools"],
            [self.command, "-y", "-q", "install", *self.packages],
        ]


class YumInstaller(DnfInstaller):
    kind = "yum"
    command = "yum"


class PacmanInstaller(CommandPackageInstaller):
    kind = "pacman"
    command = "pacman"
    packages = (
        "base-devel", "libtool", "intltool", "curl", "openssl", "libevent",
        "mbedtls", "xz", "wget", "cmake", "jq",
    )

    def commands(self) -> list[list[str]]:
        return [["pacman", "-Sy", "--noconfirm", "--needed", "--quiet", *self.packages]]


class ZypperInstaller(CommandPackageInstaller):
    kind = "zypper"
    command = "zypper"
    packages = (
        "libtool", "intltool", "libcurl-devel", "libopenssl-devel", "libevent-devel",
        "mbedtls-devel", "xz", "wget", "curl", "cmake", "jq",
    )

    def commands(self) -> list[list[str]]:
        return [
            ["zypper", "--non-interactive", "--quiet", "install", "-t", "pattern", "devel_basis"],
            ["zypper", "--non-interactive", "--quiet", "install", *self.packages],
        ]


class ApkInstaller(CommandPackageInstaller):
    kind = "apk"
    command = "apk"
    packages = (
        "build-base", "libtool", "intltool", "curl-dev", "openssl-dev", "libevent-dev",
        "linux-headers", "mbedtls-dev", "xz", "wget", "curl", "cmake", "jq",
    )

    def commands(self) -> list[list[str]]:
        return [["apk", "add", "--quiet", *self.packages]]


class UnavailablePackageInstaller(PackageInstaller):
    """Placeholder when no supported package manager exists."""

    @property
    def name(self) -> str:
        return "none"

    def is_available(self) -> bool:
        return False

    def ensure_tools(self, required: Iterable[str]) -> ActionResult:
        return ActionResult.failure(
            ACTION,
            reason="no supported package manager found (tried: " + ", ".join(PACKAGE_MANAGER_ORDER) + ")",
        )


INSTALLERS: dict[str, type[CommandPackageInstaller]] = {
    "apt": AptInstaller,
    "dnf": DnfInstaller,
    "yum": YumInstaller,
    "pacman": PacmanInstaller,
    "zypper": ZypperInstaller,
    "apk": ApkInstaller,
}

FAMILY_MANAGERS: dict[OsFamily, tuple[str, ...]] = {
    OsFamily.DEBIAN: ("apt",),
    OsFamily.RHEL: ("dnf", "yum"),
    OsFamily.ARCH: ("pacman",),
    OsFamily.SUSE: ("zypper",),
    OsFamily.ALPINE: ("apk",),
}


def select_package_installer(
    facts: EnvironmentFacts,
    config: ManagerConfig,
    runner: Runner = run_command,
    which: Callable[[str], str | None] = shutil.which,
) -> PackageInstaller:
    """Pick the variant for this host.

    The family's own manager wins when present; otherwise managers are
    probed in the fixed fallback order.
    """
    preferred = FAMILY_MANAGERS.get(facts.os_family, ())
    for kind in (*preferred, *PACKAGE_MANAGER_ORDER):
        if facts.has_tool(f"pm:{kind}"):
            logger.debug("Package manager: %s (os_family=%s)", kind, facts.os_family)
            return INSTALLERS[kind](config, runner=runner, which=which)
    logger.debug("No package manager found for os_family=%s", facts.os_family)
    return UnavailablePackageInstaller()
