"""
Capability contracts — the protocol between actions and the host.

Actions only talk to the host through these interfaces. Each one has
several variants (one per package manager, init system, ...) selected
once from the facts, plus a mock used by the tests.

Operations return ``ActionResult`` and NEVER raise for external
failures; query methods (``is_running``, ``account_exists``) return
plain values and must be cheap.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable

from transmission_manager.core.models.action import ActionResult


class Capability(ABC):
    """Base class for all capability variants."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Variant identifier (e.g. 'apt', 'systemd', 'source-build')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the underlying tool exists on this host. Never raises."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class PackageInstaller(Capability):
    """Installs build dependencies with the host package manager."""

    @abstractmethod
    def ensure_tools(self, required: Iterable[str]) -> ActionResult:
        """Make every capability tag in ``required`` present."""


class ArtifactFetcher(Capability):
    """Obtains, builds and installs the daemon."""

    @abstractmethod
    def resolve_latest(self) -> str | None:
        """Latest released version, or None when it cannot be determined."""

    @abstractmethod
    def fetch_and_build(self, version: str) -> ActionResult:
        """Download, build and install ``version``."""


class ServiceManager(Capability):
    """Init-system integration for the daemon."""

    @abstractmethod
    def install(self, binary_path: str) -> ActionResult:
        """Write and enable the service definition."""

    @abstractmethod
    def uninstall(self) -> ActionResult:
        """Disable and remove the service definition."""

    @abstractmethod
    def is_installed(self) -> bool: ...

    @abstractmethod
    def start(self) -> ActionResult: ...

    @abstractmethod
    def stop(self) -> ActionResult:
        """Stop and wait until the process is gone (killing it if needed)."""

    @abstractmethod
    def restart(self) -> ActionResult: ...

    @abstractmethod
    def is_running(self) -> bool: ...

    @abstractmethod
    def wait_stopped(self, timeout: int) -> bool:
        """Poll until the daemon process exits; False on timeout."""


class CredentialStore(Capability):
    """The RPC credential inside the daemon settings."""

    @abstractmethod
    def current_hash(self) -> str | None: ...

    @abstractmethod
    def set_password(self, password_hash: str, plain: str | None = None) -> ActionResult:
        """Rewrite the RPC password, preserving every other setting.

        Refuses while the daemon runs: it rewrites settings.json on exit.
        """


class HostOperations(Capability):
    """Account, filesystem and kernel-tuning operations."""

    @abstractmethod
    def account_exists(self) -> bool: ...

    @abstractmethod
    def ensure_account(self) -> ActionResult:
        """Create the service account and its directories."""

    @abstractmethod
    def remove_account(self) -> ActionResult:
        """Remove the account with its home, downloads and daemon logs."""

    @abstractmethod
    def runtime_config_ready(self) -> bool:
        """settings.json exists and points at the configured download dir."""

    @abstractmethod
    def wait_for_settings(self, timeout: int) -> bool:
        """Poll until the daemon has written its default settings.json."""

    @abstractmethod
    def configure_runtime(self) -> ActionResult:
        """Point settings.json at the download dir and fix ownership."""

    @abstractmethod
    def write_tuning(self) -> ActionResult:
        """Write sysctl and file-limit drop-ins and load them."""

    @abstractmethod
    def remove_tuning(self) -> ActionResult: ...

    @abstractmethod
    def tuning_present(self) -> bool: ...

    @abstractmethod
    def write_log_rotation(self) -> ActionResult:
        """Write logrotate rules for the daemon logs and the manager's own logs."""

    @abstractmethod
    def remove_log_rotation(self) -> ActionResult: ...

    @abstractmethod
    def log_rotation_present(self) -> bool: ...

    @abstractmethod
    def remove_binaries(self) -> ActionResult: ...

    @abstractmethod
    def binaries_present(self) -> bool: ...
