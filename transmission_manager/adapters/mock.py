"""
Mock capabilities — test doubles backed by a simulated host.

Every mock reads and mutates one shared ``SimulatedHost``, so a test can
apply a plan, re-probe with ``host.facts()`` and observe exactly what the
actions changed. All calls land in the host's ``events`` list in order,
and each mock keeps its own ``call_log``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from transmission_manager.adapters.base import (
    ArtifactFetcher,
    CredentialStore,
    HostOperations,
    PackageInstaller,
    ServiceManager,
)
from transmission_manager.adapters.registry import (
    CREDENTIALS,
    FETCHER,
    HOST,
    PACKAGES,
    SERVICES,
    CapabilityRegistry,
)
from transmission_manager.core.models.action import ActionResult
from transmission_manager.core.models.facts import EnvironmentFacts, InitSystem, OsFamily

SIMULATED_SETTINGS_BACKUP = "/simulated/settings.json.backup"


@dataclass
class SimulatedHost:
    """Mutable stand-in for the machine the probe would inspect."""

    os_family: OsFamily = OsFamily.DEBIAN
    init_system: InitSystem = InitSystem.SYSTEMD
    tools: set[str] = field(default_factory=lambda: {"pm:apt"})
    installed_version: str | None = None
    binary_path: str | None = None
    running: bool = False
    account: bool = False
    unit: bool = False
    settings_written: bool = False
    runtime_config: bool = False
    tuned: bool = False
    log_rotation: bool = False
    password_hash: str | None = None
    password_plain: str | None = None
    latest_version: str | None = "4.0.6"
    events: list[str] = field(default_factory=list)

    def facts(self) -> EnvironmentFacts:
        """Snapshot, as the probe would report it."""
        return EnvironmentFacts(
            os_family=self.os_family,
            init_system=self.init_system,
            installed_version=self.installed_version,
            is_running=self.running,
            available_tools=frozenset(self.tools),
            binary_path=self.binary_path,
            service_account=self.account,
            service_unit=self.unit,
            runtime_config=self.runtime_config,
            network_tuned=self.tuned,
            log_rotation=self.log_rotation,
            rpc_password_hash=self.password_hash,
        )


class _MockCapability:
    """Shared call recording and failure injection."""

    def __init__(self, host: SimulatedHost, name: str, available: bool = True):
        self._host = host
        self._name = name
        self._available = available
        self._call_log: list[tuple[str, tuple]] = []
        self._failures: dict[str, str] = {}

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[tuple[str, tuple]]:
        """``(operation, args)`` for every call received."""
        return self._call_log

    def calls(self, operation: str) -> int:
        return sum(1 for op, _ in self._call_log if op == operation)

    def is_available(self) -> bool:
        return self._available

    def set_failure(self, operation: str, reason: str = "Mock failure") -> None:
        """Make ``operation`` fail with ``reason`` until reset."""
        self._failures[operation] = reason

    def reset(self) -> None:
        self._call_log.clear()
        self._failures.clear()

    def _record(self, operation: str, *args) -> ActionResult | None:
        self._call_log.append((operation, args))
        self._host.events.append(f"{self._name}.{operation}")
        if operation in self._failures:
            return ActionResult.failure(operation, reason=self._failures[operation])
        return None


class MockPackageInstaller(_MockCapability, PackageInstaller):
    def __init__(self, host: SimulatedHost):
        super().__init__(host, "mock-packages")

    def ensure_tools(self, required: Iterable[str]) -> ActionResult:
        required = list(required)
        failed = self._record("ensure_tools", tuple(required))
        if failed:
            return failed
        self._host.tools |= set(required)
        return ActionResult.success("install-deps", output=f"{len(required)} tools present")


class MockFetcher(_MockCapability, ArtifactFetcher):
    def __init__(self, host: SimulatedHost, binary_path: str = "/usr/local/bin/transmission-daemon"):
        super().__init__(host, "mock-fetcher")
        self._binary_path = binary_path

    def resolve_latest(self) -> str | None:
        self._record("resolve_latest")
        return self._host.latest_version

    def fetch_and_build(self, version: str) -> ActionResult:
        failed = self._record("fetch_and_build", version)
        if failed:
            return failed
        self._host.installed_version = version
        self._host.binary_path = self._binary_path
        return ActionResult.success(
            "fetch-and-build",
            metadata={"version": version, "binary_path": self._binary_path},
        )


class MockServiceManager(_MockCapability, ServiceManager):
    def __init__(self, host: SimulatedHost):
        super().__init__(host, "mock-services")

    def install(self, binary_path: str) -> ActionResult:
        failed = self._record("install", binary_path)
        if failed:
            return failed
        self._host.unit = True
        return ActionResult.success("install-service-unit", metadata={"binary_path": binary_path})

    def uninstall(self) -> ActionResult:
        failed = self._record("uninstall")
        if failed:
            return failed
        self._host.unit = False
        return ActionResult.success("remove-service-unit")

    def is_installed(self) -> bool:
        return self._host.unit

    def start(self) -> ActionResult:
        failed = self._record("start")
        if failed:
            return failed
        self._host.running = True
        # The daemon writes its defaults on first start
        self._host.settings_written = True
        return ActionResult.success("start-service")

    def stop(self) -> ActionResult:
        failed = self._record("stop")
        if failed:
            return failed
        self._host.running = False
        return ActionResult.success("stop-service")

    def restart(self) -> ActionResult:
        failed = self._record("restart")
        if failed:
            return failed
        self._host.running = True
        return ActionResult.success("restart-service")

    def is_running(self) -> bool:
        return self._host.running

    def wait_stopped(self, timeout: int) -> bool:
        return not self._host.running


class MockCredentialStore(_MockCapability, CredentialStore):
    def __init__(self, host: SimulatedHost):
        super().__init__(host, "mock-credentials")

    def current_hash(self) -> str | None:
        return self._host.password_hash

    def set_password(self, password_hash: str, plain: str | None = None) -> ActionResult:
        failed = self._record("set_password", password_hash)
        if failed:
            return failed
        if self._host.running:
            return ActionResult.failure("set-credential", reason="daemon is running")
        self._host.password_hash = password_hash
        self._host.password_plain = plain
        return ActionResult.success("set-credential", metadata={"backup": SIMULATED_SETTINGS_BACKUP})


class MockHostOperations(_MockCapability, HostOperations):
    def __init__(self, host: SimulatedHost):
        super().__init__(host, "mock-host")

    def account_exists(self) -> bool:
        return self._host.account

    def ensure_account(self) -> ActionResult:
        failed = self._record("ensure_account")
        if failed:
            return failed
        self._host.account = True
        return ActionResult.success("create-service-account")

    def remove_account(self) -> ActionResult:
        failed = self._record("remove_account")
        if failed:
            return failed
        self._host.account = False
        self._host.settings_written = False
        self._host.runtime_config = False
        self._host.password_hash = None
        return ActionResult.success("remove-account-and-data")

    def runtime_config_ready(self) -> bool:
        return self._host.runtime_config

    def wait_for_settings(self, timeout: int) -> bool:
        self._record("wait_for_settings", timeout)
        return self._host.settings_written

    def configure_runtime(self) -> ActionResult:
        failed = self._record("configure_runtime")
        if failed:
            return failed
        self._host.runtime_config = True
        return ActionResult.success("initialize-runtime-config")

    def write_tuning(self) -> ActionResult:
        failed = self._record("write_tuning")
        if failed:
            return failed
        self._host.tuned = True
        return ActionResult.success("apply-network-tuning")

    def remove_tuning(self) -> ActionResult:
        failed = self._record("remove_tuning")
        if failed:
            return failed
        self._host.tuned = False
        return ActionResult.success("remove-network-tuning")

    def tuning_present(self) -> bool:
        return self._host.tuned

    def write_log_rotation(self) -> ActionResult:
        failed = self._record("write_log_rotation")
        if failed:
            return failed
        self._host.log_rotation = True
        return ActionResult.success("configure-log-rotation")

    def remove_log_rotation(self) -> ActionResult:
        failed = self._record("remove_log_rotation")
        if failed:
            return failed
        self._host.log_rotation = False
        return ActionResult.success("remove-log-rotation")

    def log_rotation_present(self) -> bool:
        return self._host.log_rotation

    def remove_binaries(self) -> ActionResult:
        failed = self._record("remove_binaries")
        if failed:
            return failed
        self._host.installed_version = None
        self._host.binary_path = None
        return ActionResult.success("remove-binaries")

    def binaries_present(self) -> bool:
        return self._host.installed_version is not None


def mock_capabilities(host: SimulatedHost | None = None) -> CapabilityRegistry:
    """A capability registry whose every variant is a mock on ``host``."""
    host = host or SimulatedHost()
    registry = CapabilityRegistry()
    registry.register(PACKAGES, MockPackageInstaller(host))
    registry.register(FETCHER, MockFetcher(host))
    registry.register(SERVICES, MockServiceManager(host))
    registry.register(CREDENTIALS, MockCredentialStore(host))
    registry.register(HOST, MockHostOperations(host))
    return registry
