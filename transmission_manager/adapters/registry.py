"""
Capability registry — the set of host adapters a run talks through.

Variants are selected once from the facts (``for_host``) and handed to
the engine and every action. Tests build the same registry from mocks.
"""

from __future__ import annotations

import logging
import time
import urllib.request
from collections.abc import Callable
from typing import Any

from transmission_manager.adapters.base import (
    ArtifactFetcher,
    Capability,
    CredentialStore,
    HostOperations,
    PackageInstaller,
    ServiceManager,
)
from transmission_manager.adapters.credentials import SettingsCredentialStore
from transmission_manager.adapters.fetcher import SourceBuildFetcher
from transmission_manager.adapters.host import LinuxHostOperations
from transmission_manager.adapters.packages import select_package_installer
from transmission_manager.adapters.services import select_service_manager
from transmission_manager.adapters.shell.command import Runner, run_command
from transmission_manager.core.models.config import ManagerConfig
from transmission_manager.core.models.facts import EnvironmentFacts

logger = logging.getLogger(__name__)

PACKAGES = "packages"
FETCHER = "fetcher"
SERVICES = "services"
CREDENTIALS = "credentials"
HOST = "host"

KINDS = (PACKAGES, FETCHER, SERVICES, CREDENTIALS, HOST)


class CapabilityRegistry:
    """Holds one capability variant per kind.

    Lookup of a kind that was never registered is a programming error
    and raises ``KeyError``.
    """

    def __init__(self) -> None:
        self._capabilities: dict[str, Capability] = {}

    def register(self, kind: str, capability: Capability) -> None:
        """Register ``capability`` under ``kind``, replacing any previous one."""
        if kind not in KINDS:
            raise ValueError(f"Unknown capability kind: {kind!r}")
        if kind in self._capabilities:
            logger.warning("Overwriting existing %s capability: %s", kind, self._capabilities[kind].name)
        self._capabilities[kind] = capability
        logger.debug("Registered %s capability: %s", kind, capability.name)

    def get(self, kind: str) -> Capability:
        try:
            return self._capabilities[kind]
        except KeyError:
            raise KeyError(f"No {kind} capability registered") from None

    def kinds(self) -> list[str]:
        return list(self._capabilities)

    @property
    def packages(self) -> PackageInstaller:
        return self.get(PACKAGES)  # type: ignore[return-value]

    @property
    def fetcher(self) -> ArtifactFetcher:
        return self.get(FETCHER)  # type: ignore[return-value]

    @property
    def services(self) -> ServiceManager:
        return self.get(SERVICES)  # type: ignore[return-value]

    @property
    def credentials(self) -> CredentialStore:
        return self.get(CREDENTIALS)  # type: ignore[return-value]

    @property
    def host(self) -> HostOperations:
        return self.get(HOST)  # type: ignore[return-value]

    def status(self) -> dict[str, dict[str, Any]]:
        """Selected variant and availability per kind."""
        status = {}
        for kind, capability in self._capabilities.items():
            try:
                available = capability.is_available()
            except OSError:
                available = False
            status[kind] = {
                "name": capability.name,
                "available": available,
                "type": capability.__class__.__name__,
            }
        return status

    @classmethod
    def for_host(
        cls,
        facts: EnvironmentFacts,
        config: ManagerConfig,
        *,
        runner: Runner = run_command,
        sleep: Callable[[float], None] = time.sleep,
        urlopen: Callable[..., Any] = urllib.request.urlopen,
    ) -> CapabilityRegistry:
        """Select every variant from the facts of this host."""
        registry = cls()
        services = select_service_manager(facts, config, runner=runner, sleep=sleep)
        registry.register(PACKAGES, select_package_installer(facts, config, runner=runner))
        registry.register(FETCHER, SourceBuildFetcher(config, runner=runner, urlopen=urlopen))
        registry.register(SERVICES, services)
        registry.register(CREDENTIALS, SettingsCredentialStore(config, services=services))
        registry.register(HOST, LinuxHostOperations(config, runner=runner, sleep=sleep))
        logger.debug(
            "Capabilities: %s",
            {kind: cap.name for kind, cap in registry._capabilities.items()},
        )
        return registry
