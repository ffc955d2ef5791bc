"""
Action catalogs — the install and removal action sets.

Each action pairs a cheap precondition over the facts with an apply
step that goes through the capability adapters. Preconditions close
over the config where they need it (required tools); they never touch
the host.

Install:

    install-deps ──► fetch-and-build ──┐
    create-service-account ────────────┴► install-service-unit
        ──► initialize-runtime-config ──► set-credential
    apply-network-tuning
    create-service-account ──► configure-log-rotation
    ensure-service-state (after unit, runtime config and credential)

Removal:

    stop-service ──► remove-service-unit ──► remove-account-and-data
    stop-service ──► remove-binaries
    remove-network-tuning
    remove-log-rotation
"""

from __future__ import annotations

import logging
from typing import Any

from transmission_manager.core.engine.registry import ActionContext, ActionRegistry, ActionSpec
from transmission_manager.core.models.action import ActionResult
from transmission_manager.core.models.config import ManagerConfig
from transmission_manager.core.models.facts import (
    CREDENTIAL_GENERATE,
    CREDENTIAL_UNCHANGED,
    DesiredState,
    EnvironmentFacts,
    normalize_version,
)
from transmission_manager.core.services.credentials import new_credential

logger = logging.getLogger(__name__)

INSTALL_DEPS = "install-deps"
FETCH_AND_BUILD = "fetch-and-build"
CREATE_ACCOUNT = "create-service-account"
INSTALL_UNIT = "install-service-unit"
INIT_RUNTIME_CONFIG = "initialize-runtime-config"
SET_CREDENTIAL = "set-credential"
APPLY_TUNING = "apply-network-tuning"
CONFIGURE_LOG_ROTATION = "configure-log-rotation"
ENSURE_SERVICE_STATE = "ensure-service-state"

STOP_SERVICE = "stop-service"
REMOVE_UNIT = "remove-service-unit"
REMOVE_TUNING = "remove-network-tuning"
REMOVE_LOG_ROTATION = "remove-log-rotation"
REMOVE_BINARIES = "remove-binaries"
REMOVE_ACCOUNT = "remove-account-and-data"


# ── Install ─────────────────────────────────────────────────────


def _version_satisfied(facts: EnvironmentFacts, desired: DesiredState) -> bool:
    if desired.wants_latest:
        # Unresolved "latest": any installed build counts
        return facts.installed
    return facts.installed_version == normalize_version(desired.version)


def _fetch_and_build(ctx: ActionContext) -> ActionResult:
    fetcher = ctx.capabilities.fetcher
    version = ctx.desired.version
    if ctx.desired.wants_latest:
        version = fetcher.resolve_latest() or ctx.config.default_version
        logger.info("Resolved latest version to %s", version)
    return fetcher.fetch_and_build(normalize_version(version))


def _fetch_effect(facts: EnvironmentFacts, desired: DesiredState, result: ActionResult) -> dict[str, Any]:
    return {
        "installed_version": result.metadata.get("version") or normalize_version(desired.version),
        "binary_path": result.metadata.get("binary_path") or facts.binary_path,
    }


def _install_unit(ctx: ActionContext) -> ActionResult:
    binary = ctx.facts.binary_path or str(ctx.config.binary_path)
    return ctx.capabilities.services.install(binary)


def _initialize_runtime_config(ctx: ActionContext) -> ActionResult:
    """First start writes the daemon's default settings; then point them at the download dir."""
    host = ctx.capabilities.host
    services = ctx.capabilities.services

    if not host.wait_for_settings(0):
        logger.info("Starting the daemon once to generate settings.json")
        started = services.start()
        if not started.ok:
            return ActionResult.failure(
                INIT_RUNTIME_CONFIG,
                reason=f"could not start daemon to generate settings: {started.reason}",
            )
        ready = host.wait_for_settings(ctx.config.config_init_wait)
        stopped = services.stop()
        if not ready:
            return ActionResult.failure(
                INIT_RUNTIME_CONFIG,
                reason=(
                    f"daemon did not write {ctx.config.settings_file} "
                    f"within {ctx.config.config_init_wait}s"
                ),
            )
        if not stopped.ok:
            return ActionResult.failure(
                INIT_RUNTIME_CONFIG,
                reason=f"could not stop daemon after config init: {stopped.reason}",
            )

    return host.configure_runtime()


def _credential_satisfied(facts: EnvironmentFacts, desired: DesiredState) -> bool:
    if desired.credential == CREDENTIAL_UNCHANGED:
        return True
    if desired.credential == CREDENTIAL_GENERATE:
        return bool(facts.rpc_password_hash)
    return facts.rpc_password_hash == desired.credential


def _set_credential(ctx: ActionContext) -> ActionResult:
    desired = ctx.desired
    if desired.credential == CREDENTIAL_GENERATE:
        plain, password_hash = new_credential()
    else:
        plain, password_hash = desired.credential_plain, desired.credential

    result = ctx.capabilities.credentials.set_password(password_hash, plain)
    result.metadata["credential"] = "generated" if desired.credential == CREDENTIAL_GENERATE else "explicit"
    return result


def _credential_effect(facts: EnvironmentFacts, desired: DesiredState, result: ActionResult) -> dict[str, Any]:
    if desired.explicit_credential:
        return {"rpc_password_hash": desired.credential}
    # The generated hash stays with the adapter; the live view only needs to know one exists
    return {"rpc_password_hash": facts.rpc_password_hash or CREDENTIAL_GENERATE}


def _ensure_service_state(ctx: ActionContext) -> ActionResult:
    services = ctx.capabilities.services
    if ctx.desired.running:
        return services.start()
    return services.stop()


def build_install_registry(config: ManagerConfig) -> ActionRegistry:
    """The install catalog, in planning tie-break order."""
    required = list(config.required_tools)

    return ActionRegistry([
        ActionSpec(
            name=INSTALL_DEPS,
            description="Install build dependencies",
            precondition=lambda facts, desired: all(facts.has_tool(t) for t in required),
            apply=lambda ctx: ctx.capabilities.packages.ensure_tools(required),
            effect=lambda facts, desired, result: {
                "available_tools": facts.available_tools | frozenset(required),
            },
        ),
        ActionSpec(
            name=FETCH_AND_BUILD,
            description="Download, build and install transmission-daemon",
            precondition=_version_satisfied,
            apply=_fetch_and_build,
            depends_on=frozenset({INSTALL_DEPS}),
            effect=_fetch_effect,
        ),
        ActionSpec(
            name=CREATE_ACCOUNT,
            description=f"Create service account '{config.user}'",
            precondition=lambda facts, desired: facts.service_account,
            apply=lambda ctx: ctx.capabilities.host.ensure_account(),
            effect=lambda facts, desired, result: {"service_account": True},
        ),
        ActionSpec(
            name=INSTALL_UNIT,
            description="Install the init-system service definition",
            precondition=lambda facts, desired: facts.service_unit,
            apply=_install_unit,
            depends_on=frozenset({FETCH_AND_BUILD, CREATE_ACCOUNT}),
            effect=lambda facts, desired, result: {"service_unit": True},
        ),
        ActionSpec(
            name=INIT_RUNTIME_CONFIG,
            description="Initialize the daemon settings",
            precondition=lambda facts, desired: facts.runtime_config,
            apply=_initialize_runtime_config,
            depends_on=frozenset({INSTALL_UNIT}),
            effect=lambda facts, desired, result: {"runtime_config": True, "is_running": False},
            requires_stopped=True,
        ),
        ActionSpec(
            name=SET_CREDENTIAL,
            description="Set the RPC credential",
            precondition=_credential_satisfied,
            apply=_set_credential,
            depends_on=frozenset({INIT_RUNTIME_CONFIG}),
            effect=_credential_effect,
            requires_stopped=True,
        ),
        ActionSpec(
            name=APPLY_TUNING,
            description="Apply network tuning",
            precondition=lambda facts, desired: not desired.network_tuning or facts.network_tuned,
            apply=lambda ctx: ctx.capabilities.host.write_tuning(),
            effect=lambda facts, desired, result: {"network_tuned": True},
        ),
        ActionSpec(
            name=CONFIGURE_LOG_ROTATION,
            description="Configure log rotation",
            precondition=lambda facts, desired: facts.log_rotation,
            apply=lambda ctx: ctx.capabilities.host.write_log_rotation(),
            depends_on=frozenset({CREATE_ACCOUNT}),
            effect=lambda facts, desired, result: {"log_rotation": True},
        ),
        ActionSpec(
            name=ENSURE_SERVICE_STATE,
            description="Bring the daemon to the desired running state",
            precondition=lambda facts, desired: facts.is_running == desired.running,
            apply=_ensure_service_state,
            depends_on=frozenset({INSTALL_UNIT, INIT_RUNTIME_CONFIG, SET_CREDENTIAL}),
            effect=lambda facts, desired, result: {"is_running": desired.running},
        ),
    ])


# ── Removal ─────────────────────────────────────────────────────


def build_removal_registry(config: ManagerConfig) -> ActionRegistry:
    """The uninstall catalog. Account and data go only with ``purge_data``."""
    return ActionRegistry([
        ActionSpec(
            name=STOP_SERVICE,
            description="Stop the daemon",
            precondition=lambda facts, desired: not facts.is_running,
            apply=lambda ctx: ctx.capabilities.services.stop(),
            effect=lambda facts, desired, result: {"is_running": False},
        ),
        ActionSpec(
            name=REMOVE_UNIT,
            description="Remove the service definition",
            precondition=lambda facts, desired: not facts.service_unit,
            apply=lambda ctx: ctx.capabilities.services.uninstall(),
            depends_on=frozenset({STOP_SERVICE}),
            effect=lambda facts, desired, result: {"service_unit": False},
        ),
        ActionSpec(
            name=REMOVE_TUNING,
            description="Remove network tuning files",
            precondition=lambda facts, desired: not facts.network_tuned,
            apply=lambda ctx: ctx.capabilities.host.remove_tuning(),
            effect=lambda facts, desired, result: {"network_tuned": False},
        ),
        ActionSpec(
            name=REMOVE_LOG_ROTATION,
            description="Remove daemon log rotation rules",
            precondition=lambda facts, desired: not facts.log_rotation,
            apply=lambda ctx: ctx.capabilities.host.remove_log_rotation(),
            effect=lambda facts, desired, result: {"log_rotation": False},
        ),
        ActionSpec(
            name=REMOVE_BINARIES,
            description=f"Remove installed files under {config.install_prefix}",
            precondition=lambda facts, desired: not facts.installed and facts.binary_path is None,
            apply=lambda ctx: ctx.capabilities.host.remove_binaries(),
            depends_on=frozenset({STOP_SERVICE}),
            effect=lambda facts, desired, result: {"installed_version": None, "binary_path": None},
        ),
        ActionSpec(
            name=REMOVE_ACCOUNT,
            description=f"Remove account '{config.user}' with its data",
            precondition=lambda facts, desired: not desired.purge_data or not facts.service_account,
            apply=lambda ctx: ctx.capabilities.host.remove_account(),
            depends_on=frozenset({STOP_SERVICE, REMOVE_UNIT}),
            effect=lambda facts, desired, result: {
                "service_account": False,
                "runtime_config": False,
                "rpc_password_hash": None,
            },
        ),
    ])


# ── Service control ─────────────────────────────────────────────

RESTART_SERVICE = "restart-service"


def build_restart_registry() -> ActionRegistry:
    """A single restart action; its goal never holds beforehand."""
    return ActionRegistry([
        ActionSpec(
            name=RESTART_SERVICE,
            description="Restart the daemon",
            precondition=lambda facts, desired: False,
            apply=lambda ctx: ctx.capabilities.services.restart(),
            effect=lambda facts, desired, result: {"is_running": True},
        ),
    ])
