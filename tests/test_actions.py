"""
Tests for the install and removal action catalogs against a simulated host.
"""

from transmission_manager.adapters.mock import SimulatedHost, mock_capabilities
from transmission_manager.core.engine.executor import ConvergenceEngine
from transmission_manager.core.models.config import ManagerConfig
from transmission_manager.core.models.facts import (
    CREDENTIAL_GENERATE,
    DesiredState,
    EnvironmentFacts,
)
from transmission_manager.core.services.actions import (
    APPLY_TUNING,
    CONFIGURE_LOG_ROTATION,
    CREATE_ACCOUNT,
    ENSURE_SERVICE_STATE,
    FETCH_AND_BUILD,
    INIT_RUNTIME_CONFIG,
    INSTALL_DEPS,
    INSTALL_UNIT,
    REMOVE_ACCOUNT,
    REMOVE_BINARIES,
    REMOVE_LOG_ROTATION,
    REMOVE_TUNING,
    REMOVE_UNIT,
    SET_CREDENTIAL,
    STOP_SERVICE,
    build_install_registry,
    build_removal_registry,
    build_restart_registry,
)
from transmission_manager.core.services.credentials import hash_password

FRESH_PLAN = [
    INSTALL_DEPS,
    FETCH_AND_BUILD,
    CREATE_ACCOUNT,
    INSTALL_UNIT,
    INIT_RUNTIME_CONFIG,
    SET_CREDENTIAL,
    CONFIGURE_LOG_ROTATION,
    ENSURE_SERVICE_STATE,
]


def _install_engine(host, config=None):
    config = config or ManagerConfig()
    return ConvergenceEngine(build_install_registry(config), config, mock_capabilities(host))


def _removal_engine(host, config=None):
    config = config or ManagerConfig()
    return ConvergenceEngine(build_removal_registry(config), config, mock_capabilities(host))


def _desired(**kwargs):
    kwargs.setdefault("version", "4.0.6")
    kwargs.setdefault("credential", CREDENTIAL_GENERATE)
    return DesiredState(**kwargs)


class TestInstallCatalog:
    def test_registry_is_valid(self):
        registry = build_install_registry(ManagerConfig())
        registry.validate()
        assert registry.names() == [
            INSTALL_DEPS,
            FETCH_AND_BUILD,
            CREATE_ACCOUNT,
            INSTALL_UNIT,
            INIT_RUNTIME_CONFIG,
            SET_CREDENTIAL,
            APPLY_TUNING,
            CONFIGURE_LOG_ROTATION,
            ENSURE_SERVICE_STATE,
        ]

    def test_fresh_host_plan(self):
        host = SimulatedHost()
        plan = _install_engine(host).plan(host.facts(), _desired())
        assert plan.actions == FRESH_PLAN

    def test_fresh_host_with_tuning(self):
        host = SimulatedHost()
        plan = _install_engine(host).plan(host.facts(), _desired(network_tuning=True))
        assert APPLY_TUNING in plan.actions
        assert plan.actions.index(APPLY_TUNING) < plan.actions.index(ENSURE_SERVICE_STATE)

    def test_converged_host_plan_empty(self, converged_host):
        plan = _install_engine(converged_host).plan(converged_host.facts(), _desired())
        assert plan.empty

    def test_version_change_plans_rebuild_only(self, converged_host):
        plan = _install_engine(converged_host).plan(converged_host.facts(), _desired(version="v4.1.0"))
        assert plan.actions == [FETCH_AND_BUILD]

    def test_unresolved_latest_satisfied_by_any_install(self, converged_host):
        plan = _install_engine(converged_host).plan(converged_host.facts(), _desired(version="latest"))
        assert FETCH_AND_BUILD not in plan.actions

    def test_missing_tool_plans_deps(self, converged_host):
        converged_host.tools.discard("cmake")
        plan = _install_engine(converged_host).plan(converged_host.facts(), _desired())
        assert plan.actions == [INSTALL_DEPS]

    def test_apply_then_replan_is_empty(self):
        host = SimulatedHost()
        engine = _install_engine(host)
        run = engine.apply(engine.plan(host.facts(), _desired()))
        assert run.ok, run.failure_reason

        assert engine.plan(host.facts(), _desired()).empty
        assert host.installed_version == "4.0.6"
        assert host.running
        assert host.password_hash is not None

    def test_apply_events(self):
        host = SimulatedHost()
        engine = _install_engine(host)
        engine.apply(engine.plan(host.facts(), _desired()))
        assert host.events == [
            "mock-packages.ensure_tools",
            "mock-fetcher.fetch_and_build",
            "mock-host.ensure_account",
            "mock-services.install",
            "mock-host.wait_for_settings",
            "mock-services.start",
            "mock-host.wait_for_settings",
            "mock-services.stop",
            "mock-host.configure_runtime",
            "mock-credentials.set_password",
            "mock-host.write_log_rotation",
            "mock-services.start",
        ]

    def test_second_apply_touches_nothing(self):
        host = SimulatedHost()
        engine = _install_engine(host)
        engine.apply(engine.plan(host.facts(), _desired()))
        host.events.clear()

        run = engine.apply(engine.plan(host.facts(), _desired()))
        assert run.ok
        assert run.results == []
        assert host.events == []

    def test_fetch_failure_skips_dependents(self):
        host = SimulatedHost()
        caps = mock_capabilities(host)
        caps.fetcher.set_failure("fetch_and_build", "download failed from all 6 sources")
        config = ManagerConfig()
        engine = ConvergenceEngine(build_install_registry(config), config, caps)
        run = engine.apply(engine.plan(host.facts(), _desired()))

        assert run.result_for(FETCH_AND_BUILD).failed
        assert run.result_for(CREATE_ACCOUNT).status == "success"
        assert run.result_for(CONFIGURE_LOG_ROTATION).status == "success"
        for name in (INSTALL_UNIT, INIT_RUNTIME_CONFIG, SET_CREDENTIAL, ENSURE_SERVICE_STATE):
            assert run.result_for(name).status == "skipped"
        assert run.result_for(INSTALL_UNIT).reason == f"dependency '{FETCH_AND_BUILD}' failed"
        assert run.status == "partial"
        assert host.account
        assert not host.unit

    def test_latest_resolved_inside_fetch(self):
        host = SimulatedHost(latest_version="4.1.0")
        engine = _install_engine(host)
        run = engine.apply(engine.plan(host.facts(), _desired(version="latest")))
        assert run.ok
        assert host.installed_version == "4.1.0"
        assert run.facts_after.installed_version == "4.1.0"

    def test_latest_falls_back_to_default(self):
        host = SimulatedHost(latest_version=None)
        config = ManagerConfig(default_version="5.0.0")
        engine = _install_engine(host, config)
        engine.apply(engine.plan(host.facts(), _desired(version="latest")))
        assert host.installed_version == "5.0.0"

    def test_no_start(self):
        host = SimulatedHost()
        engine = _install_engine(host)
        run = engine.apply(engine.plan(host.facts(), _desired(running=False)))
        assert run.ok
        assert not host.running
        assert ENSURE_SERVICE_STATE not in run.plan


class TestRuntimeConfig:
    def test_existing_settings_skip_first_start(self):
        host = SimulatedHost(
            tools={"pm:apt", *ManagerConfig().required_tools},
            installed_version="4.0.6",
            binary_path="/usr/local/bin/transmission-daemon",
            account=True,
            unit=True,
            settings_written=True,
            log_rotation=True,
            password_hash="{" + "c" * 40 + "12345678",
        )
        engine = _install_engine(host)
        run = engine.apply(engine.plan(host.facts(), _desired(running=False)))
        assert run.plan == [INIT_RUNTIME_CONFIG]
        assert host.events == ["mock-host.wait_for_settings", "mock-host.configure_runtime"]

    def test_settings_never_written(self):
        host = SimulatedHost()
        caps = mock_capabilities(host)
        caps.services.set_failure("start", "unit failed")
        config = ManagerConfig()
        engine = ConvergenceEngine(build_install_registry(config), config, caps)
        run = engine.apply(engine.plan(host.facts(), _desired(), targets=[INIT_RUNTIME_CONFIG]))
        result = run.result_for(INIT_RUNTIME_CONFIG)
        assert result.failed
        assert "could not start daemon" in result.reason


class TestCredential:
    def test_unchanged_is_satisfied(self, converged_host):
        plan = _install_engine(converged_host).plan(
            converged_host.facts(), _desired(credential="unchanged"), targets=[SET_CREDENTIAL]
        )
        assert plan.empty

    def test_generate_satisfied_when_one_exists(self, converged_host):
        plan = _install_engine(converged_host).plan(converged_host.facts(), _desired(), targets=[SET_CREDENTIAL])
        assert plan.empty

    def test_explicit_hash_bracketed(self, converged_host):
        new_hash = hash_password("correct horse")
        desired = _desired(credential=new_hash, credential_plain="correct horse")
        engine = _install_engine(converged_host)
        run = engine.apply(engine.plan(converged_host.facts(), desired, targets=[SET_CREDENTIAL]))

        assert run.ok
        assert converged_host.events == [
            "mock-services.stop",
            "mock-credentials.set_password",
            "mock-services.start",
        ]
        assert converged_host.running
        assert converged_host.password_hash == new_hash
        assert converged_host.password_plain == "correct horse"
        assert run.result_for(SET_CREDENTIAL).metadata["credential"] == "explicit"
        assert run.facts_after.rpc_password_hash == new_hash

    def test_explicit_hash_already_set(self, converged_host):
        desired = _desired(credential=converged_host.password_hash)
        plan = _install_engine(converged_host).plan(converged_host.facts(), desired, targets=[SET_CREDENTIAL])
        assert plan.empty

    def test_generated_hash_not_in_metadata(self):
        host = SimulatedHost()
        engine = _install_engine(host)
        run = engine.apply(engine.plan(host.facts(), _desired()))
        result = run.result_for(SET_CREDENTIAL)
        assert result.metadata["credential"] == "generated"
        assert host.password_hash not in str(result.metadata)


class TestRemovalCatalog:
    def _installed_host(self, **kwargs):
        values = dict(
            tools={"pm:apt"},
            installed_version="4.0.6",
            binary_path="/usr/local/bin/transmission-daemon",
            running=True,
            account=True,
            unit=True,
            settings_written=True,
            runtime_config=True,
            tuned=True,
            log_rotation=True,
        )
        values.update(kwargs)
        return SimulatedHost(**values)

    def test_keep_data_plan(self):
        host = self._installed_host()
        plan = _removal_engine(host).plan(host.facts(), DesiredState(running=False))
        assert plan.actions == [STOP_SERVICE, REMOVE_UNIT, REMOVE_TUNING, REMOVE_LOG_ROTATION, REMOVE_BINARIES]

    def test_purge_plan(self):
        host = self._installed_host()
        plan = _removal_engine(host).plan(host.facts(), DesiredState(running=False, purge_data=True))
        assert plan.actions[-1] == REMOVE_ACCOUNT

    def test_purge_apply_then_replan_empty(self):
        host = self._installed_host()
        engine = _removal_engine(host)
        desired = DesiredState(running=False, purge_data=True)
        run = engine.apply(engine.plan(host.facts(), desired))
        assert run.ok
        assert not host.account and not host.unit and not host.tuned
        assert not host.log_rotation
        assert host.installed_version is None
        assert engine.plan(host.facts(), desired).empty

    def test_clean_host_nothing_to_remove(self):
        host = SimulatedHost()
        plan = _removal_engine(host).plan(host.facts(), DesiredState(running=False, purge_data=True))
        assert plan.empty

    def test_stop_failure_blocks_removals(self):
        host = self._installed_host(tuned=False, log_rotation=False)
        caps = mock_capabilities(host)
        caps.services.set_failure("stop", "still running after kill")
        config = ManagerConfig()
        engine = ConvergenceEngine(build_removal_registry(config), config, caps)
        run = engine.apply(engine.plan(host.facts(), DesiredState(running=False, purge_data=True)))
        assert run.result_for(STOP_SERVICE).failed
        assert all(r.skipped for r in run.results[1:])
        assert host.account


class TestRestart:
    def test_always_planned(self):
        host = SimulatedHost(running=True)
        config = ManagerConfig()
        engine = ConvergenceEngine(build_restart_registry(), config, mock_capabilities(host))
        plan = engine.plan(host.facts(), DesiredState())
        assert plan.actions == ["restart-service"]
        run = engine.apply(plan)
        assert run.ok
        assert host.events == ["mock-services.restart"]

    def test_restart_effect(self):
        config = ManagerConfig()
        host = SimulatedHost()
        engine = ConvergenceEngine(build_restart_registry(), config, mock_capabilities(host))
        run = engine.apply(engine.plan(EnvironmentFacts(), DesiredState()))
        assert run.facts_after.is_running


class TestLogRotation:
    def test_missing_rules_planned_alone(self, converged_host):
        converged_host.log_rotation = False
        engine = _install_engine(converged_host)
        plan = engine.plan(converged_host.facts(), _desired())
        assert plan.actions == [CONFIGURE_LOG_ROTATION]

        run = engine.apply(plan)
        assert run.ok
        # Not bracketed by a stop/start
        assert converged_host.events == ["mock-host.write_log_rotation"]
        assert converged_host.running
        assert converged_host.log_rotation

    def test_waits_for_account(self):
        host = SimulatedHost()
        caps = mock_capabilities(host)
        caps.host.set_failure("ensure_account", "useradd failed")
        config = ManagerConfig()
        engine = ConvergenceEngine(build_install_registry(config), config, caps)
        run = engine.apply(engine.plan(host.facts(), _desired()))
        assert run.result_for(CONFIGURE_LOG_ROTATION).status == "skipped"
        assert not host.log_rotation

    def test_keep_data_uninstall_removes_rules(self, converged_host):
        engine = _removal_engine(converged_host)
        run = engine.apply(engine.plan(converged_host.facts(), DesiredState(running=False)))
        assert run.ok
        assert REMOVE_LOG_ROTATION in run.plan
        assert not converged_host.log_rotation
