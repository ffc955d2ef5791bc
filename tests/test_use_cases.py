"""
Tests for the use cases — install, uninstall, service control, password,
optimize, status, backup — on a simulated host.
"""

import json
import os
import signal
import tarfile
from datetime import datetime
from pathlib import Path

import pytest

from transmission_manager.core.errors import AlreadyLocked, Interrupted
from transmission_manager.core.models.facts import CREDENTIAL_GENERATE, DesiredState
from transmission_manager.core.services.credentials import verify_password
from transmission_manager.core.use_cases.backup import create_backup
from transmission_manager.core.use_cases.install import previous_install, run_install
from transmission_manager.core.use_cases.optimize import run_optimize
from transmission_manager.core.use_cases.password import random_password, set_password
from transmission_manager.core.use_cases.service import control_service
from transmission_manager.core.use_cases.status import get_status
from transmission_manager.core.use_cases.uninstall import is_installed, run_uninstall


def _install(runtime, **kwargs):
    kwargs.setdefault("credential", CREDENTIAL_GENERATE)
    return run_install(runtime, DesiredState(**kwargs))


class TestInstall:
    def test_fresh_install(self, runtime, sim_host):
        result = _install(runtime)
        assert result.ok
        assert result.version == "4.0.6"
        assert sim_host.installed_version == "4.0.6"
        assert sim_host.running

    def test_records_success(self, runtime):
        _install(runtime)
        record = previous_install(runtime)
        assert record.version == "4.0.6"
        assert record.config_hash
        assert runtime.store.last_run().operation == "install"
        assert runtime.store.history.entry_count() == 1

    def test_idempotent(self, runtime, sim_host):
        _install(runtime)
        sim_host.events.clear()
        again = _install(runtime)
        assert again.ok
        assert again.outcome.plan.empty
        assert sim_host.events == ["mock-fetcher.resolve_latest"]

    def test_dry_run_changes_nothing(self, runtime, sim_host, tm_config):
        result = run_install(runtime, DesiredState(), dry_run=True)
        assert result.outcome.run is None
        assert result.outcome.plan.actions[0] == "install-deps"
        assert sim_host.installed_version is None
        assert not Path(tm_config.state_file).exists()
        assert not Path(tm_config.lock_file).exists()

    def test_latest_falls_back_to_default(self, runtime, sim_host):
        sim_host.latest_version = None
        result = _install(runtime)
        assert result.version == "5.0.0"
        assert sim_host.installed_version == "5.0.0"

    def test_explicit_version(self, runtime, sim_host):
        result = _install(runtime, version="v4.0.5")
        assert result.version == "4.0.5"
        assert sim_host.installed_version == "4.0.5"
        assert "mock-fetcher.resolve_latest" not in sim_host.events

    def test_failure_recorded(self, runtime, sim_host):
        runtime.select_capabilities(sim_host.facts()).fetcher.set_failure("fetch_and_build", "HTTP 404")
        result = _install(runtime)
        assert not result.ok
        assert runtime.store.last_run().status == "partial"
        assert previous_install(runtime) is None

    def test_lock_released_after_run(self, runtime):
        _install(runtime)
        assert not runtime.lock.path.exists()

    def test_lock_contention(self, runtime, sim_host):
        with runtime.lock.acquire():
            with pytest.raises(AlreadyLocked):
                _install(runtime)
        assert sim_host.events == []
        assert runtime.store.last_run() is None

    def test_interrupted(self, runtime, sim_host):
        runtime.cancel_event.set()
        with pytest.raises(Interrupted) as exc_info:
            _install(runtime)
        last = runtime.store.last_run()
        assert last.run_id == exc_info.value.run_id
        assert last.failure_reason == "interrupted"
        assert sim_host.installed_version is None
        assert not runtime.lock.path.exists()

    def test_next_run_not_interrupted(self, runtime, sim_host):
        runtime.cancel_event.set()
        with pytest.raises(Interrupted):
            _install(runtime)
        assert not runtime.cancel_event.is_set()

        result = _install(runtime)
        assert result.ok
        assert runtime.store.last_run().status == "ok"
        assert runtime.store.last_run().failure_reason is None
        assert sim_host.running

    @pytest.mark.parametrize("signum", [signal.SIGINT, signal.SIGTERM])
    def test_signal_mid_run(self, runtime, sim_host, monkeypatch, signum):
        fetcher = runtime.select_capabilities(sim_host.facts()).fetcher
        fetch_and_build = fetcher.fetch_and_build

        def fetch_then_signal(version):
            os.kill(os.getpid(), signum)
            return fetch_and_build(version)

        monkeypatch.setattr(fetcher, "fetch_and_build", fetch_then_signal)
        handler_before = signal.getsignal(signum)

        with pytest.raises(Interrupted) as exc_info:
            _install(runtime)

        last = runtime.store.last_run()
        assert last.run_id == exc_info.value.run_id
        assert last.failure_reason == "interrupted"
        assert last.result_for("fetch-and-build").status == "success"
        assert last.result_for("create-service-account").reason == "interrupted"
        assert sim_host.installed_version == "4.0.6"
        assert not sim_host.account
        assert signal.getsignal(signum) == handler_before
        assert not runtime.cancel_event.is_set()
        assert not runtime.lock.path.exists()

    def test_to_dict(self, runtime):
        data = _install(runtime).to_dict()
        assert data["version"] == "4.0.6"
        assert data["run"]["status"] == "ok"
        assert data["plan"]["actions"][0] == "install-deps"
        json.dumps(data)


class TestUninstall:
    def test_keep_data(self, runtime, sim_host):
        _install(runtime, network_tuning=True)
        outcome = run_uninstall(runtime)
        assert outcome.ok
        assert not sim_host.running
        assert not sim_host.unit
        assert not sim_host.tuned
        assert sim_host.installed_version is None
        assert sim_host.account
        assert previous_install(runtime) is None

    def test_purge(self, runtime, sim_host):
        _install(runtime)
        outcome = run_uninstall(runtime, purge_data=True)
        assert outcome.ok
        assert not sim_host.account
        assert sim_host.password_hash is None
        assert not is_installed(runtime)

    def test_dry_run(self, runtime, sim_host):
        _install(runtime)
        outcome = run_uninstall(runtime, dry_run=True)
        assert outcome.run is None
        assert "stop-service" in outcome.plan.actions
        assert sim_host.running

    def test_is_installed(self, runtime):
        assert not is_installed(runtime)
        _install(runtime)
        assert is_installed(runtime)


class TestServiceControl:
    def test_stop_then_start(self, runtime, sim_host):
        _install(runtime)
        assert control_service(runtime, "stop").ok
        assert not sim_host.running
        assert control_service(runtime, "start").ok
        assert sim_host.running

    def test_start_when_running_is_noop(self, runtime, sim_host):
        _install(runtime)
        sim_host.events.clear()
        outcome = control_service(runtime, "start")
        assert outcome.plan.empty
        assert sim_host.events == []
        assert runtime.store.last_run().operation == "service-start"

    def test_restart_always_runs(self, runtime, sim_host):
        _install(runtime)
        sim_host.events.clear()
        outcome = control_service(runtime, "restart")
        assert outcome.run.plan == ["restart-service"]
        assert sim_host.events == ["mock-services.restart"]

    def test_unknown_command(self, runtime):
        with pytest.raises(ValueError):
            control_service(runtime, "reload")

    def test_service_runs_keep_install_record(self, runtime):
        _install(runtime)
        control_service(runtime, "stop")
        assert previous_install(runtime).version == "4.0.6"


class TestPassword:
    def test_set_password(self, runtime, sim_host):
        _install(runtime)
        sim_host.events.clear()
        result = set_password(runtime, "s3cret-pass")
        assert result.ok
        assert verify_password("s3cret-pass", sim_host.password_hash)
        assert sim_host.password_plain == "s3cret-pass"
        assert sim_host.events == [
            "mock-services.stop",
            "mock-credentials.set_password",
            "mock-services.start",
        ]
        assert sim_host.running

    def test_too_short(self, runtime, sim_host):
        with pytest.raises(ValueError, match="at least 8"):
            set_password(runtime, "short")
        assert sim_host.events == []

    def test_random_password(self, runtime, sim_host):
        _install(runtime)
        result = random_password(runtime, length=20)
        assert result.ok
        assert len(result.plain) == 20
        assert verify_password(result.plain, sim_host.password_hash)

    def test_run_history_has_no_plain_text(self, runtime, tm_config):
        _install(runtime)
        set_password(runtime, "s3cret-pass")
        assert "s3cret-pass" not in Path(tm_config.state_file).read_text()
        assert "s3cret-pass" not in Path(tm_config.history_file).read_text()


class TestOptimize:
    def test_apply_tuning(self, runtime, sim_host):
        outcome = run_optimize(runtime)
        assert outcome.run.plan == ["apply-network-tuning"]
        assert sim_host.tuned

    def test_already_tuned(self, runtime, sim_host):
        sim_host.tuned = True
        outcome = run_optimize(runtime)
        assert outcome.plan.empty
        assert outcome.ok


class TestStatus:
    def test_not_installed(self, runtime):
        status = get_status(runtime)
        assert not status.facts.installed
        assert status.pending == []
        assert not status.converged
        assert set(status.capabilities) == {"packages", "fetcher", "services", "credentials", "host"}

    def test_converged_after_install(self, runtime):
        _install(runtime)
        status = get_status(runtime)
        assert status.converged
        assert status.pending == []
        assert status.last_run.operation == "install"

    def test_drift_shows_pending(self, runtime, sim_host):
        _install(runtime)
        sim_host.running = False
        sim_host.unit = False
        status = get_status(runtime)
        assert status.pending == ["install-service-unit", "ensure-service-state"]
        assert not status.converged

    def test_status_records_nothing(self, runtime, tm_config):
        get_status(runtime)
        assert not Path(tm_config.state_file).exists()

    def test_update_available(self, runtime, sim_host):
        _install(runtime, version="4.0.5")
        sim_host.latest_version = "4.1.0"
        status = get_status(runtime, check_latest=True)
        assert status.latest_version == "4.1.0"
        assert status.update_available
        assert status.to_dict()["update_available"] is True

    def test_settings_ports(self, runtime, tm_config):
        settings = tm_config.settings_file
        settings.parent.mkdir(parents=True)
        settings.write_text(json.dumps({"rpc-port": 9999, "download-dir": "/data"}))
        status = get_status(runtime)
        assert status.rpc_port == 9999
        assert status.download_dir == "/data"

    def test_lock_holder_reported(self, runtime):
        with runtime.lock.acquire():
            status = get_status(runtime)
        assert status.lock_holder is not None
        assert status.to_dict()["locked_by"]["pid"] == status.lock_holder.pid

    def test_other_runtime_shares_state(self, tm_config, sim_host, runtime_factory):
        _install(runtime_factory(tm_config, sim_host))
        assert get_status(runtime_factory(tm_config, sim_host)).converged


class TestBackup:
    def _populate(self, config):
        config_dir = Path(config.config_dir)
        config_dir.mkdir(parents=True)
        (config_dir / "settings.json").write_text("{}")
        downloads = Path(config.download_dir)
        downloads.mkdir(parents=True)
        (downloads / "file.iso").write_text("data")

    def test_no_config(self, tm_config):
        assert "error" in create_backup(tm_config)

    def test_archive_contents(self, tm_config):
        self._populate(tm_config)
        result = create_backup(tm_config, now=datetime(2024, 5, 1, 12, 30, 0))
        path = Path(result["path"])

        assert result["success"]
        assert path.name == "transmission-backup-20240501-123000.tar.gz"
        assert path.stat().st_mode & 0o777 == 0o600
        assert result["manifest"]["missing"] == [tm_config.daemon_log_dir]

        with tarfile.open(path) as tar:
            names = tar.getnames()
            manifest = json.load(tar.extractfile("transmission-backup-20240501-123000/backup_manifest.json"))
        assert "transmission-backup-20240501-123000/transmission-daemon/settings.json" in names
        assert "transmission-backup-20240501-123000/downloads/file.iso" in names
        assert manifest["user"] == "transmission"
        assert manifest["format_version"] == 1

    def test_archive_private_while_written(self, tm_config, monkeypatch):
        self._populate(tm_config)
        modes = []
        real_open = tarfile.open

        def spy_open(*args, **kwargs):
            modes.append(os.fstat(kwargs["fileobj"].fileno()).st_mode & 0o777)
            return real_open(*args, **kwargs)

        monkeypatch.setattr("transmission_manager.core.use_cases.backup.tarfile.open", spy_open)
        previous_umask = os.umask(0)
        try:
            result = create_backup(tm_config)
        finally:
            os.umask(previous_umask)

        assert result["success"]
        assert modes == [0o600]

    def test_existing_archive_made_private(self, tm_config):
        self._populate(tm_config)
        now = datetime(2024, 5, 1, 12, 30, 0)
        backup_dir = Path(tm_config.backup_dir)
        backup_dir.mkdir(parents=True)
        existing = backup_dir / "transmission-backup-20240501-123000.tar.gz"
        existing.write_bytes(b"old")
        existing.chmod(0o644)

        result = create_backup(tm_config, now=now)
        assert Path(result["path"]) == existing
        assert existing.stat().st_mode & 0o777 == 0o600
        with tarfile.open(existing) as tar:
            assert "transmission-backup-20240501-123000/backup_manifest.json" in tar.getnames()
