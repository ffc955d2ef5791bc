"""
Tests for the CLI commands, run against a simulated host.

Each invocation gets ``obj={"runtime": ..., "root_check": False}`` so no
real host is probed and no root privileges are needed.
"""

import json

import pytest
from click.testing import CliRunner

from transmission_manager.main import cli, main
from transmission_manager.ui.cli.menu import MENU_ENTRIES, render_menu


@pytest.fixture
def invoke(cli_obj, tmp_path, monkeypatch):
    monkeypatch.setenv("TM_LOG_FILE", str(tmp_path / "cli.log"))
    monkeypatch.delenv("TM_LOG_LEVEL", raising=False)
    runner = CliRunner()

    def _invoke(args, **kwargs):
        return runner.invoke(cli, args, obj=cli_obj, catch_exceptions=False, **kwargs)

    return _invoke


class TestCliBasics:
    def test_help(self, invoke):
        result = invoke(["--help"])
        assert result.exit_code == 0
        for command in ("install", "uninstall", "status", "start", "stop", "restart",
                        "password", "backup", "firewall", "logs", "perf", "optimize", "config"):
            assert command in result.output

    def test_version(self, invoke):
        result = invoke(["--version"])
        assert result.exit_code == 0
        assert "transmission-manager" in result.output

    def test_unknown_command_is_usage_error(self, invoke):
        result = invoke(["frobnicate"])
        assert result.exit_code == 3

    def test_unknown_option_is_usage_error(self, invoke):
        result = invoke(["install", "--frobnicate"])
        assert result.exit_code == 3

    def test_main_returns_usage_code(self):
        assert main(["frobnicate"]) == 3


class TestInstallCommand:
    def test_install(self, invoke, sim_host):
        result = invoke(["install", "--yes"])
        assert result.exit_code == 0, result.output
        assert "✅ install complete" in result.output
        assert "✓ fetch-and-build" in result.output
        assert sim_host.installed_version == "4.0.6"

    def test_dry_run(self, invoke, sim_host):
        result = invoke(["install", "--dry-run"])
        assert result.exit_code == 0
        assert "Target version: 4.0.6" in result.output
        assert "1. install-deps" in result.output
        assert sim_host.installed_version is None

    def test_json(self, invoke):
        result = invoke(["install", "--yes", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["run"]["status"] == "ok"
        assert data["plan"]["desired"]["credential"] == "generate-random"

    def test_second_install_already_converged(self, invoke):
        invoke(["install", "--yes"])
        result = invoke(["install", "--yes"])
        assert result.exit_code == 0
        assert "Nothing to do" in result.output

    def test_reinstall_declined(self, invoke, sim_host):
        invoke(["install", "--yes"])
        sim_host.events.clear()
        result = invoke(["install"], input="n\n")
        assert result.exit_code == 0
        assert "already installed" in result.output
        assert sim_host.events == []

    def test_failure_exit_code(self, invoke, runtime, sim_host):
        runtime.select_capabilities(sim_host.facts()).fetcher.set_failure("fetch_and_build", "HTTP 404")
        result = invoke(["install", "--yes"])
        assert result.exit_code == 1
        assert "✗ fetch-and-build — HTTP 404" in result.output
        assert "⊘ install-service-unit" in result.output

    def test_failure_points_at_log_and_history(self, invoke, runtime, sim_host, tmp_path, tm_config):
        runtime.select_capabilities(sim_host.facts()).fetcher.set_failure("fetch_and_build", "HTTP 404")
        result = invoke(["install", "--yes"])
        assert result.exit_code == 1
        assert f"Log: {tmp_path / 'cli.log'}" in result.output
        assert f"Run history: {tm_config.history_file}" in result.output

    def test_success_omits_failure_paths(self, invoke):
        result = invoke(["install", "--yes"])
        assert result.exit_code == 0
        assert "Run history:" not in result.output

    def test_lock_contention_exit_code(self, invoke, runtime):
        with runtime.lock.acquire():
            result = invoke(["install", "--yes"])
        assert result.exit_code == 4
        assert "Another instance is already running" in result.output


class TestUninstallCommand:
    def test_not_installed(self, invoke):
        result = invoke(["uninstall", "--yes"])
        assert result.exit_code == 0
        assert "not installed" in result.output

    def test_uninstall(self, invoke, sim_host):
        invoke(["install", "--yes"])
        result = invoke(["uninstall", "--yes", "--no-backup"])
        assert result.exit_code == 0, result.output
        assert "✅ uninstall complete" in result.output
        assert not sim_host.unit
        assert sim_host.account

    def test_purge(self, invoke, sim_host):
        invoke(["install", "--yes"])
        result = invoke(["uninstall", "--yes", "--no-backup", "--purge"])
        assert result.exit_code == 0
        assert not sim_host.account

    def test_confirmation_declined(self, invoke, sim_host):
        invoke(["install", "--yes"])
        result = invoke(["uninstall", "--no-backup"], input="n\n")
        assert result.exit_code == 0
        assert sim_host.unit

    def test_dry_run(self, invoke, sim_host):
        invoke(["install", "--yes"])
        result = invoke(["uninstall", "--dry-run", "--purge"])
        assert result.exit_code == 0
        assert "remove-account-and-data" in result.output
        assert sim_host.account


class TestStatusCommand:
    def test_not_installed(self, invoke):
        result = invoke(["status"])
        assert result.exit_code == 0
        assert "Host: debian / systemd" in result.output
        assert "Transmission not installed" in result.output

    def test_installed(self, invoke):
        invoke(["install", "--yes"])
        result = invoke(["status"])
        assert "Version: 4.0.6" in result.output
        assert "Service: Running" in result.output
        assert "Converged ✓" in result.output
        assert "Last run: install" in result.output

    def test_json(self, invoke):
        invoke(["install", "--yes"])
        data = json.loads(invoke(["status", "--json"]).output)
        assert data["installed"] is True
        assert data["converged"] is True
        assert data["pending"] == []
        assert "rpc_password_hash" not in data["facts"]

    def test_check_latest(self, invoke, sim_host):
        invoke(["install", "--yes", "--version", "4.0.5"])
        result = invoke(["status", "--check-latest"])
        assert "Update available: 4.0.6" in result.output


class TestServiceCommands:
    def test_stop_start_restart(self, invoke, sim_host):
        invoke(["install", "--yes"])
        assert invoke(["stop"]).exit_code == 0
        assert not sim_host.running
        assert invoke(["start"]).exit_code == 0
        assert sim_host.running
        result = invoke(["restart"])
        assert result.exit_code == 0
        assert "✓ restart-service" in result.output


class TestPasswordCommands:
    def test_set(self, invoke, sim_host):
        invoke(["install", "--yes"])
        result = invoke(["password", "set", "--password", "s3cret-pass"])
        assert result.exit_code == 0, result.output
        assert sim_host.password_plain == "s3cret-pass"
        assert "Settings backup: /simulated/settings.json.backup" in result.output

    def test_set_prompted(self, invoke, sim_host):
        invoke(["install", "--yes"])
        result = invoke(["password", "set"], input="s3cret-pass\ns3cret-pass\n")
        assert result.exit_code == 0
        assert sim_host.password_plain == "s3cret-pass"

    def test_set_too_short(self, invoke, sim_host):
        result = invoke(["password", "set", "--password", "short"])
        assert result.exit_code == 3
        assert sim_host.password_hash is None

    def test_random(self, invoke, sim_host):
        invoke(["install", "--yes"])
        result = invoke(["password", "random", "--length", "12"])
        assert result.exit_code == 0
        assert f"🔑 Password: {sim_host.password_plain}" in result.output
        assert len(sim_host.password_plain) == 12

    def test_random_length_bounds(self, invoke):
        assert invoke(["password", "random", "--length", "4"]).exit_code == 3


class TestOtherCommands:
    def test_optimize(self, invoke, sim_host):
        result = invoke(["optimize"])
        assert result.exit_code == 0
        assert sim_host.tuned
        again = invoke(["optimize"])
        assert "already applied" in again.output

    def test_backup_without_config(self, invoke):
        result = invoke(["backup"])
        assert result.exit_code == 1
        assert "No configuration found" in result.output

    def test_backup(self, invoke, tm_config):
        settings = tm_config.settings_file
        settings.parent.mkdir(parents=True)
        settings.write_text("{}")
        result = invoke(["backup", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["path"].endswith(".tar.gz")

    def test_firewall_not_installed(self, invoke):
        result = invoke(["firewall"])
        assert result.exit_code == 0
        assert "Install Transmission first" in result.output

    def test_logs_missing(self, invoke):
        result = invoke(["logs"])
        assert "No logs found" in result.output

    def test_install_history(self, invoke):
        invoke(["install", "--yes"])
        result = invoke(["logs", "--history"])
        assert "=== Installation Logs ===" in result.output
        assert "install" in result.output
        assert "ok" in result.output

    def test_config_show_missing(self, invoke):
        result = invoke(["config", "show"])
        assert "settings.json not found" in result.output

    def test_config_show_masks_password(self, invoke, tm_config):
        settings = tm_config.settings_file
        settings.parent.mkdir(parents=True)
        settings.write_text(json.dumps({"rpc-password": "{abc", "rpc-port": 9091}))
        result = invoke(["config", "show"])
        assert "rpc-password: ********" in result.output
        assert "{abc" not in result.output

    def test_config_manager_json(self, invoke):
        data = json.loads(invoke(["config", "manager", "--json"]).output)
        assert data["user"] == "transmission"
        assert data["rpc_port"] == 9091

    def test_perf_json(self, invoke):
        data = json.loads(invoke(["perf", "--json"]).output)
        assert set(data) == {"memory", "disk", "network"}


class TestMenu:
    def test_render(self):
        text = render_menu("4.0.6")
        assert "Current: Transmission 4.0.6" in text
        assert f"{len(MENU_ENTRIES):>2}) Exit" in text
        assert "Current: Not installed" in render_menu(None)

    def test_exit(self, invoke):
        result = invoke([], input=f"{len(MENU_ENTRIES)}\n")
        assert result.exit_code == 0
        assert "Goodbye!" in result.output

    def test_status_entry(self, invoke):
        result = invoke(["menu"], input=f"3\n{len(MENU_ENTRIES)}\n")
        assert result.exit_code == 0
        assert "=== Transmission Status ===" in result.output
        assert "Goodbye!" in result.output

    def test_failing_entry_returns_to_menu(self, invoke):
        result = invoke([], input=f"8\n{len(MENU_ENTRIES)}\n")
        assert "No configuration found" in result.output
        assert "Goodbye!" in result.output
