"""
Service managers — systemd, OpenRC and SysV variants.

Each variant renders its service definition from the config, installs
and enables it, and drives start/stop/restart. ``stop()`` only reports
success once the daemon process is gone: the daemon writes
settings.json on exit, so anything edited before it has fully stopped
would be overwritten.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

from transmission_manager.adapters.base import ServiceManager
from transmission_manager.adapters.shell.command import Runner, run_command
from transmission_manager.core.models.action import ActionResult
from transmission_manager.core.models.config import ManagerConfig
from transmission_manager.core.models.facts import EnvironmentFacts, InitSystem, OsFamily
from transmission_manager.core.services.detection import DAEMON_PROCESS_PATTERN

logger = logging.getLogger(__name__)


# ── Service definitions ─────────────────────────────────────────


def render_systemd_unit(config: ManagerConfig, binary_path: str) -> str:
    return f"""[Unit]
Description=Transmission BitTorrent Daemon
After=network.target

[Service]
User={config.user}
Type=simple
Environment=TRANSMISSION_HOME={config.config_dir}
ExecStart={binary_path} -f --log-level=error
ExecReload=/bin/kill -s HUP $MAINPID
NoNewPrivileges=true
ProtectSystem=full
ProtectHome=read-only
PrivateDevices=true
PrivateTmp=true
InaccessiblePaths=/root
ReadWritePaths={config.config_dir} {config.download_dir} {config.daemon_log_dir}
Restart=on-failure
RestartSec=5

[Install]
WantedBy=multi-user.target
"""


def render_openrc_script(config: ManagerConfig, binary_path: str) -> str:
    log_dir = config.daemon_log_dir
    return f"""#!/sbin/openrc-run

name="{config.service_name}"
description="Transmission BitTorrent Daemon"
command="{binary_path}"
command_args="-f --log-level=error"
command_user="{config.user}"
pidfile="/run/${{RC_SVCNAME}}.pid"
command_background=true
output_log="{log_dir}/transmission.log"
error_log="{log_dir}/transmission.err"

export TRANSMISSION_HOME="{config.config_dir}"

depend() {{
    need net
}}

start_pre() {{
    checkpath -d -m 0750 -o {config.user}:{config.user} "{log_dir}"
    checkpath -f -m 0644 -o "{config.user}" "$pidfile"
}}
"""


def render_sysv_script(config: ManagerConfig, binary_path: str) -> str:
    name = config.service_name
    return f"""#!/bin/sh
### BEGIN INIT INFO
# Provides:          {name}
# Required-Start:    $network
# Required-Stop:     $network
# Default-Start:     2 3 5
# Default-Stop:      0 1 6
# Short-Description: Start the transmission BitTorrent daemon client.
### END INIT INFO

USERNAME={config.user}
TRANSMISSION_HOME="{config.config_dir}"
TRANSMISSION_WEB_HOME="{config.install_prefix}/share/transmission/web"
TRANSMISSION_LOG_DIR="{config.daemon_log_dir}"
TRANSMISSION_ARGS=""

PATH=/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin
DESC="bittorrent client"
NAME={name}
DAEMON="{binary_path}"
PIDFILE=/var/run/$NAME.pid
SCRIPTNAME=/etc/init.d/$NAME

[ -x "$DAEMON" ] || exit 0
[ -r /etc/default/$NAME ] && . /etc/default/$NAME

do_start()
{{
    if [ ! -d "$TRANSMISSION_LOG_DIR" ]; then
        mkdir -p "$TRANSMISSION_LOG_DIR"
        chown $USERNAME:$USERNAME "$TRANSMISSION_LOG_DIR"
        chmod 750 "$TRANSMISSION_LOG_DIR"
    fi
    export TRANSMISSION_HOME TRANSMISSION_WEB_HOME
    start-stop-daemon --chuid $USERNAME --start --pidfile $PIDFILE --make-pidfile \\
            --exec $DAEMON --background --test -- -f $TRANSMISSION_ARGS > /dev/null \\
            || return 1
    start-stop-daemon --chuid $USERNAME --start --pidfile $PIDFILE --make-pidfile \\
            --exec $DAEMON --background -- -f $TRANSMISSION_ARGS \\
            || return 2
}}

do_stop()
{{
    start-stop-daemon --stop --quiet --retry=TERM/10/KILL/5 --pidfile $PIDFILE --exec $DAEMON
    RETVAL="$?"
    [ "$RETVAL" = 2 ] && return 2
    start-stop-daemon --stop --quiet --oknodo --retry=0/30/KILL/5 --exec $DAEMON
    [ "$?" = 2 ] && return 2
    rm -f $PIDFILE
    return "$RETVAL"
}}

case "$1" in
  start)
        echo "Starting $DESC $NAME..."
        do_start
        ;;
  stop)
        echo "Stopping $DESC $NAME..."
        do_stop
        ;;
  restart|force-reload)
        echo "Restarting $DESC $NAME..."
        do_stop
        sleep 1
        do_start
        ;;
  *)
        echo "Usage: $SCRIPTNAME {{start|stop|restart|force-reload}}" >&2
        exit 3
        ;;
esac
"""


# ── Variants ────────────────────────────────────────────────────


class InitServiceManager(ServiceManager):
    """Shared behaviour; subclasses supply paths and commands."""

    init_system: InitSystem = InitSystem.UNKNOWN
    file_mode: int = 0o755

    def __init__(
        self,
        config: ManagerConfig,
        runner: Runner = run_command,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._config = config
        self._runner = runner
        self._sleep = sleep

    @property
    def name(self) -> str:
        return self.init_system.value

    @property
    def definition_path(self) -> Path:
        return self._config.init_script_path

    def render(self, binary_path: str) -> str:
        raise NotImplementedError

    def control_command(self, verb: str) -> list[str]:
        return [str(self.definition_path), verb]

    def enable_commands(self) -> list[list[str]]:
        return []

    def disable_commands(self) -> list[list[str]]:
        return []

    def is_available(self) -> bool:
        return True

    def is_installed(self) -> bool:
        return self.definition_path.is_file()

    # ── Definition ──────────────────────────────────────────────

    def install(self, binary_path: str) -> ActionResult:
        path = self.definition_path
        content = self.render(binary_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
            path.chmod(self.file_mode)
        except OSError as e:
            return ActionResult.failure("install-service-unit", reason=f"Cannot write {path}: {e}")

        for cmd in self.enable_commands():
            result = self._run(cmd)
            if not result.ok:
                # Enabling at boot is best effort; the unit itself is in place
                logger.warning("%s failed: %s", result.command_line, result.failure_reason())

        logger.info("%s service definition installed at %s", self.name, path)
        return ActionResult.success(
            "install-service-unit",
            output=f"{self.name} service installed",
            metadata={"path": str(path), "init_system": self.name},
        )

    def uninstall(self) -> ActionResult:
        for cmd in self.disable_commands():
            result = self._run(cmd)
            if not result.ok:
                logger.debug("%s failed: %s", result.command_line, result.failure_reason())
        try:
            self.definition_path.unlink(missing_ok=True)
        except OSError as e:
            return ActionResult.failure("remove-service-unit", reason=f"Cannot remove {self.definition_path}: {e}")
        self._after_uninstall()
        return ActionResult.success("remove-service-unit", metadata={"path": str(self.definition_path)})

    def _after_uninstall(self) -> None:
        pass

    # ── Control ─────────────────────────────────────────────────

    def start(self) -> ActionResult:
        return self._run(self.control_command("start")).to_result("start-service")

    def restart(self) -> ActionResult:
        return self._run(self.control_command("restart")).to_result("restart-service")

    def stop(self) -> ActionResult:
        result = self._run(self.control_command("stop"))
        if not result.ok:
            logger.debug("Stop command failed (%s); waiting for the process anyway", result.failure_reason())

        killed = False
        if not self.wait_stopped(self._config.stop_timeout):
            logger.warning("Daemon still running after %ss — killing it", self._config.stop_timeout)
            self._run(["pkill", "-9", "-u", self._config.user, "-f", DAEMON_PROCESS_PATTERN])
            self._sleep(2)
            killed = True
            if self.is_running():
                return ActionResult.failure("stop-service", reason="daemon still running after kill")

        return ActionResult.success("stop-service", metadata={"killed": killed})

    def is_running(self) -> bool:
        return self._run(["pgrep", "-u", self._config.user, "-f", DAEMON_PROCESS_PATTERN]).ok

    def wait_stopped(self, timeout: int) -> bool:
        waited = 0
        while self.is_running():
            if waited >= timeout:
                return False
            self._sleep(1)
            waited += 1
        return True

    def _run(self, cmd: list[str]):
        return self._runner(cmd, timeout=self._config.command_timeout)


class SystemdServiceManager(InitServiceManager):
    init_system = InitSystem.SYSTEMD
    file_mode = 0o644

    @property
    def definition_path(self) -> Path:
        return self._config.systemd_unit_path

    def render(self, binary_path: str) -> str:
        return render_systemd_unit(self._config, binary_path)

    def control_command(self, verb: str) -> list[str]:
        return ["systemctl", verb, self._config.service_name]

    def enable_commands(self) -> list[list[str]]:
        return [["systemctl", "daemon-reload"], ["systemctl", "enable", self._config.service_name]]

    def disable_commands(self) -> list[list[str]]:
        return [["systemctl", "disable", self._config.service_name]]

    def _after_uninstall(self) -> None:
        self._run(["systemctl", "daemon-reload"])

    def is_running(self) -> bool:
        if super().is_running():
            return True
        return self._run(["systemctl", "is-active", "--quiet", self._config.service_name]).ok


class OpenRCServiceManager(InitServiceManager):
    init_system = InitSystem.OPENRC

    def render(self, binary_path: str) -> str:
        return render_openrc_script(self._config, binary_path)

    def enable_commands(self) -> list[list[str]]:
        return [["rc-update", "add", self._config.service_name, "default"]]

    def disable_commands(self) -> list[list[str]]:
        return [["rc-update", "del", self._config.service_name]]


class SysVServiceManager(InitServiceManager):
    init_system = InitSystem.SYSV

    def __init__(
        self,
        config: ManagerConfig,
        runner: Runner = run_command,
        sleep: Callable[[float], None] = time.sleep,
        os_family: OsFamily = OsFamily.UNKNOWN,
    ):
        super().__init__(config, runner=runner, sleep=sleep)
        self._os_family = os_family

    def render(self, binary_path: str) -> str:
        return render_sysv_script(self._config, binary_path)

    def enable_commands(self) -> list[list[str]]:
        name = self._config.service_name
        if self._os_family == OsFamily.DEBIAN:
            return [["update-rc.d", name, "defaults"]]
        return [["chkconfig", "--add", name], ["chkconfig", name, "on"]]

    def disable_commands(self) -> list[list[str]]:
        name = self._config.service_name
        if self._os_family == OsFamily.DEBIAN:
            return [["update-rc.d", "-f", name, "remove"]]
        return [["chkconfig", "--del", name]]


def select_service_manager(
    facts: EnvironmentFacts,
    config: ManagerConfig,
    runner: Runner = run_command,
    sleep: Callable[[float], None] = time.sleep,
) -> ServiceManager:
    """systemd and OpenRC get their own variant; anything else uses SysV."""
    if facts.init_system == InitSystem.SYSTEMD:
        return SystemdServiceManager(config, runner=runner, sleep=sleep)
    if facts.init_system == InitSystem.OPENRC:
        return OpenRCServiceManager(config, runner=runner, sleep=sleep)
    if facts.init_system == InitSystem.UNKNOWN:
        logger.warning("Unknown init system — falling back to a SysV init script")
    return SysVServiceManager(config, runner=runner, sleep=sleep, os_family=facts.os_family)
