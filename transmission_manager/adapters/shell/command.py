"""
Command runner — the single place where ``subprocess.run`` is called.

Every adapter takes a ``runner`` with this signature so tests can swap
in a fake. The runner never raises: timeouts, missing binaries and
non-zero exits all come back as a ``CommandResult``.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from transmission_manager.core.models.action import ActionResult
from transmission_manager.core.models.run import REASON_TIMEOUT

logger = logging.getLogger(__name__)

# Keep the tail only; build output can be megabytes
_OUTPUT_TAIL = 2000


@dataclass
class CommandResult:
    """Outcome of one external command."""

    cmd: list[str]
    returncode: int | None = None
    stdout: str = ""
    stderr: str = ""
    elapsed_ms: int = 0
    timed_out: bool = False
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and self.error is None

    @property
    def command_line(self) -> str:
        return " ".join(self.cmd)

    def failure_reason(self) -> str:
        if self.timed_out:
            return REASON_TIMEOUT
        if self.error:
            return self.error
        detail = self.stderr.strip().splitlines()[-1:] if self.stderr.strip() else []
        suffix = f": {detail[0]}" if detail else ""
        return f"{self.cmd[0]} exited with code {self.returncode}{suffix}"

    def to_result(self, action: str = "", **metadata: Any) -> ActionResult:
        """Convert to an ActionResult (success or failure)."""
        meta = {"command": self.command_line, "return_code": self.returncode, **metadata}
        if self.ok:
            return ActionResult.success(action, output=self.stdout.strip(), metadata=meta)
        return ActionResult.failure(
            action,
            reason=self.failure_reason(),
            output=(self.stderr or self.stdout).strip(),
            metadata=meta,
        )


Runner = Callable[..., CommandResult]


def run_command(
    cmd: list[str],
    *,
    timeout: int = 120,
    cwd: str | None = None,
    env_overrides: dict[str, str] | None = None,
    input_text: str | None = None,
) -> CommandResult:
    """Run ``cmd`` and capture its output.

    Args:
        cmd: Command list (no shell).
        timeout: Seconds before the command is killed.
        cwd: Working directory.
        env_overrides: Extra environment variables.
        input_text: Text piped to stdin.
    """
    env = os.environ.copy()
    if env_overrides:
        env.update(env_overrides)

    logger.debug("Executing: %s (cwd=%s, timeout=%ss)", " ".join(cmd), cwd, timeout)
    start = time.monotonic()

    try:
        proc = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            cwd=cwd,
            env=env,
            input=input_text,
        )
    except subprocess.TimeoutExpired:
        logger.warning("Command timed out after %ss: %s", timeout, " ".join(cmd))
        return CommandResult(
            cmd=cmd,
            timed_out=True,
            elapsed_ms=int((time.monotonic() - start) * 1000),
            metadata={"timeout": timeout},
        )
    except FileNotFoundError:
        return CommandResult(cmd=cmd, error=f"{cmd[0]}: command not found")
    except OSError as e:
        return CommandResult(cmd=cmd, error=f"Cannot execute {cmd[0]}: {e}")

    result = CommandResult(
        cmd=cmd,
        returncode=proc.returncode,
        stdout=(proc.stdout or "")[-_OUTPUT_TAIL:],
        stderr=(proc.stderr or "")[-_OUTPUT_TAIL:],
        elapsed_ms=int((time.monotonic() - start) * 1000),
    )
    if not result.ok:
        logger.debug("Command failed (exit %s): %s", proc.returncode, result.command_line)
    return result
