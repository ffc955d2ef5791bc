"""
Daemon settings.json access.

Updates merge into the existing document so every key the daemon (or
the operator) set is preserved. Each update can take a timestamped
backup first (``settings.json.backup.YYYYmmdd-HHMMSS``).
"""

from __future__ import annotations

import json
import logging
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any

from transmission_manager.core.errors import ActionFailed

logger = logging.getLogger(__name__)

DOWNLOAD_DIR_KEY = "download-dir"
RPC_PASSWORD_KEY = "rpc-password"
RPC_PORT_KEY = "rpc-port"
PEER_PORT_KEY = "peer-port"


def read_settings(path: Path) -> dict[str, Any]:
    """Parse settings.json.

    Raises:
        ActionFailed: If the file is missing or not a JSON object.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ActionFailed(f"settings.json not found: {path}") from None
    except (OSError, ValueError) as e:
        raise ActionFailed(f"Cannot read {path}: {e}") from e
    if not isinstance(data, dict):
        raise ActionFailed(f"{path} does not contain a JSON object")
    return data


def try_read_settings(path: Path) -> dict[str, Any] | None:
    """Like ``read_settings`` but None on any problem (for probes and views)."""
    try:
        return read_settings(path)
    except ActionFailed:
        return None


def backup_settings(path: Path, now: datetime | None = None) -> Path:
    """Copy settings.json next to itself with a timestamp suffix."""
    stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    backup = path.with_name(f"{path.name}.backup.{stamp}")
    try:
        shutil.copy2(path, backup)
    except OSError as e:
        raise ActionFailed(f"Cannot back up {path}: {e}") from e
    logger.info("Settings backed up to %s", backup)
    return backup


def update_settings(
    path: Path,
    changes: dict[str, Any],
    backup: bool = True,
    owner: str | None = None,
) -> Path | None:
    """Merge ``changes`` into settings.json (atomic rewrite).

    Returns:
        The backup path, if one was taken.

    Raises:
        ActionFailed: On read, backup or write errors.
    """
    data = read_settings(path)
    backup_path = backup_settings(path) if backup else None
    data.update(changes)
    write_settings(path, data, owner=owner)
    return backup_path


def write_settings(path: Path, data: dict[str, Any], owner: str | None = None) -> None:
    content = json.dumps(data, indent=4, ensure_ascii=False) + "\n"
    try:
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".settings_", suffix=".tmp")
        tmp = Path(tmp_path)
        try:
            with open(fd, "w", encoding="utf-8") as f:
                f.write(content)
            tmp.chmod(0o600)
            if owner:
                chown_quietly(tmp, owner)
            tmp.replace(path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
    except OSError as e:
        raise ActionFailed(f"Cannot write {path}: {e}") from e
    logger.debug("Settings written: %s (%d keys)", path, len(data))


def write_secret_file(path: Path, content: str, owner: str | None = None) -> None:
    """Write a mode-0600 file (the plain-text password)."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch(mode=0o600, exist_ok=True)
        path.chmod(0o600)
        path.write_text(content + "\n", encoding="utf-8")
    except OSError as e:
        raise ActionFailed(f"Cannot write {path}: {e}") from e
    if owner:
        chown_quietly(path, owner)


def chown_quietly(path: Path, owner: str) -> None:
    """chown to ``owner:owner``; a missing account or non-root caller is not an error."""
    try:
        shutil.chown(path, user=owner, group=owner)
    except (LookupError, PermissionError) as e:
        logger.debug("chown %s to %s skipped: %s", path, owner, e)
