"""
Backup use case — archive config, downloads and daemon logs.

One ``transmission-backup-<timestamp>.tar.gz`` in the backup dir, with
a ``backup_manifest.json`` describing what went in. Directories that do
not exist are listed as missing; the config dir is mandatory.
"""

from __future__ import annotations

import io
import json
import logging
import os
import tarfile
from datetime import datetime
from pathlib import Path

from transmission_manager.core.models.config import ManagerConfig

logger = logging.getLogger(__name__)

ARCHIVE_MODE = 0o600


def backup_sources(config: ManagerConfig) -> list[tuple[Path, str]]:
    """``(directory, name inside the archive)`` for everything backed up."""
    return [
        (Path(config.config_dir), Path(config.config_dir).name),
        (Path(config.download_dir), "downloads"),
        (Path(config.daemon_log_dir), "logs"),
    ]


def create_backup(config: ManagerConfig, now: datetime | None = None) -> dict:
    """Write the backup archive.

    Returns:
        ``{"success": True, "path", "size_bytes", "manifest"}`` or
        ``{"error": "..."}``.
    """
    config_dir = Path(config.config_dir)
    if not config_dir.is_dir():
        return {"error": f"No configuration found at {config_dir}"}

    now = now or datetime.now()
    stamp = now.strftime("%Y%m%d-%H%M%S")
    root_name = f"transmission-backup-{stamp}"
    backup_dir = Path(config.backup_dir)
    archive_path = backup_dir / f"{root_name}.tar.gz"

    included: list[str] = []
    missing: list[str] = []
    for source, _ in backup_sources(config):
        (included if source.is_dir() else missing).append(str(source))

    manifest = {
        "format_version": 1,
        "created_at": now.isoformat(),
        "user": config.user,
        "included": included,
        "missing": missing,
    }

    try:
        backup_dir.mkdir(parents=True, exist_ok=True)
        # The archive holds the plain-text password file: private from the first byte
        fd = os.open(archive_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, ARCHIVE_MODE)
        with os.fdopen(fd, "wb") as f:
            # O_CREAT leaves the mode of an existing file alone
            os.fchmod(f.fileno(), ARCHIVE_MODE)
            with tarfile.open(fileobj=f, mode="w:gz") as tar:
                manifest_bytes = json.dumps(manifest, indent=2).encode("utf-8")
                info = tarfile.TarInfo(name=f"{root_name}/backup_manifest.json")
                info.size = len(manifest_bytes)
                info.mtime = int(now.timestamp())
                tar.addfile(info, io.BytesIO(manifest_bytes))

                for source, arcname in backup_sources(config):
                    if source.is_dir():
                        tar.add(str(source), arcname=f"{root_name}/{arcname}")
    except OSError as e:
        archive_path.unlink(missing_ok=True)
        logger.error("Backup failed: %s", e)
        return {"error": f"Backup failed: {e}"}

    size = archive_path.stat().st_size
    logger.info("Backup created: %s (%d bytes)", archive_path, size)
    return {
        "success": True,
        "path": str(archive_path),
        "size_bytes": size,
        "manifest": manifest,
    }
