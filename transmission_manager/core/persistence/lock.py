"""
Host lock — one run per host.

Exclusion is an ``flock(LOCK_EX | LOCK_NB)`` on the lock file, held on
an open descriptor for the whole run. The kernel drops it when the
holder exits, however it exits, so a lock left by a dead process is
simply taken over. The file also holds a JSON ``LockRecord`` for
diagnostics (a bare PID, as older versions wrote, is also understood);
its content never decides who holds the lock.

    Unlocked ──acquire()──▶ Locked(pid) ──release()──▶ Unlocked
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import secrets
import sys
from pathlib import Path
from types import TracebackType

from transmission_manager.core.errors import AlreadyLocked, LockContention
from transmission_manager.core.models.lock import LockRecord

logger = logging.getLogger(__name__)

_ACQUIRE_ATTEMPTS = 3
LOCK_FILE_MODE = 0o644


def pid_alive(pid: int) -> bool:
    """Whether a process with ``pid`` exists (signal 0 probe)."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by another user
        return True
    except OSError:
        return False
    return True


def parse_lock(raw: str) -> LockRecord | None:
    """Parse lock file content; None when unreadable."""
    raw = raw.strip()
    if not raw:
        return None
    try:
        return LockRecord.model_validate(json.loads(raw))
    except (ValueError, TypeError):
        pass
    if raw.isdigit():
        return LockRecord(pid=int(raw))
    return None


class LockHandle:
    """An acquired lock. Release is idempotent; use as a context manager."""

    def __init__(self, manager: LockManager, record: LockRecord, fd: int):
        self._manager = manager
        self._record = record
        self._fd = fd
        self._released = False

    @property
    def record(self) -> LockRecord:
        return self._record

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._manager._release(self._record, self._fd)

    def __enter__(self) -> LockHandle:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


class LockManager:
    """Exclusive host lock backed by a file.

    Args:
        path: Lock file path (``/var/run/transmission-manager.lock``).
        command: Recorded in the lock for diagnostics.
    """

    def __init__(self, path: Path, command: str = ""):
        self._path = path
        self._command = command or " ".join(sys.argv[:2])

    @property
    def path(self) -> Path:
        return self._path

    def holder(self) -> LockRecord | None:
        """The current holder, or None when unlocked or unreadable."""
        raw = self._read_raw()
        return parse_lock(raw) if raw is not None else None

    def is_locked(self) -> bool:
        """Whether a live process holds the lock."""
        holder = self.holder()
        return holder is not None and pid_alive(holder.pid)

    def acquire(self) -> LockHandle:
        """Take the lock for this process.

        Raises:
            AlreadyLocked: If another open descriptor (this process
                included) holds it.
            LockContention: If the lock file kept being replaced during
                acquisition.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)

        for _ in range(_ACQUIRE_ATTEMPTS):
            fd = os.open(self._path, os.O_RDWR | os.O_CREAT, LOCK_FILE_MODE)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                os.close(fd)
                holder = self.holder()
                raise AlreadyLocked(holder.pid if holder else None, str(self._path)) from None
            except OSError:
                os.close(fd)
                raise

            if not self._same_file(fd):
                # Released and unlinked between our open and flock
                os.close(fd)
                continue

            previous = parse_lock(os.pread(fd, 4096, 0).decode("utf-8", errors="replace"))
            if previous is not None and previous.pid != os.getpid():
                logger.warning("Reclaiming stale lock %s left by PID %d", self._path, previous.pid)

            record = LockRecord(pid=os.getpid(), token=secrets.token_hex(8), command=self._command)
            try:
                os.ftruncate(fd, 0)
                os.pwrite(fd, (record.model_dump_json() + "\n").encode("utf-8"), 0)
            except OSError:
                os.close(fd)
                raise
            logger.debug("Lock acquired: %s (pid=%d)", self._path, record.pid)
            return LockHandle(self, record, fd)

        raise LockContention(f"Could not acquire lock {self._path}: it keeps changing hands")

    def _same_file(self, fd: int) -> bool:
        try:
            current = os.stat(self._path)
        except FileNotFoundError:
            return False
        opened = os.fstat(fd)
        return (current.st_dev, current.st_ino) == (opened.st_dev, opened.st_ino)

    def _read_raw(self) -> str | None:
        try:
            return self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Cannot read lock file %s: %s", self._path, e)
            return ""

    def _release(self, record: LockRecord, fd: int) -> None:
        try:
            current = self.holder()
            if current is not None and current.token and current.token != record.token:
                logger.warning("Lock %s is held by another run — not removing", self._path)
                return
            # Unlink while still holding the flock so no one locks the dead inode
            if self._same_file(fd):
                self._path.unlink(missing_ok=True)
            logger.debug("Lock released: %s", self._path)
        finally:
            os.close(fd)
