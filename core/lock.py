"""Lock file preventing two installations from running at the same time."""

import logging
import os
from pathlib import Path

from .errors import InstallLockedError

logger = logging.getLogger(__name__)


class InstallLock:
    """Exclusive lock held through a file created with O_EXCL.

    A lock left by a process which no longer exists is removed.

    Usage:
        with InstallLock(project.lock_path):
            installer.install_application()
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._held = False

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = self._create()
        except FileExistsError:
            if not self._recover_stale_lock():
                raise InstallLockedError(
                    f"An installation is already running (lock {self.path}, pid {self._read_owner() or '?'})"
                )
            try:
                fd = self._create()
            except FileExistsError:
                raise InstallLockedError(
                    f"An installation is already running (lock {self.path}, pid {self._read_owner() or '?'})"
                )
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(f"{os.getpid()}\n")
        self._held = True
        logger.debug("Lock %s acquired", self.path)

    def _create(self) -> int:
        return os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)

    def _read_owner(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return ""

    def _recover_stale_lock(self) -> bool:
        """Remove the lock file if its owner is dead. Return True if removed."""
        owner = self._read_owner()
        try:
            pid = int(owner)
        except ValueError:
            return False
        if pid <= 0:
            return False

        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            pass
        except PermissionError:
            # alive, owned by another user
            return False
        else:
            return False

        logger.warning("Removing stale lock %s left by pid %s", self.path, pid)
        self.path.unlink(missing_ok=True)
        return True

    def release(self) -> None:
        if not self._held:
            return
        self.path.unlink(missing_ok=True)
        self._held = False
        logger.debug("Lock %s released", self.path)

    def __enter__(self) -> "InstallLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
