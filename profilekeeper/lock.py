"""Advisory "in use" lock for profile directories.

A profile is locked while a zero-byte ``.active_lock`` file exists in its
directory. The cached state is only a hint: changing the lock file from
outside this controller makes it stale until ``invalidate()`` is called.
"""

import logging
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from .utils.files import delete

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = ".active_lock"


class LockState(Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    UNKNOWN = "unknown"


class LockController:
    """Tri-state lock cache layered over the sentinel file.

    Args:
        peek_dir: Returns the resolved directory, or None, without creating it
        get_dir: Returns the directory, resolving and creating it if needed
    """

    def __init__(self, peek_dir: Callable[[], Path | None], get_dir: Callable[[], Path | None]):
        self._peek_dir = peek_dir
        self._get_dir = get_dir
        # Plain attribute writes are atomic; readers may briefly see a stale value.
        self.state = LockState.UNKNOWN

    def invalidate(self) -> None:
        """Forget the cached state; the next ``locked()`` checks the filesystem."""
        self.state = LockState.UNKNOWN

    def locked(self) -> bool:
        if self.state is not LockState.UNKNOWN:
            return self.state is LockState.LOCKED

        # Never create the directory just to answer this.
        profile_dir = self._peek_dir()
        if profile_dir is not None and profile_dir.exists():
            present = (profile_dir / LOCK_FILE_NAME).exists()
            self.state = LockState.LOCKED if present else LockState.UNLOCKED
        else:
            self.state = LockState.UNLOCKED

        return self.state is LockState.LOCKED

    def lock(self) -> bool:
        """Create the lock file, resolving and creating the directory if needed.

        Returns:
            True only if this call created the lock file. The cached state
            reflects whether the file exists afterwards.
        """
        try:
            profile_dir = self._get_dir()
            if profile_dir is None:
                raise OSError("No profile directory")
            lock_file = profile_dir / LOCK_FILE_NAME
            try:
                lock_file.touch(exist_ok=False)
                created = True
            except FileExistsError:
                created = False
            self.state = LockState.LOCKED if lock_file.exists() else LockState.UNLOCKED
            return created
        except OSError as e:
            logger.error(f"Error locking profile: {e}")

        self.state = LockState.UNLOCKED
        return False

    def unlock(self) -> bool:
        # Don't resolve via get_dir(); that would create the directory.
        profile_dir = self._peek_dir()
        if profile_dir is None or not profile_dir.exists():
            self.state = LockState.UNLOCKED
            return True

        lock_file = profile_dir / LOCK_FILE_NAME
        if not lock_file.exists():
            self.state = LockState.UNLOCKED
            return True

        result = delete(lock_file)
        self.state = LockState.UNLOCKED if result else LockState.LOCKED
        if not result:
            logger.error("Error unlocking profile: lock file could not be deleted")
        return result


__all__ = ["LOCK_FILE_NAME", "LockController", "LockState"]
