"""Filesystem helpers shared by the lock and removal paths."""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def _delete_entry(path: Path) -> bool:
    """Delete a single file or an empty directory. Returns False on failure."""
    try:
        if path.is_dir() and not path.is_symlink():
            path.rmdir()
        else:
            path.unlink()
        return True
    except OSError as e:
        logger.debug(f"Direct delete of {path.name} failed: {e}")
        return False


def delete(path: Path) -> bool:
    """Delete a file or a whole directory tree.

    Tries a direct delete first. If that fails and the path is a directory,
    its children are deleted recursively and the direct delete is retried.
    Children that disappear while we walk the tree are not errors.

    Args:
        path: File or directory to delete

    Returns:
        True if ``path`` was deleted, False otherwise (including when it did
        not exist to begin with)
    """
    if _delete_entry(path):
        return True

    if path.is_dir() and not path.is_symlink():
        try:
            children = list(path.iterdir())
        except FileNotFoundError:
            children = []
        except OSError as e:
            logger.warning(f"Unable to list {path} for deletion: {e}")
            children = []

        for child in children:
            # A vanished child is fine, so the result is ignored here.
            delete(child)

    # Even if this is a directory, it should be empty by now.
    return _delete_entry(path)


__all__ = ["delete"]
