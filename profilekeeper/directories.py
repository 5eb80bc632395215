"""Profile directory resolution against the registry.

Maps logical profile names to directories under the profiles root, creating
salted directories and registry entries for names that don't exist yet.
"""

from __future__ import annotations

import logging
import secrets
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from .documents import TIMES_FILE_PATH
from .documents import DocumentStore
from .documents import TimesDocument
from .errors import NoRootDirectoryError
from .errors import NoSuchProfileError
from .errors import RegistryParseError
from .registry import GENERAL_SECTION
from .registry import REGISTRY_FILENAME
from .registry import Registry
from .registry import RegistrySection
from .registry import profile_section_name
from .registry import registry_lock

logger = logging.getLogger(__name__)

SALT_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"
SALT_LENGTH = 8


@dataclass
class RegistryEntry:
    """A profile as recorded in the registry."""

    section: str
    name: str
    path: Path
    is_default: bool


def current_time_millis() -> int:
    return int(time.time() * 1000)


def get_root_directory(root: Path) -> Path:
    """Ensure the profiles root exists.

    Raises:
        NoRootDirectoryError: If the directory is missing and can't be created
    """
    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise NoRootDirectoryError(root) from e
    if not root.is_dir():
        raise NoRootDirectoryError(root)
    return root


def load_registry(root: Path) -> Registry:
    """Load the registry, recovering from a corrupt file.

    A profiles.ini that can't be parsed is moved aside to
    ``profiles.ini.corrupt`` and an empty registry is returned in its place.
    """
    try:
        return Registry.load(root)
    except RegistryParseError as e:
        registry = Registry(root / REGISTRY_FILENAME)
        logger.warning(f"Registry unreadable, starting from an empty one: {e}")
        try:
            shutil.move(str(registry.path), str(registry.path.with_name(registry.path.name + ".corrupt")))
        except OSError as move_error:
            logger.warning(f"Failed to move corrupt registry aside: {move_error}")
        return registry


def salt_profile_name(name: str) -> str:
    """Prefix a profile name with a random salt, e.g. ``"k3j9x0qa.default"``."""
    salt = "".join(secrets.choice(SALT_ALPHABET) for _ in range(SALT_LENGTH))
    return f"{salt}.{name}"


def _is_set(value: str | None) -> bool:
    return value is not None and value.strip() not in ("", "0")


def _entry_path(registry: Registry, section: RegistrySection) -> Path | None:
    raw_path = section.get("Path")
    if not raw_path:
        return None
    if _is_set(section.get("IsRelative")):
        return registry.root / raw_path
    return Path(raw_path)


def list_profiles(registry: Registry) -> list[RegistryEntry]:
    """List registry entries that have both a name and a path, in file order."""
    entries = []
    for section in registry.profile_sections():
        name = section.get("Name")
        path = _entry_path(registry, section)
        if name is None or path is None:
            continue
        entries.append(
            RegistryEntry(section=section.name, name=name, path=path, is_default=_is_set(section.get("Default")))
        )
    return entries


def find_profile_section(registry: Registry, name: str) -> RegistrySection | None:
    for section in registry.profile_sections():
        if section.get("Name") == name:
            return section
    return None


def find_profile_dir(registry: Registry, name: str) -> Path:
    """Find the directory registered for ``name``.

    Raises:
        NoSuchProfileError: If no registry entry carries that name
    """
    section = find_profile_section(registry, name)
    if section is None:
        raise NoSuchProfileError(name)

    path = _entry_path(registry, section)
    if path is None:
        raise NoSuchProfileError(name, f"Registry entry for '{name}' has no Path")
    return path


def find_default_profile_name(registry: Registry) -> str | None:
    """Name of the profile flagged ``Default=1``, if any."""
    for section in registry.profile_sections():
        if _is_set(section.get("Default")):
            return section.get("Name")
    return None


def find_orphaned_dirs(registry: Registry) -> list[Path]:
    """Directories under the root that no registry entry points at.

    These come from a crash between creating a directory and writing the
    registry. They are reported, never reconciled or deleted.
    """
    root = registry.root
    if not root.is_dir():
        return []

    registered = set()
    for entry in list_profiles(registry):
        try:
            registered.add(entry.path.resolve())
        except OSError:
            registered.add(entry.path)

    orphans = []
    for child in sorted(root.iterdir()):
        if child.is_dir() and child.resolve() not in registered:
            orphans.append(child)
    return orphans


def create_profile_dir(
    registry: Registry,
    name: str,
    *,
    on_created: Callable[[Path], None] | None = None,
    clock: Callable[[], int] | None = None,
) -> Path:
    """Create a salted directory for ``name`` and register it.

    Runs under the in-process registry lock; callers that loaded
    ``registry`` under the same lock get a race-free read-modify-write.
    The new section takes the lowest free ``Profile<N>`` ordinal and gets
    ``Default=1`` only if no other section has it. ``on_created`` runs after
    the registry is written; a ``times.json`` creation timestamp is then
    written best-effort.

    Creating the directory and writing the registry are not atomic as a pair.
    A crash in between leaves an orphaned directory, which resolution simply
    ignores (see ``find_orphaned_dirs``).

    Raises:
        OSError: If the directory or the registry can't be written
    """
    root = registry.root

    with registry_lock(root):
        # Salt the name, retrying until the candidate is unused.
        salted_name = salt_profile_name(name)
        profile_dir = root / salted_name
        while profile_dir.exists():
            salted_name = salt_profile_name(name)
            profile_dir = root / salted_name

        try:
            profile_dir.mkdir(parents=True)
        except OSError as e:
            raise OSError(f"Unable to create profile directory: {e}") from e
        logger.debug("Created new profile dir.")

        ordinal = registry.lowest_free_ordinal()
        is_default_set = any(_is_set(s.get("Default")) for s in registry.profile_sections())

        section = RegistrySection(profile_section_name(ordinal))
        section.set("Name", name)
        section.set("IsRelative", 1)
        section.set("Path", salted_name)

        if registry.section(GENERAL_SECTION) is None:
            general = RegistrySection(GENERAL_SECTION)
            general.set("StartWithLastProfile", 1)
            registry.add_section(general)

        if not is_default_set:
            # Only the first profile ever created becomes the default.
            section.set("Default", 1)

        registry.add_section(section)
        registry.write()
        logger.info(f"Registered profile '{name}' as {section.name}")

    if on_created is not None:
        on_created(profile_dir)

    _write_creation_time(profile_dir, clock)
    return profile_dir


def _write_creation_time(profile_dir: Path, clock: Callable[[], int] | None) -> None:
    now = (clock or current_time_millis)()
    try:
        DocumentStore(profile_dir).write_model(TIMES_FILE_PATH, TimesDocument(created=now))
    except OSError as e:
        # Best-effort.
        logger.warning(f"Couldn't write {TIMES_FILE_PATH}: {e}")


__all__ = [
    "SALT_ALPHABET",
    "RegistryEntry",
    "create_profile_dir",
    "find_default_profile_name",
    "find_orphaned_dirs",
    "find_profile_dir",
    "find_profile_section",
    "get_root_directory",
    "list_profiles",
    "load_registry",
    "salt_profile_name",
]
