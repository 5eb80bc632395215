"""
Profile handle: one long-lived object per profile name.

Owns the lazily resolved profile directory, the cached lock state and the
per-profile documents (client ID, creation time). Handles are normally
obtained through ``ProfileManager.get()`` so there is at most one per name.
"""

import logging
import threading
import uuid
from concurrent.futures import Future
from pathlib import Path

from .directories import create_profile_dir
from .directories import find_profile_dir
from .directories import get_root_directory
from .directories import load_registry
from .documents import CLIENT_ID_FILE_PATH
from .documents import LEGACY_CLIENT_ID_FILE_PATH
from .documents import TIMES_FILE_PATH
from .documents import ClientIdDocument
from .documents import DocumentStore
from .documents import TimesDocument
from .errors import DocumentError
from .errors import MalformedSectionError
from .errors import NoSuchProfileError
from .errors import RegistryParseError
from .initialization import BrowserStore
from .initialization import BrowserStoreFactory
from .initialization import InstallTimeSource
from .initialization import ProfileInitializer
from .initialization import package_install_time
from .initialization import stub_store_factory
from .lock import LockController
from .lock import LockState
from .registry import Registry
from .registry import registry_lock
from .utils.files import delete

logger = logging.getLogger(__name__)

DEFAULT_PROFILE = "default"
# Profile using a custom directory outside the profiles root.
CUSTOM_PROFILE = ""
GUEST_PROFILE = "guest"

SESSION_FILE = "sessionstore.js"
SESSION_BACKUP_FILE = "sessionstore.bak"

UNKNOWN_CREATION_DATE = -1


class Profile:
    """A named profile and its directory.

    Args:
        name: Logical profile name, or ``CUSTOM_PROFILE`` for a directory
            outside the profiles root
        root_dir: Profiles root holding profiles.ini
        profile_dir: Directory to use instead of resolving through the
            registry; must already exist
        store_factory: Builds the browser store for this profile
        initializer: Seeds newly created profile directories
        install_time_source: Fallback for the creation date

    Raises:
        ValueError: If the name is None, a custom profile has no directory, or
            ``profile_dir`` isn't an existing directory
    """

    def __init__(
        self,
        name: str,
        root_dir: Path,
        profile_dir: Path | None = None,
        *,
        store_factory: BrowserStoreFactory | None = None,
        initializer: ProfileInitializer | None = None,
        install_time_source: InstallTimeSource | None = None,
    ):
        if name is None:
            raise ValueError("Unable to create a Profile for an empty profile name.")
        if name == CUSTOM_PROFILE and profile_dir is None:
            raise ValueError("Custom profile must have a directory")
        if profile_dir is not None and not profile_dir.is_dir():
            raise ValueError("Profile directory must exist if specified.")

        self._name = name
        self._root_dir = root_dir
        # Lazily resolved; guarded by mutex.
        self._profile_dir = profile_dir
        self.mutex = threading.RLock()

        self._lock = LockController(self.peek_dir, self._dir_for_lock)
        self.in_guest_mode = False

        self._db = (store_factory or stub_store_factory)(name, profile_dir)
        self._initializer = initializer or ProfileInitializer()
        self._install_time_source = install_time_source or package_install_time
        self.pending_initialization: Future[None] | None = None

    def __repr__(self) -> str:
        return f"Profile({self._name!r}, {self._profile_dir!r})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_custom(self) -> bool:
        return self._name == CUSTOM_PROFILE

    @property
    def db(self) -> BrowserStore:
        return self._db

    @property
    def root_dir(self) -> Path:
        return self._root_dir

    # ----- Directory resolution -----

    def peek_dir(self) -> Path | None:
        """The resolved directory, or None if not resolved yet. Never creates anything."""
        with self.mutex:
            return self._profile_dir

    def get_dir(self) -> Path:
        """Resolve the profile directory, creating it and its registry entry if needed.

        Raises:
            NoRootDirectoryError: If the profiles root is unavailable
            OSError: If the directory or registry couldn't be written
        """
        return self._resolve_dir()

    def force_create(self) -> "Profile":
        self._resolve_dir()
        return self

    def _resolve_dir(self) -> Path:
        with self.mutex:
            if self._profile_dir is not None:
                return self._profile_dir

            root = get_root_directory(self._root_dir)
            with registry_lock(root):
                registry = load_registry(root)
                try:
                    # Check if a profile with this name already exists.
                    profile_dir = find_profile_dir(registry, self._name)
                    logger.debug("Found profile dir.")
                except NoSuchProfileError:
                    # If it doesn't exist, create it.
                    profile_dir = create_profile_dir(registry, self._name, on_created=self.enqueue_initialization)
                    logger.info(f"Created profile '{self._name}'")

            self._profile_dir = profile_dir
            # The lock cache can't describe a directory we just (re)resolved.
            self._lock.invalidate()
            return profile_dir

    def set_dir(self, profile_dir: Path) -> bool:
        """Point this handle at a different existing directory.

        Returns:
            True if the handle now uses ``profile_dir``
        """
        if not profile_dir.is_dir():
            return False
        with self.mutex:
            self._profile_dir = profile_dir
            self._lock.invalidate()
        return True

    def _dir_for_lock(self) -> Path:
        profile_dir = self.get_dir()
        profile_dir.mkdir(parents=True, exist_ok=True)
        return profile_dir

    # ----- Locking -----

    @property
    def lock_state(self) -> LockState:
        return self._lock.state

    def locked(self) -> bool:
        """Whether the profile is in use. Cached; external lock file changes go unnoticed."""
        return self._lock.locked()

    def lock(self) -> bool:
        with self.mutex:
            return self._lock.lock()

    def unlock(self) -> bool:
        """Delete the lock file. A profile with no registry entry or directory is already unlocked."""
        with self.mutex:
            try:
                self._find_existing_dir()
            except RegistryParseError as e:
                logger.error(f"Error unlocking profile: {e}")
                return False
            return self._lock.unlock()

    def _find_existing_dir(self) -> Path | None:
        """Resolve through the registry without creating anything. Caller holds the mutex.

        Raises:
            RegistryParseError: If profiles.ini is unreadable
        """
        if self._profile_dir is not None or self.is_custom:
            return self._profile_dir
        try:
            profile_dir = find_profile_dir(Registry.load(self._root_dir), self._name)
        except NoSuchProfileError:
            return None

        self._profile_dir = profile_dir
        self._lock.invalidate()
        return profile_dir

    # ----- Files -----

    @property
    def documents(self) -> DocumentStore:
        return DocumentStore(self.get_dir())

    def get_file(self, filename: str) -> Path:
        return self.get_dir() / filename

    def read_file(self, filename: str) -> str:
        """Read a file from the profile directory.

        Raises:
            OSError: If the file can't be read
        """
        with open(self.get_file(filename), encoding="utf-8") as f:
            return f.read()

    def write_file(self, filename: str, data: str) -> None:
        """Overwrite a file in the profile directory.

        Raises:
            OSError: If the file can't be written
        """
        with open(self.get_file(filename), "w", encoding="utf-8") as f:
            f.write(data)

    def delete_file(self, filename: str) -> bool:
        if not filename:
            raise ValueError("Filename cannot be empty.")
        try:
            self.get_file(filename).unlink()
            return True
        except OSError:
            return False

    def ensure_parent_dirs(self, filename: str) -> bool:
        parent = self.get_file(filename).parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Could not create parent directories for {filename}: {e}")
            return False
        return parent.is_dir()

    def move_session_file(self) -> None:
        """Move sessionstore.js to sessionstore.bak, e.g. after a crash."""
        session_file = self.get_file(SESSION_FILE)
        if session_file.exists():
            session_file.replace(self.get_file(SESSION_BACKUP_FILE))

    def read_session_file(self, read_backup: bool = False) -> str | None:
        """Current (or, with ``read_backup``, previous) session contents, or None."""
        session_file = self.get_file(SESSION_BACKUP_FILE if read_backup else SESSION_FILE)
        try:
            if session_file.exists():
                return self.read_file(session_file.name)
        except OSError as e:
            logger.error(f"Unable to read session file: {e}")
        return None

    # ----- Client ID -----

    def get_client_id(self) -> str:
        """Get the client ID, migrating or generating and persisting one if needed.

        Tries the canonical document, then the legacy one, then generates a
        new UUID. A migrated or generated ID is written to the canonical path
        and read back; the value read back is returned, so a concurrent
        writer wins consistently.

        Raises:
            OSError: If the client ID could not be persisted or read back
        """
        documents = self.documents
        try:
            return self._read_client_id(documents, CLIENT_ID_FILE_PATH)
        except DocumentError as e:
            logger.debug(f"Could not get client ID - attempting to migrate legacy ID: {e}")

        try:
            client_id = self._read_client_id(documents, LEGACY_CLIENT_ID_FILE_PATH)
        except DocumentError as e:
            logger.debug(f"Could not migrate legacy client ID - creating a new one: {e}")
            client_id = str(uuid.uuid4())

        logger.debug("Attempting to write new client ID")
        documents.write_model(CLIENT_ID_FILE_PATH, ClientIdDocument(client_id=client_id))

        try:
            return self._read_client_id(documents, CLIENT_ID_FILE_PATH)
        except DocumentError as e:
            raise OSError(f"Client ID unreadable after persisting: {e}") from e

    @staticmethod
    def _read_client_id(documents: DocumentStore, path: str) -> str:
        return documents.read_model(path, ClientIdDocument).client_id

    # ----- Creation time -----

    def get_and_persist_creation_date(self) -> int:
        """Profile creation time in epoch milliseconds.

        Reads times.json; failing that, falls back to the installation time
        and tries to persist it. The fallback is returned even if persisting
        fails. Returns ``UNKNOWN_CREATION_DATE`` only when no installation
        time is available either.
        """
        documents = self.documents
        try:
            return documents.read_model(TIMES_FILE_PATH, TimesDocument).created
        except DocumentError:
            logger.debug(f"Unable to retrieve profile creation date from {TIMES_FILE_PATH}. Getting from system...")

        install_time = self._install_time_source()
        if install_time is None:
            logger.warning("No installation time available - returning unknown creation date")
            return UNKNOWN_CREATION_DATE

        try:
            logger.debug("Attempting to write new profile creation date")
            documents.write_model(TIMES_FILE_PATH, TimesDocument(created=install_time))
        except OSError as e:
            logger.warning(f"Unable to persist profile creation date: {e}")

        return install_time

    # ----- Lifecycle -----

    def enqueue_initialization(self, profile_dir: Path) -> Future[None]:
        """Queue background seeding of ``profile_dir`` (default entries and so on)."""
        self.pending_initialization = self._initializer.enqueue(self, profile_dir)
        return self.pending_initialization

    def remove(self) -> bool:
        """Delete the profile directory and its registry entry.

        An entry already missing from the registry still counts as success
        once the directory is gone.

        Returns:
            True on success, False on failure (logged)
        """
        with self.mutex:
            try:
                profile_dir = self._find_existing_dir()
            except RegistryParseError as e:
                logger.warning(f"Unable to remove profile '{self._name}': {e}")
                return False
            if profile_dir is None:
                logger.warning(f"Unable to remove profile '{self._name}': not in the registry")
                return False

            if profile_dir.exists() and not delete(profile_dir):
                logger.warning(f"Failed to delete directory of profile '{self._name}'")
                return False

            self._lock.invalidate()
            if self.is_custom:
                return True
            self._profile_dir = None

            try:
                return self._remove_registry_entry()
            except MalformedSectionError as e:
                logger.error(str(e))
                return False
            except OSError as e:
                logger.warning(f"Failed to remove profile: {e}")
                return False

    def _remove_registry_entry(self) -> bool:
        root = self._root_dir
        with registry_lock(root):
            registry = load_registry(root)
            section = next((s for s in registry.sections if s.get("Name") == self._name), None)
            if section is None:
                logger.info(f"Profile '{self._name}' had no registry entry; nothing left to remove")
                return True

            if section.is_profile_section:
                registry.remove_profile_section(section.name)
            else:
                registry.remove_section(section.name)
            registry.write()

        logger.info(f"Removed profile '{self._name}'")
        return True


__all__ = [
    "CUSTOM_PROFILE",
    "DEFAULT_PROFILE",
    "GUEST_PROFILE",
    "UNKNOWN_CREATION_DATE",
    "Profile",
]
