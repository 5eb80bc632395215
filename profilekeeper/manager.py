"""Process-wide profile cache.

``ProfileManager`` hands out at most one ``Profile`` per name for the life of
the process. The process-scoped instance is created on first access to
``get_manager()`` and never torn down; tests call ``reset_for_testing()``.

Only protects within a single process: handles coordinate threads, while
other processes see nothing but the lock file and profiles.ini.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from .directories import find_default_profile_name
from .directories import get_root_directory
from .directories import load_registry
from .errors import ProfileError
from .errors import StateConflictError
from .initialization import BrowserStoreFactory
from .initialization import InstallTimeSource
from .initialization import ProfileInitializer
from .profile import CUSTOM_PROFILE
from .profile import DEFAULT_PROFILE
from .profile import GUEST_PROFILE
from .profile import Profile
from .settings import KeeperSettings
from .settings import load_settings
from .utils.files import delete

logger = logging.getLogger(__name__)


def _same_dir(a: Path, b: Path) -> bool:
    try:
        return a.resolve() == b.resolve()
    except OSError:
        return False


class ProfileManager:
    """
    Maps profile names to their single ``Profile`` handle.

    Usage:
        manager = ProfileManager(load_settings())
        profile = manager.get("work")
        profile.lock()
    """

    def __init__(
        self,
        settings: KeeperSettings,
        *,
        store_factory: BrowserStoreFactory | None = None,
        initializer: ProfileInitializer | None = None,
        install_time_source: InstallTimeSource | None = None,
    ):
        self.settings = settings
        self._store_factory = store_factory
        self._initializer = initializer
        self._install_time_source = install_time_source

        self._profiles: dict[str, Profile] = {}
        self._lock = threading.Lock()

        # Changing the default profile requires a restart, so this is read once.
        self._default_profile_name: str | None = None

        self._guest_lock = threading.RLock()
        self._guest_profile: Profile | None = None
        self._should_check_for_guest = True

    @property
    def root_dir(self) -> Path:
        return self.settings.profiles_root

    def _new_profile(self, name: str, profile_dir: Path | None) -> Profile:
        return Profile(
            name,
            self.root_dir,
            profile_dir,
            store_factory=self._store_factory,
            initializer=self._initializer,
            install_time_source=self._install_time_source,
        )

    def cached_profiles(self) -> dict[str, Profile]:
        with self._lock:
            return dict(self._profiles)

    def get(self, name: str | None = None, profile_dir: Path | None = None) -> Profile:
        """Look up or create the handle for a profile.

        ======  =====  ===========================================
        name    dir    result
        ======  =====  ===========================================
        None    None   the default profile
        given   None   profile ``name`` under the profiles root
        None    given  custom (anonymous) profile at ``dir``
        given   given  profile ``name`` at ``dir``
        ======  =====  ===========================================

        Only the name is used as the cache key. If a cached handle resolved to
        a different directory, it is redirected when ``accept_directory_changes``
        is set and ``profile_dir`` is an existing directory.

        Raises:
            StateConflictError: If the handle can't be redirected to ``profile_dir``
            ValueError: If a new handle's ``profile_dir`` isn't an existing directory
        """
        if name is None and profile_dir is None:
            return self.get_default_profile()
        if name is None:
            name = CUSTOM_PROFILE
        else:
            logger.debug(f"Fetching profile: '{name}', '{profile_dir}'")

        if profile_dir is not None and not profile_dir.is_dir():
            logger.warning(f"Requested profile directory missing: {profile_dir}")

        with self._lock:
            profile = self._profiles.get(name)
            if profile is None:
                profile = self._new_profile(name, profile_dir)
                self._profiles[name] = profile
                return profile

            if profile_dir is None:
                return profile

            with profile.mutex:
                current = profile.get_dir()
                if _same_dir(current, profile_dir):
                    return profile

                if self.settings.accept_directory_changes and profile_dir.is_dir():
                    logger.warning(f"Switching directory of profile '{name}'; this should only happen in tests")
                    profile.set_dir(profile_dir)
                    return profile

                raise StateConflictError(name, current, profile_dir)

    def get_default_profile_name(self) -> str:
        """Name of the registry's default profile, or ``"default"`` if none is flagged.

        Memoized for the life of the manager; not written back to the registry.
        """
        with self._lock:
            if self._default_profile_name is not None:
                return self._default_profile_name

            root = get_root_directory(self.root_dir)
            name = find_default_profile_name(load_registry(root))
            self._default_profile_name = name if name is not None else DEFAULT_PROFILE
            return self._default_profile_name

    def get_default_profile(self) -> Profile:
        return self.get(self.get_default_profile_name())

    def remove_profile(self, name: str | None) -> bool:
        """Delete a profile's directory and registry entry and drop its handle."""
        if name is None:
            logger.warning("Unable to remove profile: null profile name.")
            return False

        profile = self.get(name)
        success = profile.remove()

        if success:
            with self._lock:
                if self._profiles.get(name) is profile:
                    del self._profiles[name]
        return success

    # ----- Guest profile -----

    def get_guest_profile(self) -> Profile | None:
        """The guest profile if its directory exists, else None."""
        with self._guest_lock:
            if self._guest_profile is None and self._should_check_for_guest:
                guest_dir = self.settings.guest_root
                if guest_dir.exists():
                    self._guest_profile = self.get(GUEST_PROFILE, guest_dir)
                    self._guest_profile.in_guest_mode = True
                else:
                    self._should_check_for_guest = False
            return self._guest_profile

    def create_guest_profile(self) -> Profile | None:
        """Create, lock and initialize the guest profile. Returns None on failure (logged)."""
        try:
            with self._guest_lock:
                # Create the directory ourselves, otherwise resolution would put
                # the guest profile under the profiles root.
                self.settings.guest_root.mkdir(parents=True, exist_ok=True)
                self._should_check_for_guest = True
                profile = self.get_guest_profile()
                if profile is None:
                    return None

            profile.lock()
            profile.enqueue_initialization(profile.get_dir())
            return profile
        except (OSError, ProfileError, ValueError) as e:
            logger.error(f"Error creating guest profile: {e}")
        return None

    def get_or_create_guest_profile(self) -> Profile | None:
        profile = self.get_guest_profile()
        if profile is None:
            return self.create_guest_profile()
        return profile

    def leave_guest_session(self) -> None:
        profile = self.get_guest_profile()
        if profile is not None:
            profile.unlock()

    def maybe_cleanup_guest_profile(self) -> bool:
        """Delete the guest profile if it exists and isn't locked.

        Returns:
            True if a cleanup happened
        """
        profile = self.get_guest_profile()
        if profile is None:
            return False

        if profile.locked():
            return False

        profile.in_guest_mode = False
        # If the guest dir exists, but it's unlocked, delete it
        self._remove_guest_profile(profile)
        return True

    def _remove_guest_profile(self, profile: Profile) -> None:
        guest_dir = self.settings.guest_root
        with profile.mutex:
            success = not guest_dir.exists() or delete(guest_dir)

        if not success:
            logger.error("Error removing guest profile")
            return

        with self._guest_lock:
            self._guest_profile = None
            self._should_check_for_guest = True
        with self._lock:
            if self._profiles.get(GUEST_PROFILE) is profile:
                del self._profiles[GUEST_PROFILE]


# ===== PROCESS-SCOPED INSTANCE =====

_manager: ProfileManager | None = None
_manager_lock = threading.Lock()


def get_manager() -> ProfileManager:
    """The process-wide manager, created from ``load_settings()`` on first use."""
    global _manager
    with _manager_lock:
        if _manager is None:
            _manager = ProfileManager(load_settings())
        return _manager


def configure(settings: KeeperSettings, **kwargs) -> ProfileManager:
    """Install a manager built from ``settings`` as the process-wide instance.

    Meant for application startup, before any profile is handed out.
    """
    global _manager
    with _manager_lock:
        _manager = ProfileManager(settings, **kwargs)
        return _manager


def reset_for_testing() -> None:
    """Drop the process-wide manager and every cached handle."""
    global _manager
    with _manager_lock:
        _manager = None


def get_profile(name: str | None = None, profile_dir: Path | None = None) -> Profile:
    return get_manager().get(name, profile_dir)


__all__ = [
    "ProfileManager",
    "configure",
    "get_manager",
    "get_profile",
    "reset_for_testing",
]
