"""profilekeeper: profile directory registry and lifecycle manager."""

from .errors import NoSuchProfileError
from .errors import ProfileError
from .errors import StateConflictError
from .manager import ProfileManager
from .manager import get_manager
from .manager import get_profile
from .profile import Profile

__all__ = [
    "NoSuchProfileError",
    "Profile",
    "ProfileError",
    "ProfileManager",
    "StateConflictError",
    "get_manager",
    "get_profile",
]
