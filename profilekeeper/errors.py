"""Exception types raised by profilekeeper.

Filesystem failures are reported as the built-in ``OSError``; everything
specific to profile bookkeeping derives from ``ProfileError``.
"""


class ProfileError(Exception):
    """Base class for profile bookkeeping errors."""


class NoSuchProfileError(ProfileError):
    """Raised when the registry has no entry for a profile name."""

    def __init__(self, name: str, message: str | None = None):
        self.name = name
        super().__init__(message or f"No profile named '{name}' in the registry")


class NoRootDirectoryError(ProfileError):
    """Raised when the profiles root directory is missing and can't be created."""

    def __init__(self, path, message: str | None = None):
        self.path = path
        super().__init__(message or f"Profiles root directory unavailable: {path}")


class RegistryParseError(ProfileError):
    """Raised when profiles.ini can't be read or parsed."""


class DocumentError(ProfileError):
    """Raised when a structured document is missing, corrupt or invalid.

    Callers treat this as "document absent", never as fatal.
    """


class StateConflictError(ProfileError):
    """Raised when a caller's directory disagrees with an already resolved profile."""

    def __init__(self, name: str, current, requested):
        self.name = name
        self.current = current
        self.requested = requested
        super().__init__(
            f"Refusing to reuse profile '{name}' with a different directory "
            f"(resolved: {current}, requested: {requested})"
        )


class MalformedSectionError(ProfileError):
    """Raised when a Profile section name carries a non-numeric ordinal."""

    def __init__(self, section_name: str):
        self.section_name = section_name
        super().__init__(f"Malformed section name in profiles.ini: {section_name}")


__all__ = [
    "DocumentError",
    "MalformedSectionError",
    "NoRootDirectoryError",
    "NoSuchProfileError",
    "ProfileError",
    "RegistryParseError",
    "StateConflictError",
]
