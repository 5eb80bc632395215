"""Error message formatting for CLI output.

Ensures exceptions always have a useful display message, even when their
str() representation is empty (e.g. a bare PermissionError()).
"""

from __future__ import annotations

from rich.markup import escape as _escape_markup

from ..errors import ProfileError

# Friendly messages for exception types that often arrive without details
FRIENDLY_MESSAGES: dict[type, str] = {
    PermissionError: "Permission denied while accessing the profile directory.",
    FileNotFoundError: "A profile file or directory is missing.",
    KeyboardInterrupt: "Operation interrupted by user.",
}


def format_error_message(e: BaseException, *, include_type: bool = True) -> str:
    """Format an exception into a useful display message.

    Profile errors carry their own wording and are shown without the type
    name.

    Examples:
        >>> format_error_message(ValueError("invalid input"))
        'ValueError: invalid input'

        >>> format_error_message(PermissionError())
        'PermissionError: Permission denied while accessing the profile directory.'
    """
    error_str = str(e)
    error_type = type(e).__name__

    if error_str:
        if isinstance(e, ProfileError) or not include_type or error_type in error_str:
            return error_str
        return f"{error_type}: {error_str}"

    for exc_type, friendly_msg in FRIENDLY_MESSAGES.items():
        if isinstance(e, exc_type):
            return f"{error_type}: {friendly_msg}"

    return f"{error_type}: (no additional details)"


def escape_markup(value: object) -> str:
    """Escape a value for safe interpolation into Rich markup strings."""
    return _escape_markup(str(value))


__all__ = ["FRIENDLY_MESSAGES", "escape_markup", "format_error_message"]
