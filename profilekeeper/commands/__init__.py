"""CLI command groups for profilekeeper."""

__all__ = [
    "profile",
]
