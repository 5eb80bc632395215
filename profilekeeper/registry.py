"""Profile registry backed by profiles.ini.

The registry is an ordered list of named sections, one per profile plus a
``General`` section for process-wide defaults. Keys and sections this module
does not know about are kept as-is and written back unchanged, so files
touched by other tool versions survive a rewrite.

Only protects within a single process: ``registry_lock(root)`` serializes
read-modify-write cycles on one profiles.ini between threads, while
independent processes get last-writer-wins.
"""

from __future__ import annotations

import configparser
import contextlib
import logging
import tempfile
import threading
from pathlib import Path

from .errors import MalformedSectionError
from .errors import RegistryParseError

logger = logging.getLogger(__name__)

REGISTRY_FILENAME = "profiles.ini"
GENERAL_SECTION = "General"
PROFILE_SECTION_PREFIX = "Profile"

# configparser treats its default section specially; use a name no real file has.
_NO_DEFAULT_SECTION = "\x00profilekeeper-defaults"

_locks_guard = threading.Lock()
_registry_locks: dict[Path, threading.RLock] = {}


def registry_lock(root: Path) -> threading.RLock:
    """Return the in-process lock guarding the registry under ``root``."""
    resolved = root.resolve()
    with _locks_guard:
        if resolved not in _registry_locks:
            _registry_locks[resolved] = threading.RLock()
        return _registry_locks[resolved]


def profile_section_name(ordinal: int) -> str:
    return f"{PROFILE_SECTION_PREFIX}{ordinal}"


def _new_parser() -> configparser.ConfigParser:
    parser = configparser.ConfigParser(
        interpolation=None,
        strict=False,
        delimiters=("=",),
        allow_no_value=True,
        comment_prefixes=("#", ";"),
        empty_lines_in_values=False,
        default_section=_NO_DEFAULT_SECTION,
    )
    # Keys are case-sensitive ("Name", "IsRelative", ...)
    parser.optionxform = str  # type: ignore[assignment]
    return parser


class RegistrySection:
    """A named ``[section]`` holding string key/value properties in file order."""

    def __init__(self, name: str, properties: dict[str, str | None] | None = None):
        self.name = name
        # Bare keys without "=" carry None.
        self._properties: dict[str, str | None] = dict(properties or {})

    def get(self, key: str, default: str | None = None) -> str | None:
        return self._properties.get(key, default)

    def set(self, key: str, value: object) -> None:
        self._properties[key] = str(value)

    def remove(self, key: str) -> None:
        self._properties.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._properties

    @property
    def properties(self) -> dict[str, str | None]:
        return dict(self._properties)

    @property
    def is_profile_section(self) -> bool:
        return self.name.startswith(PROFILE_SECTION_PREFIX)

    @property
    def ordinal(self) -> int:
        """Integer suffix of a ``Profile<N>`` section.

        Raises:
            MalformedSectionError: If the suffix isn't a non-negative integer
        """
        suffix = self.name[len(PROFILE_SECTION_PREFIX) :]
        if not self.is_profile_section or not suffix.isdigit():
            raise MalformedSectionError(self.name)
        return int(suffix)

    def __repr__(self) -> str:
        return f"RegistrySection({self.name!r}, {self._properties!r})"


class Registry:
    """
    In-memory view of profiles.ini.

    Usage:
        registry = Registry.load(root)
        section = registry.section("Profile0")
        registry.add_section(RegistrySection("Profile1", {"Name": "work"}))
        registry.write()
    """

    def __init__(self, path: Path, sections: list[RegistrySection] | None = None):
        self.path = path
        self._sections: list[RegistrySection] = list(sections or [])

    @classmethod
    def load(cls, root: Path) -> Registry:
        """Load ``root/profiles.ini``. A missing file yields an empty registry.

        Leading whitespace is ignored, so an indented line is a key of its own
        rather than a continuation of the previous value. Lines configparser
        can't make sense of are skipped with a warning; everything else in
        the file is kept.

        Raises:
            RegistryParseError: If the file can't be read or has no section header
        """
        path = root / REGISTRY_FILENAME
        if not path.exists():
            return cls(path)

        try:
            with open(path, encoding="utf-8") as f:
                text = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise RegistryParseError(f"Could not read {path}: {e}") from e

        parser = _new_parser()
        try:
            parser.read_string("\n".join(line.strip() for line in text.splitlines()), source=str(path))
        except configparser.MissingSectionHeaderError as e:
            raise RegistryParseError(f"Could not parse {path}: {e}") from e
        except configparser.ParsingError as e:
            # Raised only after the whole file was read; the valid lines are in the parser.
            logger.warning(f"Skipped {len(e.errors)} malformed lines in {path}")
        except configparser.Error as e:
            raise RegistryParseError(f"Could not parse {path}: {e}") from e

        sections = [RegistrySection(name, dict(parser.items(name, raw=True))) for name in parser.sections()]
        return cls(path, sections)

    @property
    def root(self) -> Path:
        return self.path.parent

    @property
    def sections(self) -> list[RegistrySection]:
        return list(self._sections)

    def section(self, name: str) -> RegistrySection | None:
        for section in self._sections:
            if section.name == name:
                return section
        return None

    def _index(self, name: str) -> int | None:
        for i, section in enumerate(self._sections):
            if section.name == name:
                return i
        return None

    def add_section(self, section: RegistrySection) -> None:
        """Add a section, replacing (in place) any section with the same name."""
        index = self._index(section.name)
        if index is None:
            self._sections.append(section)
        else:
            self._sections[index] = section

    def remove_section(self, name: str) -> bool:
        index = self._index(name)
        if index is None:
            return False
        del self._sections[index]
        return True

    def rename_section(self, old: str, new: str) -> None:
        """Rename a section, keeping its position. An existing ``new`` section is dropped.

        Raises:
            KeyError: If there is no section named ``old``
        """
        section = self.section(old)
        if section is None:
            raise KeyError(old)
        if old == new:
            return
        self.remove_section(new)
        section.name = new

    def profile_sections(self) -> list[RegistrySection]:
        return [s for s in self._sections if s.is_profile_section]

    def lowest_free_ordinal(self) -> int:
        ordinal = 0
        while self.section(profile_section_name(ordinal)) is not None:
            ordinal += 1
        return ordinal

    def remove_profile_section(self, name: str) -> None:
        """Remove a ``Profile<N>`` section and close the ordinal gap it leaves.

        Following sections are shifted down one at a time, in ascending
        order, stopping at the first ordinal that doesn't exist.

        Raises:
            MalformedSectionError: If the section name has no numeric ordinal
            KeyError: If the section doesn't exist
        """
        section = self.section(name)
        if section is None:
            raise KeyError(name)

        current = section.ordinal
        self.remove_section(name)

        while self.section(profile_section_name(current + 1)) is not None:
            self.rename_section(profile_section_name(current + 1), profile_section_name(current))
            current += 1

    def write(self) -> None:
        """Persist the registry atomically.

        Raises:
            OSError: If the file could not be written
        """
        parser = _new_parser()
        for section in self._sections:
            parser.add_section(section.name)
            for key, value in section.properties.items():
                parser.set(section.name, key, value)

        self.root.mkdir(parents=True, exist_ok=True)

        # Write to temp file first (atomic write pattern)
        with tempfile.NamedTemporaryFile(
            mode="w", dir=self.root, prefix="profiles_", suffix=".tmp", delete=False, encoding="utf-8"
        ) as tmp_file:
            temp_path = Path(tmp_file.name)
            try:
                parser.write(tmp_file, space_around_delimiters=False)
                tmp_file.flush()

                # Atomic rename
                temp_path.replace(self.path)

            except Exception as e:
                # Clean up temp file on failure
                with contextlib.suppress(Exception):
                    temp_path.unlink()
                raise OSError(f"Failed to write {REGISTRY_FILENAME}: {e}") from e

        logger.debug(f"Wrote {REGISTRY_FILENAME} with {len(self._sections)} sections")


__all__ = [
    "GENERAL_SECTION",
    "PROFILE_SECTION_PREFIX",
    "REGISTRY_FILENAME",
    "Registry",
    "RegistrySection",
    "profile_section_name",
    "registry_lock",
]
