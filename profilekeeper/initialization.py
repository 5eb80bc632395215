"""Background initialization of newly created profiles.

The browser store, the distribution readiness signal and the installation
time are external collaborators; this module defines the interfaces the
profile code calls and the stand-ins used when nothing else is plugged in.
"""

from __future__ import annotations

import importlib.metadata
import logging
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING
from typing import Any
from typing import Protocol
from typing import runtime_checkable

if TYPE_CHECKING:
    from .profile import Profile

logger = logging.getLogger(__name__)

DISTRIBUTION_NAME = "profilekeeper"


@runtime_checkable
class BrowserStore(Protocol):
    """Bookmark/history store seeded when a profile is first created."""

    def add_default_entries(self, offset: int) -> int:
        """Add the built-in default entries starting at ``offset``; returns the count added."""
        ...

    def add_distribution_entries(self, distribution: Any, offset: int) -> int:
        """Add a distribution's entries starting at ``offset``; returns the count added."""
        ...

    def count_entries(self) -> int:
        """Number of entries currently stored."""
        ...


BrowserStoreFactory = Callable[[str, Path | None], BrowserStore]
InstallTimeSource = Callable[[], int | None]


class StubBrowserStore:
    """In-memory store used when no real browser store is configured."""

    def __init__(self, profile_name: str, profile_dir: Path | None = None):
        self.profile_name = profile_name
        self.profile_dir = profile_dir
        self.entries: list[tuple[str, int]] = []

    def add_default_entries(self, offset: int) -> int:
        self.entries.append(("default", offset))
        return 1

    def add_distribution_entries(self, distribution: Any, offset: int) -> int:
        if distribution is None:
            return 0
        self.entries.append(("distribution", offset))
        return 1

    def count_entries(self) -> int:
        return len(self.entries)


def stub_store_factory(profile_name: str, profile_dir: Path | None) -> BrowserStore:
    return StubBrowserStore(profile_name, profile_dir)


# ===== DISTRIBUTION OUTCOMES =====


@dataclass(frozen=True)
class DistributionNotFound:
    """No distribution is installed."""


@dataclass(frozen=True)
class DistributionFound:
    """A distribution was found before initialization ran."""

    payload: Any


@dataclass(frozen=True)
class DistributionFoundLate:
    """A distribution turned up after default initialization already ran."""

    payload: Any


DistributionOutcome = DistributionNotFound | DistributionFound | DistributionFoundLate


class DistributionSource(Protocol):
    def when_ready(self) -> Future[DistributionOutcome]:
        """Future resolved exactly once with the distribution outcome."""
        ...


class NoDistribution:
    """Distribution source that immediately reports no distribution."""

    def when_ready(self) -> Future[DistributionOutcome]:
        future: Future[DistributionOutcome] = Future()
        future.set_result(DistributionNotFound())
        return future


# ===== INSTALLATION TIME =====


def package_install_time() -> int | None:
    """Installation time of this package in epoch milliseconds, or None if unknown."""
    try:
        dist = importlib.metadata.distribution(DISTRIBUTION_NAME)
    except importlib.metadata.PackageNotFoundError:
        logger.debug(f"{DISTRIBUTION_NAME} is not installed; no install time available")
        return None

    files = [f for f in dist.files or [] if f.name in ("METADATA", "PKG-INFO")]
    if not files:
        return None

    try:
        metadata_path = Path(str(dist.locate_file(files[0])))
        return int(metadata_path.stat().st_mtime * 1000)
    except OSError as e:
        logger.debug(f"Could not stat {DISTRIBUTION_NAME} metadata: {e}")
        return None


# ===== INITIALIZER =====


class ProfileInitializer:
    """Seeds a new profile once the distribution outcome is known.

    The work runs on whichever thread resolves the distribution future and
    always holds the profile's mutex, so it can't interleave with locking,
    unlocking or removal of the same profile.
    """

    def __init__(
        self,
        distribution: DistributionSource | None = None,
        preferences_importer: Callable[[Any], None] | None = None,
    ):
        self.distribution = distribution or NoDistribution()
        self.preferences_importer = preferences_importer

    def enqueue(self, profile: Profile, profile_dir: Path) -> Future[None]:
        """Schedule initialization of ``profile_dir``.

        Returns:
            Future completed once the initialization has run (or was skipped)
        """
        logger.info("Enqueuing profile init.")
        done: Future[None] = Future()

        def _on_ready(ready: Future[DistributionOutcome]) -> None:
            try:
                self._initialize(profile, profile_dir, ready.result())
            except Exception as e:
                logger.error(f"Profile initialization failed for '{profile.name}': {e}")
                done.set_exception(e)
                return
            done.set_result(None)

        self.distribution.when_ready().add_done_callback(_on_ready)
        return done

    def _initialize(self, profile: Profile, profile_dir: Path, outcome: DistributionOutcome) -> None:
        with profile.mutex:
            # Skip initialization if the profile directory has been removed.
            if not profile_dir.exists():
                logger.debug(f"Profile dir for '{profile.name}' is gone; skipping initialization")
                return

            store = profile.db
            payload = None
            if isinstance(outcome, DistributionFoundLate):
                logger.debug("Running late distribution task: bookmarks.")
                payload = outcome.payload
                # Called soon after startup, so existing entries are the offset.
                store.add_distribution_entries(payload, store.count_entries())
            else:
                logger.debug("Running post-distribution task: bookmarks.")
                if isinstance(outcome, DistributionFound):
                    payload = outcome.payload
                # Distribution entries first so default entry indices stay contiguous.
                offset = 0 if payload is None else store.add_distribution_entries(payload, 0)
                store.add_default_entries(offset)

            if self.preferences_importer is not None:
                logger.debug("Running post-distribution task: preferences.")
                self.preferences_importer(payload)


__all__ = [
    "BrowserStore",
    "BrowserStoreFactory",
    "DistributionFound",
    "DistributionFoundLate",
    "DistributionNotFound",
    "DistributionOutcome",
    "DistributionSource",
    "InstallTimeSource",
    "NoDistribution",
    "ProfileInitializer",
    "StubBrowserStore",
    "package_install_time",
    "stub_store_factory",
]
