"""Tests for background initialization of new profiles."""

import threading
from concurrent.futures import Future

import pytest
from profilekeeper.initialization import BrowserStore
from profilekeeper.initialization import DistributionFound
from profilekeeper.initialization import DistributionFoundLate
from profilekeeper.initialization import DistributionNotFound
from profilekeeper.initialization import NoDistribution
from profilekeeper.initialization import ProfileInitializer
from profilekeeper.initialization import StubBrowserStore
from profilekeeper.initialization import package_install_time
from profilekeeper.profile import Profile
from profilekeeper.utils.files import delete


class ManualDistribution:
    """Distribution source resolved explicitly by the test."""

    def __init__(self):
        self.future = Future()

    def when_ready(self):
        return self.future


class FailingStore(StubBrowserStore):
    def add_default_entries(self, offset):
        raise RuntimeError("store unavailable")


@pytest.fixture
def profile_dir(temp_dir):
    path = temp_dir / "abcd1234.work"
    path.mkdir()
    return path


@pytest.fixture
def profile(root, profile_dir):
    return Profile("work", root, profile_dir)


def test_stub_store_satisfies_protocol():
    assert isinstance(StubBrowserStore("work"), BrowserStore)


def test_no_distribution_resolves_immediately():
    future = NoDistribution().when_ready()

    assert future.done()
    assert future.result() == DistributionNotFound()


def test_package_install_time_is_millis_or_unknown():
    result = package_install_time()

    assert result is None or (isinstance(result, int) and result > 0)


class TestProfileInitializer:
    def test_not_found_adds_defaults_only(self, profile, profile_dir):
        distribution = ManualDistribution()
        done = ProfileInitializer(distribution).enqueue(profile, profile_dir)
        assert not done.done()

        distribution.future.set_result(DistributionNotFound())

        assert done.result(timeout=5) is None
        assert profile.db.entries == [("default", 0)]

    def test_found_adds_distribution_entries_first(self, profile, profile_dir):
        distribution = ManualDistribution()
        done = ProfileInitializer(distribution).enqueue(profile, profile_dir)

        distribution.future.set_result(DistributionFound({"id": "partner"}))
        done.result(timeout=5)

        assert profile.db.entries == [("distribution", 0), ("default", 1)]

    def test_found_late_appends_after_existing_entries(self, profile, profile_dir):
        profile.db.add_default_entries(0)
        distribution = ManualDistribution()
        done = ProfileInitializer(distribution).enqueue(profile, profile_dir)

        distribution.future.set_result(DistributionFoundLate({"id": "partner"}))
        done.result(timeout=5)

        assert profile.db.entries == [("default", 0), ("distribution", 1)]

    def test_skipped_when_directory_removed(self, profile, profile_dir):
        distribution = ManualDistribution()
        done = ProfileInitializer(distribution).enqueue(profile, profile_dir)

        delete(profile_dir)
        distribution.future.set_result(DistributionNotFound())

        assert done.result(timeout=5) is None
        assert profile.db.entries == []

    def test_preferences_importer_receives_payload(self, profile, profile_dir):
        imported = []
        initializer = ProfileInitializer(NoDistribution(), preferences_importer=imported.append)

        initializer.enqueue(profile, profile_dir).result(timeout=5)

        assert imported == [None]

    def test_preferences_importer_with_distribution(self, profile, profile_dir):
        imported = []
        distribution = ManualDistribution()
        initializer = ProfileInitializer(distribution, preferences_importer=imported.append)
        done = initializer.enqueue(profile, profile_dir)

        distribution.future.set_result(DistributionFound("partner"))
        done.result(timeout=5)

        assert imported == ["partner"]

    def test_waits_for_profile_mutex(self, profile, profile_dir):
        distribution = ManualDistribution()
        done = ProfileInitializer(distribution).enqueue(profile, profile_dir)

        resolver = threading.Thread(target=distribution.future.set_result, args=(DistributionNotFound(),))
        with profile.mutex:
            resolver.start()
            resolver.join(timeout=0.2)
            assert resolver.is_alive()
            assert profile.db.entries == []

        resolver.join(timeout=5)
        done.result(timeout=5)
        assert profile.db.entries == [("default", 0)]

    def test_store_failure_is_reported_on_future(self, root, profile_dir):
        profile = Profile("work", root, profile_dir, store_factory=lambda name, path: FailingStore(name, path))

        done = ProfileInitializer().enqueue(profile, profile_dir)

        with pytest.raises(RuntimeError):
            done.result(timeout=5)


def test_new_profile_waits_for_distribution(root):
    distribution = ManualDistribution()
    profile = Profile("work", root, initializer=ProfileInitializer(distribution))

    profile.get_dir()
    assert profile.pending_initialization is not None
    assert not profile.pending_initialization.done()

    distribution.future.set_result(DistributionNotFound())
    profile.pending_initialization.result(timeout=5)
    assert profile.db.entries == [("default", 0)]
