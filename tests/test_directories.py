"""Tests for resolving profile names to directories through the registry."""

import json
import re
from textwrap import dedent

import pytest
from profilekeeper import directories
from profilekeeper.directories import create_profile_dir
from profilekeeper.directories import find_default_profile_name
from profilekeeper.directories import find_orphaned_dirs
from profilekeeper.directories import find_profile_dir
from profilekeeper.directories import get_root_directory
from profilekeeper.directories import list_profiles
from profilekeeper.directories import load_registry
from profilekeeper.directories import salt_profile_name
from profilekeeper.errors import NoRootDirectoryError
from profilekeeper.errors import NoSuchProfileError
from profilekeeper.registry import REGISTRY_FILENAME
from profilekeeper.registry import Registry
from profilekeeper.registry import RegistrySection


def default_sections(registry):
    return [s.name for s in registry.profile_sections() if s.get("Default") == "1"]


@pytest.fixture
def registry(root):
    root.mkdir(parents=True, exist_ok=True)
    return load_registry(root)


class TestSalting:
    def test_salted_name_shape(self):
        assert re.fullmatch(r"[a-z0-9]{8}\.work", salt_profile_name("work"))

    def test_salts_differ(self):
        assert len({salt_profile_name("default") for _ in range(20)}) > 1


class TestCreateProfileDir:
    def test_first_profile_is_default(self, registry, root):
        profile_dir = create_profile_dir(registry, "default", clock=lambda: 1234)

        assert profile_dir.is_dir()
        assert profile_dir.parent == root

        reloaded = Registry.load(root)
        section = reloaded.section("Profile0")
        assert section.properties == {
            "Name": "default",
            "IsRelative": "1",
            "Path": profile_dir.name,
            "Default": "1",
        }
        assert reloaded.section("General").get("StartWithLastProfile") == "1"

    def test_later_profiles_are_not_default(self, registry, root):
        create_profile_dir(registry, "default")
        create_profile_dir(registry, "work")
        create_profile_dir(registry, "play")

        reloaded = Registry.load(root)
        assert [s.get("Name") for s in reloaded.profile_sections()] == ["default", "work", "play"]
        assert default_sections(reloaded) == ["Profile0"]

    def test_existing_default_marker_is_respected(self, root):
        root.mkdir()
        (root / REGISTRY_FILENAME).write_text("[Profile0]\nName=old\nPath=/elsewhere\nDefault=1\n", encoding="utf-8")

        create_profile_dir(load_registry(root), "new")

        assert default_sections(Registry.load(root)) == ["Profile0"]

    def test_takes_lowest_free_ordinal(self, registry, root):
        registry.add_section(RegistrySection("Profile0", {"Name": "a", "Path": "a", "IsRelative": "1"}))
        registry.add_section(RegistrySection("Profile2", {"Name": "c", "Path": "c", "IsRelative": "1"}))

        create_profile_dir(registry, "b")

        assert Registry.load(root).section("Profile1").get("Name") == "b"

    def test_writes_creation_time(self, registry):
        profile_dir = create_profile_dir(registry, "default", clock=lambda: 1_500_000_000_000)

        with open(profile_dir / "times.json", encoding="utf-8") as f:
            assert json.load(f) == {"created": 1_500_000_000_000}

    def test_on_created_hook_receives_directory(self, registry):
        seen = []

        profile_dir = create_profile_dir(registry, "default", on_created=seen.append)

        assert seen == [profile_dir]

    def test_retries_salt_on_collision(self, registry, root, monkeypatch):
        (root / "aaaaaaaa.work").mkdir()
        candidates = iter(["aaaaaaaa.work", "aaaaaaaa.work", "bbbbbbbb.work"])
        monkeypatch.setattr(directories, "salt_profile_name", lambda name: next(candidates))

        profile_dir = create_profile_dir(registry, "work")

        assert profile_dir == root / "bbbbbbbb.work"

    def test_preserves_unknown_sections(self, root):
        root.mkdir()
        (root / REGISTRY_FILENAME).write_text("[InstallXYZ]\nLocked=1\n", encoding="utf-8")

        create_profile_dir(load_registry(root), "default")

        assert Registry.load(root).section("InstallXYZ").get("Locked") == "1"


class TestFindProfileDir:
    def test_relative_path_resolves_against_root(self, registry, root):
        profile_dir = create_profile_dir(registry, "work")

        assert find_profile_dir(Registry.load(root), "work") == profile_dir

    def test_absolute_path_is_used_as_is(self, root, temp_dir):
        root.mkdir()
        elsewhere = temp_dir / "elsewhere"
        (root / REGISTRY_FILENAME).write_text(
            f"[Profile0]\nName=work\nIsRelative=0\nPath={elsewhere}\n", encoding="utf-8"
        )

        assert find_profile_dir(Registry.load(root), "work") == elsewhere

    def test_unknown_name(self, registry):
        with pytest.raises(NoSuchProfileError):
            find_profile_dir(registry, "nobody")

    def test_entry_without_path(self, root):
        root.mkdir()
        (root / REGISTRY_FILENAME).write_text("[Profile0]\nName=work\n", encoding="utf-8")

        with pytest.raises(NoSuchProfileError):
            find_profile_dir(Registry.load(root), "work")


class TestRegistryQueries:
    def test_default_profile_name(self, root):
        root.mkdir()
        (root / REGISTRY_FILENAME).write_text(
            dedent(
                """
                [Profile0]
                Name=first
                Path=a
                [Profile1]
                Name=second
                Path=b
                Default=1
                """
            ),
            encoding="utf-8",
        )

        assert find_default_profile_name(Registry.load(root)) == "second"

    def test_no_default_profile(self, registry):
        assert find_default_profile_name(registry) is None

    def test_list_profiles(self, registry):
        first = create_profile_dir(registry, "default")
        second = create_profile_dir(registry, "work")

        entries = list_profiles(registry)

        assert [(e.section, e.name, e.path, e.is_default) for e in entries] == [
            ("Profile0", "default", first, True),
            ("Profile1", "work", second, False),
        ]

    def test_orphaned_directories_are_reported_not_removed(self, registry, root):
        create_profile_dir(registry, "default")
        stray = root / "zzzzzzzz.crashed"
        stray.mkdir()

        assert find_orphaned_dirs(registry) == [stray]
        assert stray.is_dir()


class TestRootAndRecovery:
    def test_root_is_created(self, root):
        assert get_root_directory(root) == root
        assert root.is_dir()

    def test_root_that_is_a_file(self, temp_dir):
        blocker = temp_dir / "blocker"
        blocker.write_text("x", encoding="utf-8")

        with pytest.raises(NoRootDirectoryError):
            get_root_directory(blocker)

    def test_corrupt_registry_is_moved_aside(self, root):
        root.mkdir()
        (root / REGISTRY_FILENAME).write_text("garbage without sections\n", encoding="utf-8")

        registry = load_registry(root)

        assert registry.sections == []
        assert not (root / REGISTRY_FILENAME).exists()
        assert (root / "profiles.ini.corrupt").read_text(encoding="utf-8") == "garbage without sections\n"


def test_create_keeps_entries_next_to_bare_flag(root):
    root.mkdir()
    (root / REGISTRY_FILENAME).write_text(
        "[General]\nStartWithLastProfile=1\nSomeFlagWithoutValue\n\n"
        "[Profile0]\nName=default\nIsRelative=1\nPath=abcd1234.default\nDefault=1\n",
        encoding="utf-8",
    )

    create_profile_dir(load_registry(root), "work")

    registry = Registry.load(root)
    assert [s.get("Name") for s in registry.profile_sections()] == ["default", "work"]
    assert registry.section("Profile0").get("Default") == "1"
    assert "SomeFlagWithoutValue" in registry.section("General")
    assert not (root / "profiles.ini.corrupt").exists()
