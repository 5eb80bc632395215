"""Tests for recursive delete."""

from pathlib import Path

from profilekeeper.utils.files import delete


class TestDelete:
    def test_deletes_file(self, temp_dir):
        target = temp_dir / ".active_lock"
        target.touch()

        assert delete(target) is True
        assert not target.exists()

    def test_deletes_tree(self, temp_dir):
        tree = temp_dir / "abcd1234.default"
        (tree / "datareporting").mkdir(parents=True)
        (tree / "datareporting" / "state.json").write_text("{}", encoding="utf-8")
        (tree / "times.json").write_text("{}", encoding="utf-8")

        assert delete(tree) is True
        assert not tree.exists()

    def test_deletes_empty_dir(self, temp_dir):
        empty = temp_dir / "empty"
        empty.mkdir()

        assert delete(empty) is True
        assert not empty.exists()

    def test_missing_path_reports_failure(self, temp_dir):
        assert delete(temp_dir / "nope") is False

    def test_child_vanishing_during_walk_is_tolerated(self, temp_dir, monkeypatch):
        tree = temp_dir / "tree"
        tree.mkdir()
        (tree / "real.txt").write_text("x", encoding="utf-8")

        original_iterdir = Path.iterdir

        def iterdir_with_ghost(self):
            yield from original_iterdir(self)
            yield self / "vanished.txt"

        monkeypatch.setattr(Path, "iterdir", iterdir_with_ghost)

        assert delete(tree) is True
        assert not tree.exists()

    def test_symlink_target_is_left_alone(self, temp_dir):
        target = temp_dir / "target"
        target.mkdir()
        (target / "keep.txt").write_text("x", encoding="utf-8")
        link = temp_dir / "link"
        link.symlink_to(target, target_is_directory=True)

        assert delete(link) is True
        assert not link.exists()
        assert (target / "keep.txt").exists()
