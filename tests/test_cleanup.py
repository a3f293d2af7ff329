"""
Tests for file removal helpers and the deferred cleanup queue.
"""

import stat
from pathlib import Path

from installkit.core.persistence.cleanup import (
    DeferredCleanup,
    delete_files,
    describe_leftovers,
    remove_tree,
)


def _tree(root: Path) -> None:
    (root / "a" / "b").mkdir(parents=True)
    (root / "a" / "b" / "f.txt").write_text("x")
    (root / "keep" / "inner").mkdir(parents=True)
    (root / "keep" / "inner" / "g.txt").write_text("y")
    (root / "top.txt").write_text("z")


class TestDeleteFiles:
    def test_keeps_root_and_excluded_subtree(self, tmp_path: Path):
        _tree(tmp_path)

        leftovers = delete_files(tmp_path, exclude=tmp_path / "keep" / "inner")

        assert leftovers == []
        assert tmp_path.is_dir()
        assert not (tmp_path / "a").exists()
        assert not (tmp_path / "top.txt").exists()
        assert (tmp_path / "keep" / "inner" / "g.txt").is_file()

    def test_read_only_files_are_removed(self, tmp_path: Path):
        target = tmp_path / "ro.txt"
        target.write_text("x")
        target.chmod(stat.S_IRUSR)

        assert delete_files(tmp_path) == []
        assert not target.exists()

    def test_missing_root(self, tmp_path: Path):
        assert delete_files(tmp_path / "nope") == []


class TestRemoveTree:
    def test_removes_everything(self, tmp_path: Path):
        root = tmp_path / "root"
        root.mkdir()
        _tree(root)

        assert remove_tree(root) == []
        assert not root.exists()

    def test_single_file(self, tmp_path: Path):
        target = tmp_path / "f"
        target.write_text("x")
        assert remove_tree(target) == []
        assert not target.exists()


class TestDescribeLeftovers:
    def test_truncates_after_ten(self):
        text = describe_leftovers([Path(f"/x/{i}") for i in range(13)])
        lines = text.splitlines()
        assert len(lines) == 11
        assert lines[-1].strip() == "... and 3 more"


class TestDeferredCleanup:
    def test_run_removes_queued_directories(self, tmp_path: Path):
        full = tmp_path / "full"
        (full / "sub").mkdir(parents=True)
        (full / "sub" / "f").write_text("x")
        parent = tmp_path / "parent"
        (parent / "child").mkdir(parents=True)

        cleanup = DeferredCleanup()
        cleanup.add_directory(full)
        cleanup.add_directory(parent, only_if_empty=True)
        cleanup.add_directory(parent / "child", only_if_empty=True)
        assert cleanup.pending

        assert cleanup.run() == []
        assert not full.exists()
        assert not parent.exists()
        assert not cleanup.pending

    def test_non_empty_directory_is_kept(self, tmp_path: Path):
        (tmp_path / "busy").mkdir()
        (tmp_path / "busy" / "f").write_text("x")

        cleanup = DeferredCleanup()
        cleanup.add_directory(tmp_path / "busy", only_if_empty=True)
        cleanup.run()

        assert (tmp_path / "busy" / "f").is_file()

    def test_register_atexit_once(self, monkeypatch):
        registered: list = []
        monkeypatch.setattr("atexit.register", registered.append)

        cleanup = DeferredCleanup()
        cleanup.register_atexit()
        cleanup.register_atexit()

        assert registered == [cleanup.run]
