"""
Tests for the location ledger — reference counting of created directories.
"""

from pathlib import Path

from installkit.core.persistence.cleanup import DeferredCleanup
from installkit.core.persistence.locations import LOCATIONS_FILENAME, LocationLedger


class TestCreatePath:
    """Creating directories and taking references."""

    def test_creates_missing_directories(self, tmp_path: Path):
        ledger = LocationLedger()
        target = tmp_path / "tools" / "p1"

        created = ledger.create_path(target)

        assert target.is_dir()
        assert created == [tmp_path / "tools", target]
        assert ledger.references(tmp_path / "tools") == 1
        assert ledger.references(target) == 1

    def test_preexisting_directories_are_not_tracked(self, tmp_path: Path):
        ledger = LocationLedger()
        ledger.create_path(tmp_path / "p1")

        assert ledger.get(tmp_path) is None

    def test_shared_prefix_gains_a_reference(self, tmp_path: Path):
        ledger = LocationLedger()
        ledger.create_path(tmp_path / "tools" / "p1")
        ledger.create_path(tmp_path / "tools" / "p2")

        assert ledger.references(tmp_path / "tools") == 2
        assert ledger.references(tmp_path / "tools" / "p2") == 1

    def test_same_path_twice_counts_twice(self, tmp_path: Path):
        ledger = LocationLedger()
        ledger.create_path(tmp_path / "p1")
        created = ledger.create_path(tmp_path / "p1")

        assert created == []
        assert ledger.references(tmp_path / "p1") == 2

    def test_file_in_the_way_fails(self, tmp_path: Path):
        import pytest

        from installkit.core.errors import LocationError

        (tmp_path / "blocker").write_text("x")
        ledger = LocationLedger()
        with pytest.raises(LocationError):
            ledger.create_path(tmp_path / "blocker" / "p1")


class TestDeleteTree:
    """Releasing references and deleting at zero."""

    def test_shared_parent_survives_first_delete(self, tmp_path: Path):
        tools = tmp_path / "tools"
        ledger = LocationLedger()
        ledger.create_path(tools / "p1")
        ledger.create_path(tools / "p2")
        (tools / "p1" / "file.txt").write_text("x")

        leftovers = ledger.delete_tree(tools / "p1")

        assert leftovers == []
        assert not (tools / "p1").exists()
        assert (tools / "p2").is_dir()
        assert ledger.references(tools) == 1

    def test_last_delete_removes_parent(self, tmp_path: Path):
        tools = tmp_path / "tools"
        ledger = LocationLedger()
        ledger.create_path(tools / "p1")
        ledger.create_path(tools / "p2")

        ledger.delete_tree(tools / "p1")
        ledger.delete_tree(tools / "p2")

        assert not tools.exists()
        assert tmp_path.is_dir()
        assert ledger.locations == []

    def test_untracked_path_leaves_everything(self, tmp_path: Path):
        ledger = LocationLedger()
        ledger.create_path(tmp_path / "p1")

        ledger.delete_tree(tmp_path / "other")

        assert (tmp_path / "p1").is_dir()
        assert ledger.references(tmp_path / "p1") == 1

    def test_vanished_entries_are_dropped(self, tmp_path: Path):
        ledger = LocationLedger()
        ledger.create_path(tmp_path / "p1")
        ledger.create_path(tmp_path / "p2")
        (tmp_path / "p2").rmdir()

        ledger.delete_tree(tmp_path / "p1")

        assert ledger.locations == []

    def test_reference_counts_match_creators(self, tmp_path: Path):
        """A directory goes exactly when its last creator releases it."""
        tools = tmp_path / "tools"
        ledger = LocationLedger()
        paths = [tools / "a", tools / "b", tools / "c"]
        for path in paths:
            ledger.create_path(path)

        for remaining, path in zip((2, 1), paths[:2]):
            ledger.delete_tree(path)
            assert tools.is_dir()
            assert ledger.references(tools) == remaining

        ledger.delete_tree(paths[2])
        assert not tools.exists()


class TestReleaseProductLocation:
    """Reclaiming a product directory during uninstall."""

    def test_files_go_now_directories_later(self, tmp_path: Path):
        cleanup = DeferredCleanup()
        ledger = LocationLedger(cleanup=cleanup)
        product = tmp_path / "tools" / "p1"
        ledger.create_path(product)
        (product / "bin").mkdir()
        (product / "bin" / "tool").write_text("x")
        (product / "uninstall").mkdir()
        (product / "uninstall" / "remove.sh").write_text("x")

        ledger.release_product_location(product, exclude=product / "uninstall")

        assert not (product / "bin").exists()
        assert (product / "uninstall" / "remove.sh").is_file()
        assert ledger.locations == []
        assert product in cleanup.directories
        assert tmp_path / "tools" in cleanup.empty_directories

        cleanup.run()
        assert not (tmp_path / "tools").exists()

    def test_release_only_drops_references(self, tmp_path: Path):
        cleanup = DeferredCleanup()
        ledger = LocationLedger(cleanup=cleanup)
        ledger.create_path(tmp_path / "p1")
        ledger.create_path(tmp_path / "p1")

        ledger.release(tmp_path / "p1")

        assert ledger.references(tmp_path / "p1") == 1
        assert not cleanup.pending


class TestLedgerFile:
    """Persistence as ``path,count`` lines."""

    def test_save_and_load(self, tmp_path: Path):
        data_dir = tmp_path / "data"
        ledger = LocationLedger(data_dir)
        ledger.create_path(tmp_path / "tools" / "p1")
        ledger.create_path(tmp_path / "tools" / "p2")
        ledger.save()

        lines = (data_dir / LOCATIONS_FILENAME).read_text().splitlines()
        assert f"{tmp_path / 'tools'},2" in lines

        reloaded = LocationLedger(data_dir)
        reloaded.load()
        assert reloaded.references(tmp_path / "tools") == 2
        assert reloaded.references(tmp_path / "tools" / "p1") == 1

    def test_paths_with_commas(self, tmp_path: Path):
        data_dir = tmp_path / "data"
        ledger = LocationLedger(data_dir)
        ledger.create_path(tmp_path / "a,b")
        ledger.save()

        reloaded = LocationLedger(data_dir)
        reloaded.load()
        assert reloaded.references(tmp_path / "a,b") == 1

    def test_corrupt_lines_are_skipped(self, tmp_path: Path):
        data_dir = tmp_path / "data"
        data_dir.mkdir()
        (data_dir / LOCATIONS_FILENAME).write_text(f"{tmp_path / 'ok'},3\ngarbage\n{tmp_path / 'bad'},x\n")

        ledger = LocationLedger(data_dir)
        ledger.load()

        assert [loc.path for loc in ledger.locations] == [tmp_path / "ok"]
        assert ledger.references(tmp_path / "ok") == 3

    def test_missing_file_is_empty(self, tmp_path: Path):
        ledger = LocationLedger(tmp_path / "nowhere")
        ledger.load()
        assert ledger.locations == []

    def test_in_memory_save_is_noop(self):
        ledger = LocationLedger()
        ledger.save()
        assert ledger.path is None
