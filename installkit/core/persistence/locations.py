"""
Location ledger — reference-counted tracking of created directories.

Several products may be installed under a shared parent directory.
The ledger remembers which directories the engine created and how
many installations rely on each, so a directory is only deleted when
the last product that needed it goes away. Directories that existed
before the engine touched them are never tracked and never deleted.

Example:
    Product 1 installs to /opt/tools/p1, creating /opt/tools and
    /opt/tools/p1. The ledger holds::

        /opt/tools,1
        /opt/tools/p1,1

    Product 2 installs to /opt/tools/p2. /opt/tools is reused, so its
    count goes to 2 and /opt/tools/p2 is added with 1.

    Uninstalling product 1 deletes /opt/tools/p1 and drops /opt/tools
    to 1. Uninstalling product 2 deletes /opt/tools/p2 and then
    /opt/tools.

The ledger is stored as ``path,count`` lines in ``.locations`` inside
the engine's data directory.
"""

from __future__ import annotations

import logging
from pathlib import Path

from installkit.core.errors import LocationError
from installkit.core.models.location import InstallLocation
from installkit.core.persistence.cleanup import (
    DeferredCleanup,
    delete_files,
    describe_leftovers,
    remove_tree,
)

logger = logging.getLogger(__name__)

LOCATIONS_FILENAME = ".locations"


def _absolute(path: Path) -> Path:
    return Path(path).expanduser().absolute()


class LocationLedger:
    """Tracks directories created during installation.

    Args:
        data_dir: Engine data directory holding the ledger file. None
            keeps the ledger in memory only.
        cleanup: Queue for removals that must wait until the process
            exits.
    """

    def __init__(self, data_dir: Path | None = None, cleanup: DeferredCleanup | None = None):
        self._data_dir = Path(data_dir) if data_dir is not None else None
        self._cleanup = cleanup or DeferredCleanup()
        self._locations: list[InstallLocation] = []

    @property
    def data_dir(self) -> Path | None:
        return self._data_dir

    @property
    def path(self) -> Path | None:
        if self._data_dir is None:
            return None
        return self._data_dir / LOCATIONS_FILENAME

    @property
    def cleanup(self) -> DeferredCleanup:
        return self._cleanup

    @property
    def locations(self) -> list[InstallLocation]:
        return list(self._locations)

    def get(self, path: Path) -> InstallLocation | None:
        """Return the entry tracking exactly ``path``."""
        path = _absolute(path)
        for location in self._locations:
            if location.path == path:
                return location
        return None

    def references(self, path: Path) -> int:
        location = self.get(path)
        return location.references if location else 0

    def _deepest_first(self) -> list[InstallLocation]:
        self._locations.sort(key=lambda loc: len(loc.path.parts), reverse=True)
        return list(self._locations)

    # ── Create ───────────────────────────────────────────────────

    def create_path(self, path: Path) -> list[Path]:
        """Create the directories of ``path`` and take references on them.

        Every tracked prefix of ``path`` gains a reference. Every
        missing prefix is created and tracked with one reference.
        Untracked directories that already exist are left alone.

        Returns:
            The directories this call created, outermost first.

        Raises:
            LocationError: If a directory cannot be created.
        """
        path = _absolute(path)
        created: list[Path] = []

        prefixes = list(reversed(path.parents))[1:] + [path]
        for prefix in prefixes:
            location = self.get(prefix)
            if location is not None:
                location.add_reference()

            if not prefix.exists():
                try:
                    prefix.mkdir()
                except OSError as e:
                    raise LocationError(f"Cannot create directory {prefix}: {e}", cause=e) from e
                created.append(prefix)
                if location is None:
                    self._locations.append(InstallLocation(path=prefix))
            elif not prefix.is_dir():
                raise LocationError(f"Install location {prefix} exists and is not a directory")

        if created:
            logger.debug("Created install directories: %s", ", ".join(str(p) for p in created))
        return created

    # ── Delete ───────────────────────────────────────────────────

    def delete_tree(self, path: Path) -> list[Path]:
        """Release the references ``path`` holds, deleting what drops to zero.

        Entries are visited deepest first. Each tracked directory that
        is ``path`` or one of its ancestors loses a reference; one that
        reaches zero is dropped from the ledger and deleted with all of
        its contents. Entries whose directory has vanished are dropped.

        Returns:
            Paths that could not be removed.
        """
        path = _absolute(path)
        leftovers: list[Path] = []

        for location in self._deepest_first():
            if not location.path.exists():
                self._locations.remove(location)
                continue
            if not location.is_prefix_of(path):
                continue
            location.remove_reference()
            if not location.has_references:
                self._locations.remove(location)
                leftovers.extend(remove_tree(location.path))
                logger.debug("Deleted install directory %s", location.path)

        if leftovers:
            logger.warning("Some files could not be removed:\n%s", describe_leftovers(leftovers))
        return leftovers

    def release_product_location(
        self,
        product_path: Path,
        exclude: Path | None = None,
    ) -> list[Path]:
        """Reclaim a product directory during uninstall.

        Files under ``product_path`` are deleted now, except the
        ``exclude`` subtree (the running uninstaller). The product
        directory itself and any ancestor whose count drops to zero are
        queued on the deferred cleanup, since they can only go once the
        uninstaller has exited.

        Returns:
            Paths that could not be removed now.
        """
        product_path = _absolute(product_path)
        exclude = _absolute(exclude) if exclude is not None else None

        leftovers = delete_files(product_path, exclude)
        if leftovers:
            logger.warning(
                "Some product files could not be removed:\n%s", describe_leftovers(leftovers)
            )

        product_location = self.get(product_path)
        if product_location is not None:
            self._locations.remove(product_location)
            self._cleanup.add_directory(product_path)

        self.release(product_path)
        return leftovers

    def release(self, path: Path) -> None:
        """Drop one reference from ``path`` and its tracked ancestors.

        Nothing is deleted now; a directory whose count reaches zero is
        queued for removal if it ends up empty.
        """
        path = _absolute(path)
        for location in self._deepest_first():
            if not location.path.exists():
                self._locations.remove(location)
                continue
            if not location.is_prefix_of(path):
                continue
            location.remove_reference()
            if not location.has_references:
                self._locations.remove(location)
                self._cleanup.add_directory(location.path, only_if_empty=True)

    # ── Persistence ──────────────────────────────────────────────

    def load(self) -> None:
        """Load the ledger from the data directory.

        A missing file means an empty ledger. Malformed lines are
        skipped; an unreadable file is logged and treated as empty.
        """
        self._locations.clear()
        path = self.path
        if path is None or not path.is_file():
            return

        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            logger.warning("Cannot read install locations %s: %s — starting empty", path, e)
            return

        for line_num, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            location_text, sep, count_text = line.rpartition(",")
            try:
                if not sep:
                    raise ValueError("missing reference count")
                self._locations.append(
                    InstallLocation(path=Path(location_text), references=int(count_text))
                )
            except ValueError as e:
                logger.warning("Skipping corrupt install location at %s:%d: %s", path, line_num, e)

        logger.debug("Loaded %d install locations from %s", len(self._locations), path)

    def save(self) -> None:
        """Write the ledger to the data directory (no-op when in memory)."""
        path = self.path
        if path is None:
            return
        lines = [f"{loc.path},{loc.references}\n" for loc in self._locations]
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("".join(lines), encoding="utf-8")
            logger.debug("Install locations saved to %s", path)
        except OSError as e:
            logger.error("Failed to save install locations to %s: %s", path, e)
