"""
File removal helpers and the deferred cleanup queue.

Removal is best-effort: files that can't be deleted (locked, permission
denied) are collected and returned instead of raising, so an uninstall
can finish and retry them once the hosting process has exited.
"""

from __future__ import annotations

import atexit
import logging
import os
import stat
from pathlib import Path

logger = logging.getLogger(__name__)

# Only this many leftover paths are listed in a log message
_MAX_REPORTED = 10


def make_writable(path: Path) -> None:
    """Clear read-only bits on ``path`` and everything below it."""
    if not path.exists():
        return
    targets = [path]
    if path.is_dir() and not path.is_symlink():
        targets.extend(path.rglob("*"))
    for target in targets:
        if target.is_symlink():
            continue
        try:
            mode = target.stat().st_mode
            if not mode & stat.S_IWUSR:
                target.chmod(mode | stat.S_IWUSR)
        except OSError as e:
            logger.debug("Cannot make %s writable: %s", target, e)


def _remove_file(path: Path, leftovers: list[Path]) -> None:
    try:
        if not path.is_symlink():
            mode = path.stat().st_mode
            if not mode & stat.S_IWUSR:
                path.chmod(mode | stat.S_IWUSR)
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.debug("Cannot remove %s: %s", path, e)
        leftovers.append(path)


def _remove_dir(path: Path, leftovers: list[Path]) -> None:
    try:
        path.rmdir()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.debug("Cannot remove directory %s: %s", path, e)
        leftovers.append(path)


def delete_files(root: Path, exclude: Path | None = None) -> list[Path]:
    """Delete everything under ``root`` except the ``exclude`` subtree.

    ``root`` itself is kept, as is every directory leading to
    ``exclude``.

    Returns:
        Paths that could not be removed.
    """
    leftovers: list[Path] = []
    if not root.is_dir():
        return leftovers

    for dirpath, dirnames, filenames in os.walk(root, topdown=False):
        current = Path(dirpath)
        if exclude is not None and (current == exclude or exclude in current.parents):
            continue
        for name in filenames:
            _remove_file(current / name, leftovers)
        for name in dirnames:
            child = current / name
            if child.is_symlink():
                _remove_file(child, leftovers)
                continue
            if exclude is not None and (child == exclude or child in exclude.parents):
                continue
            _remove_dir(child, leftovers)

    return leftovers


def remove_tree(path: Path) -> list[Path]:
    """Delete ``path`` and all of its contents.

    Returns:
        Paths that could not be removed.
    """
    if not path.exists() and not path.is_symlink():
        return []
    if path.is_symlink() or not path.is_dir():
        leftovers: list[Path] = []
        _remove_file(path, leftovers)
        return leftovers

    leftovers = delete_files(path)
    _remove_dir(path, leftovers)
    return leftovers


def describe_leftovers(leftovers: list[Path]) -> str:
    """Human-readable listing, truncated after ten entries."""
    lines = [f"  {p}" for p in leftovers[:_MAX_REPORTED]]
    if len(leftovers) > _MAX_REPORTED:
        lines.append(f"  ... and {len(leftovers) - _MAX_REPORTED} more")
    return "\n".join(lines)


class DeferredCleanup:
    """Removals to perform after the installer exits.

    Directories that are still in use (for example the running
    uninstaller on platforms that lock executables) are queued here and
    removed by ``run()``, which the CLI registers with ``atexit``.
    """

    def __init__(self) -> None:
        self._directories: list[Path] = []
        self._empty_directories: list[Path] = []
        self._registered = False

    @property
    def directories(self) -> list[Path]:
        return list(self._directories)

    @property
    def empty_directories(self) -> list[Path]:
        return list(self._empty_directories)

    @property
    def pending(self) -> bool:
        return bool(self._directories or self._empty_directories)

    def add_directory(self, path: Path, only_if_empty: bool = False) -> None:
        """Queue a directory for removal.

        Args:
            path: Directory to remove.
            only_if_empty: Remove it only if nothing is left inside.
        """
        path = Path(path)
        if only_if_empty:
            if path not in self._empty_directories:
                self._empty_directories.append(path)
            return
        make_writable(path)
        if path not in self._directories:
            self._directories.append(path)

    def register_atexit(self) -> None:
        if not self._registered:
            atexit.register(self.run)
            self._registered = True

    def run(self) -> list[Path]:
        """Perform all queued removals.

        Returns:
            Paths that still could not be removed.
        """
        leftovers: list[Path] = []

        for directory in self._directories:
            leftovers.extend(remove_tree(directory))

        # Deepest first so emptied children let their parents go too
        for directory in sorted(self._empty_directories, key=lambda p: len(p.parts), reverse=True):
            try:
                if directory.is_dir() and not any(directory.iterdir()):
                    directory.rmdir()
            except OSError as e:
                logger.debug("Cannot remove empty directory %s: %s", directory, e)

        self._directories.clear()
        self._empty_directories.clear()

        if leftovers:
            logger.warning("Some files could not be removed:\n%s", describe_leftovers(leftovers))
        return leftovers
