"""
InstallLocation — a directory created by the engine, with its
reference count.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field


class InstallLocation(BaseModel):
    """A tracked directory. A count of zero means it may be deleted."""

    path: Path
    references: int = Field(default=1, ge=0)

    def add_reference(self) -> None:
        self.references += 1

    def remove_reference(self) -> None:
        if self.references > 0:
            self.references -= 1

    @property
    def has_references(self) -> bool:
        return self.references > 0

    def is_prefix_of(self, path: Path) -> bool:
        """Whether this location is ``path`` or one of its ancestors."""
        return self.path == path or self.path in path.parents
