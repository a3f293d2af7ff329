"""
InstallDescription — what to install, where, and how to uninstall it.

Loaded from install.yml by the config loader. Front-ends may also
build one directly.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from installkit.core.domain.version_range import VersionRange
from installkit.core.models.plan import Unit
from installkit.core.models.product import ProductRange

# Engine-internal directory under the product root when none is given
DEFAULT_INSTALL_SUBDIR = ".installkit"


class UninstallMode(BaseModel):
    """How the product is presented and reclaimed on uninstall."""

    remove_directories: bool = True
    show_uninstall: bool = True
    text: str | None = None


class ActionSpec(BaseModel):
    """A declarative action: a registered action id plus its parameters."""

    action: str
    params: dict[str, Any] = Field(default_factory=dict)


class InstallDescription(BaseModel):
    """Validated install description."""

    # ── Identity ─────────────────────────────────────────────────
    id: str
    name: str
    version: str
    uninstall_name: str = ""
    category: str | None = None

    # ── Locations ────────────────────────────────────────────────
    root_location: Path
    install_location: Path | None = None
    source_location: Path | None = None    # where uninstall_files are read from

    # ── Behaviour ────────────────────────────────────────────────
    patch: bool = False
    requires: list[ProductRange] = Field(default_factory=list)
    modules: list[str] = Field(default_factory=lambda: ["general"])
    actions: list[ActionSpec] = Field(default_factory=list)
    excluded_actions: list[str] = Field(default_factory=list)
    units: list[Unit] = Field(default_factory=list)

    # ── Uninstall ────────────────────────────────────────────────
    uninstall: UninstallMode | None = None
    uninstall_files: list[str] = Field(default_factory=list)
    use_registry: bool = False

    @field_validator("id", "name", "version")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @field_validator("requires", mode="before")
    @classmethod
    def _ranges_from_strings(cls, value: Any) -> Any:
        """Accept ``"product-id [1.0,2.0)"`` shorthand for ranges."""
        if not isinstance(value, list):
            return value
        ranges = []
        for item in value:
            if isinstance(item, str):
                product_id, _, version_range = item.strip().partition(" ")
                ranges.append({"id": product_id, "version_range": version_range.strip() or None})
            else:
                ranges.append(item)
        return ranges

    @field_validator("requires")
    @classmethod
    def _ranges_parse(cls, value: list[ProductRange]) -> list[ProductRange]:
        for product_range in value:
            if product_range.version_range:
                VersionRange.parse(product_range.version_range)
        return value

    @model_validator(mode="after")
    def _defaults(self) -> InstallDescription:
        if not self.uninstall_name:
            self.uninstall_name = self.name
        if self.install_location is None:
            self.install_location = self.root_location / DEFAULT_INSTALL_SUBDIR
        return self

    def uninstall_sources(self) -> list[tuple[Path, str]]:
        """Resolve ``uninstall_files`` into (source path, destination name).

        An entry ``"src:dest"`` copies ``src`` under the name ``dest``.
        """
        base = self.source_location or Path.cwd()
        result = []
        for entry in self.uninstall_files:
            source, sep, destination = entry.partition(":")
            if not sep:
                destination = Path(source).name
            result.append((base / source, destination))
        return result
