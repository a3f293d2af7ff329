"""
Product models — what gets recorded in the manifest.

A product is one installed unit of distribution. It carries the
actions that were executed for it (so they can be reversed later),
the provisioning units it caused to be installed, and a free-form
string property bag.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from installkit.core.domain.version_range import VersionRange
from installkit.core.models.action import InstallAction

# Property names recorded from the install description
PROPERTY_REMOVE_DIRS = "removeDirectories"
PROPERTY_SHOW_UNINSTALL = "showUninstall"
PROPERTY_UNINSTALL_TEXT = "uninstallText"


class ProductStatus(str, Enum):
    INSTALLED = "installed"
    PARTIALLY_INSTALLED = "partially_installed"


class UnitId(BaseModel):
    """Version-qualified identifier of a provisioned unit."""

    model_config = ConfigDict(frozen=True)

    id: str
    version: str = ""

    def __str__(self) -> str:
        return f"{self.id} {self.version}".rstrip()


@dataclass(eq=False)
class InstallProduct:
    """A product installed (or being installed) at a location.

    Equality and hashing use the identifier only.
    """

    id: str
    name: str
    version: str
    location: Path
    install_location: Path
    uninstall_name: str = ""
    actions: list[InstallAction] = field(default_factory=list)
    units: list[UnitId] = field(default_factory=list)
    properties: dict[str, str] = field(default_factory=dict)
    status: ProductStatus = ProductStatus.INSTALLED

    def __post_init__(self) -> None:
        self.location = Path(self.location)
        self.install_location = Path(self.install_location)
        if not self.uninstall_name:
            self.uninstall_name = self.name

    def __eq__(self, other: object) -> bool:
        if isinstance(other, InstallProduct):
            return other.id == self.id
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return f"<InstallProduct id={self.id!r} version={self.version!r}>"

    def add_action(self, action: InstallAction) -> None:
        self.actions.append(action)

    def add_unit(self, unit: UnitId) -> None:
        if unit not in self.units:
            self.units.append(unit)

    def remove_unit(self, unit: UnitId) -> None:
        if unit in self.units:
            self.units.remove(unit)

    def get_property(self, name: str, default: str | None = None) -> str | None:
        return self.properties.get(name, default)

    def set_property(self, name: str, value: str) -> None:
        self.properties[name] = value

    @property
    def removes_directories(self) -> bool:
        """Whether uninstall reclaims directories (missing means yes)."""
        value = self.get_property(PROPERTY_REMOVE_DIRS)
        return value is None or value.lower() == "true"


class ProductRange(BaseModel):
    """A product identifier with an optional version range."""

    id: str
    version_range: str | None = None

    def includes(self, product_id: str, version: str) -> bool:
        if product_id != self.id:
            return False
        if not self.version_range:
            return True
        return VersionRange.parse(self.version_range).includes(version)

    def __str__(self) -> str:
        if not self.version_range:
            return self.id
        return f"{self.id} {VersionRange.parse(self.version_range)}"
