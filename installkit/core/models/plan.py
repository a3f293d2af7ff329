"""
Provisioning plan models — units and the operations over them.

A plan is the change set computed by the provisioning agent: each
operation moves one unit from ``current`` (installed, or None) to
``target`` (to be installed, or None). Additions and updates have a
target; removals don't.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from installkit.core.domain.version_range import VersionRange
from installkit.core.models.product import UnitId


class Requirement(BaseModel):
    """A unit's dependency on another unit, optionally version-bounded."""

    model_config = ConfigDict(frozen=True)

    unit_id: str
    version_range: str | None = None

    def matches(self, unit: Unit) -> bool:
        if unit.id != self.unit_id:
            return False
        if not self.version_range:
            return True
        return VersionRange.parse(self.version_range).includes(unit.version)


class Unit(BaseModel):
    """An installable component known to the provisioning agent."""

    model_config = ConfigDict(frozen=True)

    id: str
    version: str = ""
    requirements: tuple[Requirement, ...] = Field(default_factory=tuple)

    @property
    def key(self) -> UnitId:
        return UnitId(id=self.id, version=self.version)


class PlanOperation(BaseModel):
    """One change in a provisioning plan."""

    model_config = ConfigDict(frozen=True)

    current: Unit | None = None
    target: Unit | None = None

    @model_validator(mode="after")
    def _has_a_unit(self) -> PlanOperation:
        if self.current is None and self.target is None:
            raise ValueError("A plan operation needs a current or a target unit")
        return self

    @classmethod
    def add(cls, unit: Unit) -> PlanOperation:
        return cls(target=unit)

    @classmethod
    def remove(cls, unit: Unit) -> PlanOperation:
        return cls(current=unit)

    @classmethod
    def replace(cls, current: Unit, target: Unit) -> PlanOperation:
        return cls(current=current, target=target)

    @property
    def is_removal(self) -> bool:
        return self.target is None

    @property
    def is_addition(self) -> bool:
        return self.current is None and self.target is not None

    @property
    def is_update(self) -> bool:
        return self.current is not None and self.target is not None

    def __str__(self) -> str:
        if self.is_removal:
            return f"- {self.current.key}"
        if self.is_addition:
            return f"+ {self.target.key}"
        return f"~ {self.current.key} -> {self.target.key}"
