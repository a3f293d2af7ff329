"""
InstallMode — what kind of operation is running.

Install vs uninstall is fixed at construction. The derived flags are
set by producing a new mode (the model is frozen), so a mode handed to
an action can never change under it.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class InstallMode(BaseModel):
    """Flags passed to every ``InstallAction.run`` call."""

    model_config = ConfigDict(frozen=True)

    install: bool = True
    upgrade: bool = False          # installing over a different version
    update: bool = False           # re-installing the same version
    patch: bool = False            # patching a selected existing product
    root_uninstall: bool = False   # removing the last remaining product

    @property
    def uninstall(self) -> bool:
        return not self.install

    @classmethod
    def for_install(cls, patch: bool = False) -> InstallMode:
        return cls(install=True, patch=patch)

    @classmethod
    def for_uninstall(cls, root_uninstall: bool = False) -> InstallMode:
        return cls(install=False, root_uninstall=root_uninstall)

    def as_upgrade(self) -> InstallMode:
        """Install mode replacing a different existing version."""
        if self.uninstall:
            return self
        return self.model_copy(update={"upgrade": True, "update": False})

    def as_update(self) -> InstallMode:
        """Install mode re-installing into an existing product."""
        if self.uninstall:
            return self
        return self.model_copy(update={"update": True, "upgrade": False})

    def as_root_uninstall(self, root_uninstall: bool = True) -> InstallMode:
        if self.install:
            return self
        return self.model_copy(update={"root_uninstall": root_uninstall})

    def as_rollback(self) -> InstallMode:
        """Uninstall mode that keeps the upgrade/update/patch flags."""
        return self.model_copy(update={"install": False})

    def describe(self) -> str:
        """Short label for logs."""
        if self.uninstall:
            return "root-uninstall" if self.root_uninstall else "uninstall"
        if self.patch:
            return "patch"
        if self.update:
            return "update"
        if self.upgrade:
            return "upgrade"
        return "install"
