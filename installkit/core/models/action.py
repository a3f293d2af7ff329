"""
Install actions — the unit of install/uninstall work.

An action is a named step that knows how to apply itself and how to
reverse itself. The orchestrator runs the same action instance in
install mode during installation and in uninstall mode during rollback,
upgrade replacement, or uninstallation. Anything the action needs to
reverse itself after the installing process has exited goes through
``serialize()`` into the manifest and comes back via ``deserialize()``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import IntEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from installkit.core.models.mode import InstallMode
    from installkit.core.models.product import InstallProduct

# Weight reported to progress callbacks when an action doesn't override it.
DEFAULT_PROGRESS_WEIGHT = 100

# Receives human-readable task names while an action runs.
TaskSink = Callable[[str], None]


class InstallPhase(IntEnum):
    """When an action runs relative to the others. Sorted ascending."""

    PRE_INSTALL = 0
    INSTALL = 1
    POST_INSTALL = 2


class InstallAction(ABC):
    """Base class for all install actions.

    To create a new action:
        1. Subclass InstallAction
        2. Implement run()
        3. Override serialize/deserialize if the action needs state to
           uninstall itself later
        4. Register a factory in the ActionRegistry under the action id
    """

    phase: InstallPhase = InstallPhase.INSTALL
    progress_weight: int = DEFAULT_PROGRESS_WEIGHT
    remove_on_upgrade: bool = True
    needs_restart_or_relogin: bool = False

    def __init__(self, action_id: str):
        self._id = action_id

    @property
    def id(self) -> str:
        """Registered identifier, used to re-create the action on load."""
        return self._id

    def is_supported(self, os_name: str, arch: str) -> bool:
        """Whether the action applies to the platform. Default: all."""
        return True

    @abstractmethod
    def run(
        self,
        agent: Any,
        product: InstallProduct,
        mode: InstallMode,
        task: TaskSink,
    ) -> None:
        """Apply the action (``mode.install``) or reverse it (``mode.uninstall``).

        Must not return before the effect is durable.

        Raises:
            ActionError: If the action fails.
        """

    def serialize(self) -> dict[str, Any]:
        """Action-private state to persist in the manifest."""
        return {}

    def deserialize(self, state: dict[str, Any]) -> None:
        """Restore state written by ``serialize()``."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} id={self.id!r} phase={self.phase.name}>"


def sort_by_phase(actions: list[InstallAction]) -> list[InstallAction]:
    """Stable sort by phase; actions in the same phase keep their order."""
    return sorted(actions, key=lambda action: action.phase)
