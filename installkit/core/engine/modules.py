"""
Install modules — pluggable contributors of install actions.

A module declares which optional interfaces it implements through an
explicit capability set; the orchestrator asks ``supports()`` rather
than inspecting the module's type. Only the ``ACTIONS`` capability is
consumed by the engine; the others are for front-ends.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum
from typing import Any

from installkit.core.engine.registry import ActionRegistry
from installkit.core.errors import ConfigError
from installkit.core.models.action import InstallAction
from installkit.core.models.description import InstallDescription
from installkit.core.models.mode import InstallMode

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    ACTIONS = "actions"
    CONSOLE = "console"
    WIZARD_PAGES = "wizard_pages"


class InstallModule(ABC):
    """Base class for modules contributing install actions."""

    capabilities: frozenset[Capability] = frozenset({Capability.ACTIONS})

    @property
    @abstractmethod
    def id(self) -> str:
        """Module identifier, as listed in the install description."""

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def init_agent(self, agent: Any) -> None:
        """Hook to prepare the provisioning agent before installing."""

    @abstractmethod
    def get_install_actions(
        self,
        agent: Any,
        install_data: dict[str, str],
        mode: InstallMode,
    ) -> list[InstallAction]:
        """Candidate actions for this operation, unsorted.

        Args:
            agent: The provisioning agent (may be None).
            install_data: Choices collected by the front-end.
            mode: The install mode; modules may vary actions on
                ``mode.upgrade`` or ``mode.update``.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} id={self.id!r}>"


class GeneralModule(InstallModule):
    """Turns the description's declarative ``actions`` into live actions.

    When a provisioning agent is present, a unit provisioning action is
    contributed as well.
    """

    MODULE_ID = "general"

    def __init__(self, description: InstallDescription, registry: ActionRegistry):
        self._description = description
        self._registry = registry

    @property
    def id(self) -> str:
        return self.MODULE_ID

    def get_install_actions(
        self,
        agent: Any,
        install_data: dict[str, str],
        mode: InstallMode,
    ) -> list[InstallAction]:
        from installkit.core.actions.provision import PROVISION_ACTION_ID

        actions: list[InstallAction] = []
        for spec in self._description.actions:
            action = self._registry.create(spec.action)
            if action is None:
                raise ConfigError(f"Unknown install action '{spec.action}'")
            try:
                action.deserialize(spec.params)
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigError(f"Invalid parameters for action '{spec.action}': {e}", cause=e) from e
            actions.append(action)

        if agent is not None and PROVISION_ACTION_ID in self._registry:
            provision = self._registry.create(PROVISION_ACTION_ID)
            if provision is not None:
                provision.deserialize(
                    {"units": [unit.model_dump(mode="json") for unit in self._description.units]}
                )
                actions.append(provision)

        return actions


ModuleFactory = Callable[[InstallDescription, ActionRegistry], InstallModule]

_MODULE_FACTORIES: dict[str, ModuleFactory] = {
    GeneralModule.MODULE_ID: GeneralModule,
}


def build_modules(
    description: InstallDescription,
    registry: ActionRegistry,
    factories: dict[str, ModuleFactory] | None = None,
) -> list[InstallModule]:
    """Instantiate the modules named in the description, in order.

    Raises:
        ConfigError: If a module id is unknown.
    """
    available = factories if factories is not None else _MODULE_FACTORIES
    modules = []
    for module_id in description.modules:
        factory = available.get(module_id)
        if factory is None:
            raise ConfigError(f"Unknown install module '{module_id}'")
        modules.append(factory(description, registry))
    return modules
