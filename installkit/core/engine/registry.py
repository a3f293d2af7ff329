"""
Action registry — maps action identifiers to factories.

The manifest stores only an action's identifier and its private state;
the registry is how a stored action becomes a live object again. It is
an ordinary value handed to the orchestrator and the manifest loader,
so separate operations (and tests) can use separate registries.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from installkit.core.models.action import InstallAction

logger = logging.getLogger(__name__)

ActionFactory = Callable[[], InstallAction]


class ActionRegistry:
    """Registry of action factories keyed by action id."""

    def __init__(self, factories: dict[str, ActionFactory] | None = None):
        self._factories: dict[str, ActionFactory] = dict(factories or {})

    def register(self, action_id: str, factory: ActionFactory) -> None:
        """Register a factory for ``action_id``.

        Args:
            action_id: Identifier stored in the manifest.
            factory: Zero-argument callable returning a fresh action.
        """
        if action_id in self._factories:
            logger.warning("Overwriting existing install action: %s", action_id)
        self._factories[action_id] = factory
        logger.debug("Registered install action: %s", action_id)

    def create(self, action_id: str) -> InstallAction | None:
        """Instantiate the action registered under ``action_id``.

        Returns:
            A new action, or None if nothing is registered for the id.
        """
        factory = self._factories.get(action_id)
        if factory is None:
            return None
        return factory()

    def __contains__(self, action_id: object) -> bool:
        return action_id in self._factories

    def ids(self) -> list[str]:
        return list(self._factories.keys())
