"""
Built-in install actions.

    from installkit.core.actions import default_action_registry

    registry = default_action_registry()
"""

from installkit.core.actions.command import COMMAND_ACTION_ID, CommandAction
from installkit.core.actions.provision import (
    PROVISION_ACTION_ID,
    ProvisioningAgent,
    ProvisionUnitsAction,
)
from installkit.core.engine.registry import ActionRegistry


def default_action_registry() -> ActionRegistry:
    """A fresh registry holding the built-in actions."""
    return ActionRegistry(
        {
            COMMAND_ACTION_ID: CommandAction,
            PROVISION_ACTION_ID: ProvisionUnitsAction,
        }
    )


__all__ = [
    "COMMAND_ACTION_ID",
    "CommandAction",
    "PROVISION_ACTION_ID",
    "ProvisioningAgent",
    "ProvisionUnitsAction",
    "default_action_registry",
]
