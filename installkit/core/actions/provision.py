"""
Provision action — hand the product's units to the provisioning agent.

On install the agent computes a plan for the requested units, the plan
is ordered so every unit follows the units it requires, and the agent
applies it. The units that were added are recorded on the product. On
uninstall the agent is asked to remove exactly those units.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import ValidationError

from installkit.core.engine.orderer import order_plan
from installkit.core.errors import ActionError
from installkit.core.models.action import InstallAction, InstallPhase, TaskSink
from installkit.core.models.plan import PlanOperation, Unit

if TYPE_CHECKING:
    from installkit.core.models.mode import InstallMode
    from installkit.core.models.product import InstallProduct

logger = logging.getLogger(__name__)

PROVISION_ACTION_ID = "installkit.provision"


class ProvisioningAgent(Protocol):
    """What the engine needs from a provisioning agent."""

    def plan(
        self,
        units: list[Unit],
        product: InstallProduct,
        mode: InstallMode,
    ) -> list[PlanOperation]:
        """Change set that brings ``units`` into the installation."""
        ...

    def provision(self, operations: list[PlanOperation]) -> None:
        """Apply the operations in the given order."""
        ...


class ProvisionUnitsAction(InstallAction):
    """Installs and removes the product's units through the agent."""

    phase = InstallPhase.INSTALL
    progress_weight = 1000
    # The agent reconciles old units against the new plan itself
    remove_on_upgrade = False

    def __init__(self) -> None:
        super().__init__(PROVISION_ACTION_ID)
        self.units: list[Unit] = []

    def run(
        self,
        agent: Any,
        product: InstallProduct,
        mode: InstallMode,
        task: TaskSink,
    ) -> None:
        if agent is None:
            raise ActionError("No provisioning agent available", self.id)
        if mode.install:
            self._install(agent, product, mode, task)
        else:
            self._uninstall(agent, product, task)

    def _install(
        self,
        agent: ProvisioningAgent,
        product: InstallProduct,
        mode: InstallMode,
        task: TaskSink,
    ) -> None:
        task(f"Computing provisioning plan for {product.name}")
        try:
            operations = order_plan(agent.plan(list(self.units), product, mode))
        except ActionError:
            raise
        except Exception as e:
            raise ActionError(f"Provisioning plan failed: {e}", self.id, cause=e) from e

        if not operations:
            logger.info("Provisioning plan for %s is empty", product.id)
            return

        task(f"Provisioning {len(operations)} units")
        logger.debug("Provisioning plan: %s", ", ".join(str(op) for op in operations))
        self._apply(agent, operations)

        for operation in operations:
            if operation.current is not None:
                product.remove_unit(operation.current.key)
            if operation.target is not None:
                product.add_unit(operation.target.key)

    def _uninstall(self, agent: ProvisioningAgent, product: InstallProduct, task: TaskSink) -> None:
        if not product.units:
            return
        operations = [
            PlanOperation.remove(Unit(id=unit.id, version=unit.version))
            for unit in product.units
        ]
        task(f"Removing {len(operations)} units")
        self._apply(agent, operations)
        for unit in list(product.units):
            product.remove_unit(unit)

    def _apply(self, agent: ProvisioningAgent, operations: list[PlanOperation]) -> None:
        try:
            agent.provision(operations)
        except ActionError:
            raise
        except Exception as e:
            raise ActionError(f"Provisioning failed: {e}", self.id, cause=e) from e

    def serialize(self) -> dict[str, Any]:
        return {"units": [unit.model_dump(mode="json") for unit in self.units]}

    def deserialize(self, state: dict[str, Any]) -> None:
        try:
            self.units = [Unit.model_validate(item) for item in state.get("units", [])]
        except ValidationError as e:
            raise ValueError(f"invalid units: {e}") from e
