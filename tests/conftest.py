"""
Shared test fixtures and configuration.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from installkit.core.engine.modules import InstallModule
from installkit.core.engine.orchestrator import Orchestrator
from installkit.core.engine.registry import ActionRegistry
from installkit.core.models.action import InstallAction, InstallPhase
from installkit.core.models.description import InstallDescription, UninstallMode
from installkit.core.models.plan import PlanOperation
from installkit.core.persistence.cleanup import DeferredCleanup
from installkit.core.persistence.locations import LocationLedger

ACTION_IDS = ("A", "B", "C", "D")


class RecordingAction(InstallAction):
    """Appends ``(id, mode label)`` to a shared list every time it runs."""

    def __init__(
        self,
        action_id: str,
        calls: list[tuple[str, str]],
        phase: InstallPhase = InstallPhase.INSTALL,
        *,
        remove_on_upgrade: bool = True,
        supported: bool = True,
        fail: bool = False,
        needs_restart: bool = False,
        weight: int = 10,
    ):
        super().__init__(action_id)
        self.calls = calls
        self.phase = phase
        self.remove_on_upgrade = remove_on_upgrade
        self.supported = supported
        self.fail = fail
        self.needs_restart_or_relogin = needs_restart
        self.progress_weight = weight
        self.note = ""

    def is_supported(self, os_name: str, arch: str) -> bool:
        return self.supported

    def run(self, agent: Any, product: Any, mode: Any, task: Any) -> None:
        self.calls.append((self.id, mode.describe()))
        task(f"running {self.id}")
        if self.fail and mode.install:
            raise RuntimeError(f"{self.id} exploded")

    def serialize(self) -> dict[str, Any]:
        return {
            "phase": self.phase.name,
            "remove_on_upgrade": self.remove_on_upgrade,
            "note": self.note,
        }

    def deserialize(self, state: dict[str, Any]) -> None:
        self.phase = InstallPhase[state.get("phase", "INSTALL")]
        self.remove_on_upgrade = state.get("remove_on_upgrade", True)
        self.note = state.get("note", "")


class StaticModule(InstallModule):
    """Contributes a fixed list of actions."""

    def __init__(self, actions: list[InstallAction]):
        self.actions = actions
        self.agents_seen: list[Any] = []

    @property
    def id(self) -> str:
        return "static"

    def init_agent(self, agent: Any) -> None:
        self.agents_seen.append(agent)

    def get_install_actions(self, agent: Any, install_data: dict[str, str], mode: Any) -> list[InstallAction]:
        return list(self.actions)


class FakeAgent:
    """Provisioning agent that plans additions and records applied plans."""

    def __init__(self, plan: list[PlanOperation] | None = None, fail: bool = False):
        self._plan = plan
        self.fail = fail
        self.applied: list[list[PlanOperation]] = []

    def plan(self, units, product, mode) -> list[PlanOperation]:
        if self._plan is not None:
            return list(self._plan)
        return [PlanOperation.add(unit) for unit in units]

    def provision(self, operations: list[PlanOperation]) -> None:
        if self.fail:
            raise RuntimeError("repository unreachable")
        self.applied.append(list(operations))


@pytest.fixture
def calls() -> list[tuple[str, str]]:
    return []


@pytest.fixture
def action_registry(calls) -> ActionRegistry:
    """Registry re-creating RecordingActions that share ``calls``."""
    registry = ActionRegistry()
    for action_id in ACTION_IDS:
        registry.register(action_id, lambda action_id=action_id: RecordingAction(action_id, calls))
    return registry


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def ledger(data_dir: Path) -> LocationLedger:
    return LocationLedger(data_dir, DeferredCleanup())


@pytest.fixture
def root(tmp_path: Path) -> Path:
    """Product root two levels below tmp_path, so the ledger creates both."""
    return tmp_path / "opt" / "product"


@pytest.fixture
def make_description(root: Path):
    def _make(**overrides: Any) -> InstallDescription:
        values: dict[str, Any] = {
            "id": "P",
            "name": "Product P",
            "version": "1.0",
            "root_location": root,
            "uninstall": UninstallMode(),
        }
        values.update(overrides)
        return InstallDescription(**values)

    return _make


@pytest.fixture
def make_orchestrator(action_registry: ActionRegistry, ledger: LocationLedger):
    def _make(actions: list[InstallAction], **kwargs: Any) -> Orchestrator:
        kwargs.setdefault("platform", ("linux", "x86_64"))
        return Orchestrator([StaticModule(actions)], action_registry, ledger, **kwargs)

    return _make
