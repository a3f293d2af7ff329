"""
Command action — run an external command on install and on uninstall.

Declared in install.yml::

    actions:
      - action: installkit.command
        params:
          phase: post_install
          install: ["{location}/bin/setup", "--register"]
          uninstall: ["{location}/bin/setup", "--unregister"]
          platforms: [linux, macos]

Placeholders ``{id}``, ``{version}``, ``{location}`` and
``{install_location}`` are filled from the product. The parameters are
also the action's manifest state, so the uninstall command is still
known after the installer has exited.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from typing import TYPE_CHECKING, Any

from installkit.core.errors import ActionError
from installkit.core.models.action import (
    DEFAULT_PROGRESS_WEIGHT,
    InstallAction,
    InstallPhase,
    TaskSink,
)

if TYPE_CHECKING:
    from installkit.core.models.mode import InstallMode
    from installkit.core.models.product import InstallProduct

logger = logging.getLogger(__name__)

COMMAND_ACTION_ID = "installkit.command"

_DEFAULT_TIMEOUT = 600


def _run_command(
    cmd: list[str],
    *,
    timeout: int = _DEFAULT_TIMEOUT,
    env_overrides: dict[str, str] | None = None,
    cwd: str | None = None,
) -> dict[str, Any]:
    """Run a command and capture its outcome.

    Returns:
        ``{"ok": True, "stdout": "...", "elapsed_ms": N}`` on success,
        ``{"ok": False, "error": "...", ...}`` on failure.
    """
    env = os.environ.copy()
    if env_overrides:
        for key, value in env_overrides.items():
            env[key] = os.path.expandvars(value)

    start = time.monotonic()
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
            cwd=cwd,
        )
    except subprocess.TimeoutExpired:
        return {"ok": False, "error": f"Command timed out ({timeout}s)"}
    except OSError as e:
        return {"ok": False, "error": str(e)}

    elapsed_ms = int((time.monotonic() - start) * 1000)
    if result.returncode == 0:
        return {
            "ok": True,
            "stdout": result.stdout[-2000:] if result.stdout else "",
            "elapsed_ms": elapsed_ms,
        }
    return {
        "ok": False,
        "error": f"Command failed (exit {result.returncode})",
        "stderr": result.stderr[-2000:] if result.stderr else "",
        "elapsed_ms": elapsed_ms,
    }


def _as_argv(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return shlex.split(value)
    if isinstance(value, list):
        return [str(part) for part in value]
    raise TypeError(f"command must be a string or a list, got {type(value).__name__}")


class CommandAction(InstallAction):
    """Runs configured commands for install and uninstall."""

    def __init__(self) -> None:
        super().__init__(COMMAND_ACTION_ID)
        self.install_command: list[str] = []
        self.uninstall_command: list[str] = []
        self.platforms: list[str] = []
        self.env: dict[str, str] = {}
        self.cwd: str | None = None
        self.timeout = _DEFAULT_TIMEOUT
        self.phase = InstallPhase.INSTALL
        self.progress_weight = DEFAULT_PROGRESS_WEIGHT
        self.remove_on_upgrade = True
        self.needs_restart_or_relogin = False

    def is_supported(self, os_name: str, arch: str) -> bool:
        if not self.platforms:
            return True
        return os_name in self.platforms or f"{os_name}/{arch}" in self.platforms

    def run(
        self,
        agent: Any,
        product: InstallProduct,
        mode: InstallMode,
        task: TaskSink,
    ) -> None:
        template = self.install_command if mode.install else self.uninstall_command
        if not template:
            return

        values = {
            "id": product.id,
            "version": product.version,
            "location": str(product.location),
            "install_location": str(product.install_location),
        }
        try:
            cmd = [part.format(**values) for part in template]
        except (KeyError, IndexError) as e:
            raise ActionError(f"Bad placeholder in command {template}: {e}", self.id, cause=e) from e

        cwd = str(product.location / self.cwd) if self.cwd else None
        task(" ".join(cmd))
        logger.info("Running %s command: %s", "install" if mode.install else "uninstall", cmd)

        result = _run_command(cmd, timeout=self.timeout, env_overrides=self.env, cwd=cwd)
        if not result["ok"]:
            detail = result.get("stderr", "").strip()
            message = f"{cmd[0]}: {result['error']}"
            if detail:
                message = f"{message}\n{detail}"
            raise ActionError(message, self.id)

    def serialize(self) -> dict[str, Any]:
        state: dict[str, Any] = {
            "phase": self.phase.name.lower(),
            "install": list(self.install_command),
            "uninstall": list(self.uninstall_command),
            "remove_on_upgrade": self.remove_on_upgrade,
            "weight": self.progress_weight,
        }
        if self.platforms:
            state["platforms"] = list(self.platforms)
        if self.env:
            state["env"] = dict(self.env)
        if self.cwd:
            state["cwd"] = self.cwd
        if self.timeout != _DEFAULT_TIMEOUT:
            state["timeout"] = self.timeout
        if self.needs_restart_or_relogin:
            state["needs_restart"] = True
        return state

    def deserialize(self, state: dict[str, Any]) -> None:
        self.install_command = _as_argv(state.get("install"))
        self.uninstall_command = _as_argv(state.get("uninstall"))
        self.phase = InstallPhase[str(state.get("phase", "install")).upper()]
        self.platforms = [str(p) for p in state.get("platforms", [])]
        self.env = {str(k): str(v) for k, v in state.get("env", {}).items()}
        self.cwd = state.get("cwd")
        self.timeout = int(state.get("timeout", _DEFAULT_TIMEOUT))
        self.remove_on_upgrade = bool(state.get("remove_on_upgrade", True))
        self.needs_restart_or_relogin = bool(state.get("needs_restart", False))
        weight = int(state.get("weight", DEFAULT_PROGRESS_WEIGHT))
        if weight <= 0:
            raise ValueError("weight must be positive")
        self.progress_weight = weight
