"""
OperationResult — the status an install or uninstall produces.

The orchestrator reports one of three outcomes: ok, cancelled, or
failed with a message and its cause chain. The CLI turns this into an
exit code and, optionally, a JSON status file.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from installkit.core.errors import InstallError


def now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class OperationResult(BaseModel):
    """Outcome of one orchestrated operation."""

    operation: Literal["install", "uninstall"] = "install"
    status: Literal["ok", "cancelled", "failed"] = "ok"
    product_id: str = ""
    mode: str = ""

    started_at: str = Field(default_factory=now_iso)
    ended_at: str = Field(default_factory=now_iso)
    duration_ms: int = 0

    message: str = ""
    causes: list[str] = Field(default_factory=list)
    actions_run: list[str] = Field(default_factory=list)
    leftovers: list[str] = Field(default_factory=list)
    needs_restart: bool = False

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def cancelled(self) -> bool:
        return self.status == "cancelled"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def exit_code(self) -> int:
        if self.ok:
            return 0
        if self.cancelled:
            return 2
        return 1

    @classmethod
    def failure(cls, error: BaseException, **kwargs: Any) -> OperationResult:
        """Build a failed result from an exception and its cause chain."""
        if isinstance(error, InstallError):
            message, causes = error.message, error.causes
        else:
            message, causes = f"{error.__class__.__name__}: {error}", []
        return cls(status="failed", message=message, causes=causes, **kwargs)
