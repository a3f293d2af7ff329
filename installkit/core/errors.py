"""
Error hierarchy for the installation engine.

Every fatal condition surfaces as an ``InstallError`` subclass so the
CLI and embedding applications can turn it into a status report with
one ``except`` clause. Cancellation is not an error and never raises.
"""

from __future__ import annotations


class InstallError(Exception):
    """Base class for installation failures."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.message = message
        if cause is not None:
            self.__cause__ = cause

    @property
    def causes(self) -> list[str]:
        """Messages of the underlying cause chain, outermost first."""
        chain: list[str] = []
        current = self.__cause__ or self.__context__
        seen: set[int] = set()
        while current is not None and id(current) not in seen:
            seen.add(id(current))
            chain.append(str(current) or current.__class__.__name__)
            current = current.__cause__ or current.__context__
        return chain


class ConfigError(InstallError):
    """Raised when an install description is invalid or missing."""


class AlreadyInstalledError(InstallError):
    """The same product and version is already installed at the location."""


class ManifestError(InstallError):
    """The install manifest could not be read or written."""


class ActionError(InstallError):
    """An install action failed while running."""

    def __init__(
        self,
        message: str,
        action_id: str = "",
        cause: BaseException | None = None,
    ):
        super().__init__(message, cause)
        self.action_id = action_id


class LocationError(InstallError):
    """A tracked install location could not be created."""


class UnsupportedPlatformError(InstallError):
    """An action does not support the current platform.

    The orchestrator treats unsupported actions as skips; this exists
    for actions that want to refuse being run directly.
    """


class CycleDetectedError(InstallError):
    """The unit requirement graph contains a cycle.

    Internal to the orderer: it is caught there and turned into the
    original-order fallback.
    """
