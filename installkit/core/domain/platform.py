"""
Domain — Current platform identification.

Actions declare platform support over ``(os, arch)`` pairs using the
names below, independent of what ``sys.platform`` reports.
"""

from __future__ import annotations

import platform
import sys

OS_LINUX = "linux"
OS_WINDOWS = "windows"
OS_MACOS = "macos"

_ARCH_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "i386": "x86",
    "i686": "x86",
    "arm64": "aarch64",
}


def current_os() -> str:
    """Normalized operating system name."""
    if sys.platform.startswith("win"):
        return OS_WINDOWS
    if sys.platform == "darwin":
        return OS_MACOS
    return OS_LINUX


def current_arch() -> str:
    """Normalized machine architecture."""
    machine = platform.machine().lower()
    return _ARCH_ALIASES.get(machine, machine)


def current_platform() -> tuple[str, str]:
    """``(os, arch)`` for the running interpreter."""
    return current_os(), current_arch()
