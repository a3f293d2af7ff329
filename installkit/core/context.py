"""
Engine context — where the engine keeps its own data.

The data directory holds the location ledger and the installed-product
registry. It is resolved once at startup by the CLI:

    - CLI:    main.py  → context.set_data_dir(path) when --data-dir is given
    - Tests:  conftest → context.set_data_dir(tmp_path)

Otherwise ``INSTALLKIT_DATA_DIR`` is used, falling back to
``~/.local/share/installkit``.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

DATA_DIR_ENV = "INSTALLKIT_DATA_DIR"

_data_dir: Optional[Path] = None


def set_data_dir(path: Optional[Path]) -> None:
    """Register the data directory for the current process (None resets)."""
    global _data_dir
    _data_dir = Path(path).expanduser() if path is not None else None


def get_data_dir() -> Path:
    """Return the engine data directory."""
    if _data_dir is not None:
        return _data_dir
    env = os.environ.get(DATA_DIR_ENV)
    if env:
        return Path(env).expanduser()
    return Path.home() / ".local" / "share" / "installkit"
