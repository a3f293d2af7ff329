"""
Configuration loader — reads install.yml into an InstallDescription.

It reads YAML, validates against the Pydantic schema, and returns a
typed description. Relative paths in the file are resolved against the
directory holding it, which is also where uninstaller files are copied
from.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from installkit.core.errors import ConfigError
from installkit.core.models.description import InstallDescription

logger = logging.getLogger(__name__)

# Default description filename
DESCRIPTION_FILE = "install.yml"

_PATH_KEYS = ("root_location", "install_location")


def find_description_file(start_dir: Path | None = None) -> Path | None:
    """Search for install.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to install.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / DESCRIPTION_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_description(path: Path | None = None) -> InstallDescription:
    """Load and validate an install description.

    Args:
        path: Explicit path to install.yml. If None, searches upward.

    Returns:
        Validated InstallDescription.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if path is None:
        path = find_description_file()

    if path is None:
        raise ConfigError(f"No {DESCRIPTION_FILE} found. Specify one with --description.")

    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Install description not found: {path}")

    logger.debug("Loading install description from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}", cause=e) from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}", cause=e) from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "product" key or be flat
    product_data = dict(data["product"]) if isinstance(data.get("product"), dict) else dict(data)
    for key, value in data.items():
        if key != "product" and key not in product_data:
            product_data[key] = value

    # YAML reads 1.0 as a float
    if isinstance(product_data.get("version"), (int, float)):
        product_data["version"] = str(product_data["version"])

    base = path.parent.resolve()
    for key in _PATH_KEYS:
        value = product_data.get(key)
        if isinstance(value, str):
            location = Path(value).expanduser()
            product_data[key] = location if location.is_absolute() else base / location
    product_data.setdefault("source_location", base)

    try:
        description = InstallDescription.model_validate(product_data)
    except ValidationError as e:
        raise ConfigError(f"Invalid install description: {e}", cause=e) from e

    logger.info(
        "Loaded install description '%s' %s with %d actions",
        description.id,
        description.version,
        len(description.actions),
    )
    return description
