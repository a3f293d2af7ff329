"""
Installed-product registry — per-user index of installed products.

Stored as JSON in ``registry.json`` inside the engine data directory.
It lets an installer find products installed anywhere on the machine
(for example to offer a patch for them), not only at one location.
Writes are atomic (write to temp file, then rename).
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import BaseModel, Field

from installkit.core.errors import InstallError
from installkit.core.models.product import InstallProduct, ProductRange

logger = logging.getLogger(__name__)

REGISTRY_FILENAME = "registry.json"


class InstalledProduct(BaseModel):
    """One registry entry."""

    id: str
    name: str = ""
    version: str = ""
    location: Path
    category: str | None = None


class RegistryDocument(BaseModel):
    products: list[InstalledProduct] = Field(default_factory=list)


class InstalledProductRegistry:
    """Products recorded for the current user, keyed by (id, location).

    Args:
        data_dir: Engine data directory. None keeps the registry in
            memory only.
    """

    def __init__(self, data_dir: Path | None = None):
        self._data_dir = Path(data_dir) if data_dir is not None else None
        self._products: list[InstalledProduct] = []

    @property
    def path(self) -> Path | None:
        if self._data_dir is None:
            return None
        return self._data_dir / REGISTRY_FILENAME

    @property
    def products(self) -> list[InstalledProduct]:
        return list(self._products)

    def _find(self, product_id: str, location: Path) -> InstalledProduct | None:
        location = Path(location).absolute()
        for entry in self._products:
            if entry.id == product_id and entry.location == location:
                return entry
        return None

    def add(self, product: InstallProduct, category: str | None = None) -> InstalledProduct:
        """Record ``product``, replacing an entry for the same id and location."""
        location = Path(product.location).absolute()
        existing = self._find(product.id, location)
        if existing is not None:
            self._products.remove(existing)
        entry = InstalledProduct(
            id=product.id,
            name=product.name,
            version=product.version,
            location=location,
            category=category,
        )
        self._products.append(entry)
        logger.debug("Registered installed product %s at %s", product.id, location)
        return entry

    def remove(self, product: InstallProduct) -> None:
        existing = self._find(product.id, product.location)
        if existing is not None:
            self._products.remove(existing)
            logger.debug("Unregistered installed product %s", product.id)

    def products_by_range(
        self,
        ranges: list[ProductRange],
        unique_locations: bool = False,
    ) -> list[InstalledProduct]:
        """Entries matching any of ``ranges``.

        Args:
            ranges: Product ranges to match. Empty matches everything.
            unique_locations: Keep only the first match per location.
        """
        found: list[InstalledProduct] = []
        locations: set[Path] = set()
        for entry in self._products:
            if ranges and not any(r.includes(entry.id, entry.version) for r in ranges):
                continue
            if unique_locations:
                if entry.location in locations:
                    continue
                locations.add(entry.location)
            found.append(entry)
        return found

    # ── Persistence ──────────────────────────────────────────────

    def load(self) -> None:
        """Load the registry; entries whose location is gone are dropped.

        A missing or corrupt file means an empty registry.
        """
        self._products = []
        path = self.path
        if path is None or not path.is_file():
            return

        try:
            document = RegistryDocument.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except json.JSONDecodeError as e:
            logger.warning("Corrupt product registry %s: %s — starting fresh", path, e)
            return
        except Exception as e:
            logger.warning("Cannot load product registry from %s: %s — starting fresh", path, e)
            return

        for entry in document.products:
            if entry.location.exists():
                self._products.append(entry)
            else:
                logger.info("Dropping %s from product registry: %s is gone", entry.id, entry.location)

    def save(self) -> None:
        """Write the registry (atomic write; no-op when in memory).

        Raises:
            InstallError: If the file cannot be written.
        """
        path = self.path
        if path is None:
            return

        document = RegistryDocument(products=self._products)
        content = json.dumps(document.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".registry_", suffix=".tmp")
            tmp = Path(tmp_path)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                tmp.replace(path)
                logger.debug("Product registry saved to %s", path)
            except Exception:
                tmp.unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.error("Failed to save product registry to %s: %s", path, e)
            raise InstallError(f"Cannot save product registry {path}: {e}", cause=e) from e
