"""
Install manifest — durable record of the products at a location.

The manifest is what makes uninstall and upgrade possible after the
installing process has exited. It lives in the product root's
``uninstall/`` directory next to the bundled uninstaller and records,
per product, the executed actions (with their private state), the
provisioned units, and the property bag.

The file is JSON with a ``format_version`` field. Product paths are
stored relative to the manifest's directory so an installation tree
can be moved. Writes are atomic (temp file, then rename).
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from installkit.core.engine.registry import ActionRegistry
from installkit.core.errors import ManifestError
from installkit.core.models.action import InstallAction
from installkit.core.models.mode import InstallMode
from installkit.core.models.product import InstallProduct, ProductRange, ProductStatus, UnitId

logger = logging.getLogger(__name__)

MANIFEST_FORMAT_VERSION = "2.0"
UNINSTALL_DIRECTORY = "uninstall"
MANIFEST_FILENAME = "install.manifest"


def manifest_path_for(root_location: Path) -> Path:
    """Where the manifest for a product root lives."""
    return Path(root_location) / UNINSTALL_DIRECTORY / MANIFEST_FILENAME


# ── File schema ─────────────────────────────────────────────────


class ActionRecord(BaseModel):
    id: str
    state: dict[str, Any] = Field(default_factory=dict)


class UnitRecord(BaseModel):
    id: str
    version: str = ""


class ProductRecord(BaseModel):
    id: str
    name: str = ""
    version: str = ""
    uninstall_name: str = ""
    location: str
    install_location: str
    status: ProductStatus = ProductStatus.INSTALLED
    actions: list[ActionRecord] = Field(default_factory=list)
    units: list[UnitRecord] = Field(default_factory=list)
    properties: dict[str, str] = Field(default_factory=dict)


class ManifestDocument(BaseModel):
    format_version: str
    data_path: str = ""
    directories: str = ""          # slash-joined names of created directories
    products: list[ProductRecord] = Field(default_factory=list)


def _relative(path: Path, base: Path) -> str:
    try:
        return os.path.relpath(path, base)
    except ValueError:
        # Different drive on Windows
        return str(path)


def _resolve(text: str, base: Path) -> Path:
    return Path(os.path.normpath(base / text))


# ── Manifest ────────────────────────────────────────────────────


class InstallManifest:
    """The set of installed products at one location.

    Product identifiers are unique: adding a product whose id is
    already present does nothing.
    """

    def __init__(
        self,
        data_path: Path | None = None,
        directories: list[str] | None = None,
    ):
        self._products: list[InstallProduct] = []
        self.data_path = Path(data_path) if data_path is not None else None
        self.directories: list[str] = list(directories or [])
        self.format_version = MANIFEST_FORMAT_VERSION
        self._path: Path | None = None

    @property
    def path(self) -> Path | None:
        """File this manifest was loaded from or last saved to."""
        return self._path

    @property
    def products(self) -> list[InstallProduct]:
        return list(self._products)

    def __len__(self) -> int:
        return len(self._products)

    def __contains__(self, product: object) -> bool:
        return product in self._products

    def add_product(self, product: InstallProduct) -> None:
        if product not in self._products:
            self._products.append(product)

    def remove_product(self, product: InstallProduct) -> None:
        if product in self._products:
            self._products.remove(product)

    def get_product(self, product_id: str) -> InstallProduct | None:
        for product in self._products:
            if product.id == product_id:
                return product
        return None

    def products_in_ranges(self, ranges: list[ProductRange]) -> list[InstallProduct]:
        """Products matching any of the ranges, in range order."""
        found: list[InstallProduct] = []
        for product_range in ranges:
            product = self.get_product(product_range.id)
            if product is None or product in found:
                continue
            if product_range.includes(product.id, product.version):
                found.append(product)
        return found

    # ── Load ─────────────────────────────────────────────────────

    @classmethod
    def load_from_location(
        cls,
        root_location: Path,
        registry: ActionRegistry,
    ) -> InstallManifest | None:
        """Load the manifest under a product root, if there is one.

        Returns:
            The manifest, or None when no manifest file exists.

        Raises:
            ManifestError: If a manifest exists but cannot be parsed.
        """
        path = manifest_path_for(root_location)
        if not path.is_file():
            logger.info("No install manifest at %s", path)
            return None
        return cls.load(path, registry)

    @classmethod
    def load(cls, path: Path, registry: ActionRegistry) -> InstallManifest:
        """Load a manifest file.

        Actions are re-created through ``registry``. An action id with
        no registered implementation is logged and dropped.

        Raises:
            ManifestError: If the file cannot be read or parsed.
        """
        path = Path(path).absolute()
        try:
            raw = path.read_text(encoding="utf-8")
            document = ManifestDocument.model_validate(json.loads(raw))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise ManifestError(f"Cannot load install manifest {path}: {e}", cause=e) from e

        base = path.parent
        manifest = cls(
            data_path=Path(document.data_path) if document.data_path else None,
            directories=[d for d in document.directories.split("/") if d],
        )
        manifest.format_version = document.format_version
        manifest._path = path

        for record in document.products:
            product = InstallProduct(
                id=record.id,
                name=record.name,
                version=record.version,
                uninstall_name=record.uninstall_name,
                location=_resolve(record.location, base),
                install_location=_resolve(record.install_location, base),
                properties=dict(record.properties),
                status=record.status,
            )
            for action_record in record.actions:
                action = _restore_action(action_record, registry)
                if action is not None:
                    product.add_action(action)
            for unit in record.units:
                product.add_unit(UnitId(id=unit.id, version=unit.version))
            manifest.add_product(product)

        logger.debug(
            "Loaded install manifest %s (format %s, %d products)",
            path,
            manifest.format_version,
            len(manifest),
        )
        return manifest

    # ── Save ─────────────────────────────────────────────────────

    def to_document(self, base: Path) -> ManifestDocument:
        """Build the file representation with paths relative to ``base``."""
        products = []
        for product in self._products:
            products.append(
                ProductRecord(
                    id=product.id,
                    name=product.name,
                    version=product.version,
                    uninstall_name=product.uninstall_name,
                    location=_relative(product.location, base),
                    install_location=_relative(product.install_location, base),
                    status=product.status,
                    actions=[ActionRecord(id=a.id, state=a.serialize()) for a in product.actions],
                    units=[UnitRecord(id=u.id, version=u.version) for u in product.units],
                    properties=dict(product.properties),
                )
            )
        return ManifestDocument(
            format_version=MANIFEST_FORMAT_VERSION,
            data_path=str(self.data_path) if self.data_path else "",
            directories="/".join(self.directories),
            products=products,
        )

    def save(self, path: Path | None = None, mode: InstallMode | None = None) -> bool:
        """Write the manifest (atomic write).

        During a patch, a manifest already on disk in a different
        format version is left untouched: an older uninstaller may
        still depend on it.

        Args:
            path: Target file; defaults to where it was loaded from.
            mode: Current operation mode.

        Returns:
            True if the file was written.

        Raises:
            ManifestError: If there is no target or the write fails.
        """
        target = Path(path).absolute() if path is not None else self._path
        if target is None:
            raise ManifestError("Install manifest has no file location")

        if mode is not None and mode.patch:
            on_disk = _on_disk_version(target)
            if on_disk is not None and on_disk != MANIFEST_FORMAT_VERSION:
                logger.info(
                    "Keeping install manifest %s in format %s during patch", target, on_disk
                )
                return False

        document = self.to_document(target.parent)
        content = json.dumps(document.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=target.parent, prefix=".manifest_", suffix=".tmp")
            tmp = Path(tmp_path)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                tmp.replace(target)
            except Exception:
                tmp.unlink(missing_ok=True)
                raise
        except OSError as e:
            raise ManifestError(f"Cannot save install manifest {target}: {e}", cause=e) from e

        self._path = target
        self.format_version = MANIFEST_FORMAT_VERSION
        logger.debug("Install manifest saved to %s (%d products)", target, len(self))
        return True

    def delete(self) -> None:
        """Remove the manifest file, if any."""
        if self._path is not None:
            self._path.unlink(missing_ok=True)
            logger.debug("Install manifest %s removed", self._path)


def _restore_action(record: ActionRecord, registry: ActionRegistry) -> InstallAction | None:
    action = registry.create(record.id)
    if action is None:
        logger.warning("Install action '%s' is not registered — dropping it", record.id)
        return None
    try:
        action.deserialize(record.state)
    except Exception as e:
        logger.warning("Cannot restore install action '%s': %s — dropping it", record.id, e)
        return None
    return action


def _on_disk_version(path: Path) -> str | None:
    """Format version of an existing manifest file, if readable."""
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    version = data.get("format_version")
    return str(version) if version is not None else None
