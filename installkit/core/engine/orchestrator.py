"""
Orchestrator — drives one install or one uninstall end to end.

Install:
    1. Load the manifest at the product root, if any, and work out the
       mode (fresh install, upgrade, update, patch).
    2. Collect candidate actions from the modules and sort them by
       phase.
    3. On a true upgrade, reverse the old product's actions first.
    4. Run the actions in order, polling for cancellation after each.
    5. Cancelled: reverse the completed prefix and release the
       directories this run created. Completed: record the product,
       bundle the uninstaller and save the manifest.

Uninstall:
    Run each target product's actions in uninstall mode, drop it from
    the manifest and reclaim its directory tree.

Actions run strictly one after another on the calling thread.
"""

from __future__ import annotations

import logging
import shutil
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from installkit.core.actions.provision import ProvisionUnitsAction
from installkit.core.domain.platform import current_platform
from installkit.core.engine.modules import Capability, InstallModule
from installkit.core.engine.registry import ActionRegistry
from installkit.core.errors import ActionError, AlreadyInstalledError, InstallError
from installkit.core.models.action import InstallAction, TaskSink, sort_by_phase
from installkit.core.models.description import InstallDescription
from installkit.core.models.mode import InstallMode
from installkit.core.models.product import (
    PROPERTY_REMOVE_DIRS,
    PROPERTY_SHOW_UNINSTALL,
    PROPERTY_UNINSTALL_TEXT,
    InstallProduct,
    ProductStatus,
)
from installkit.core.models.result import OperationResult, now_iso
from installkit.core.persistence.cleanup import describe_leftovers
from installkit.core.persistence.locations import LocationLedger
from installkit.core.persistence.manifest import (
    UNINSTALL_DIRECTORY,
    InstallManifest,
    manifest_path_for,
)
from installkit.core.persistence.registry import InstalledProductRegistry

logger = logging.getLogger(__name__)

# Receives the progress weight of each completed action
ProgressCallback = Callable[[int], None]
# Polled after every action; True stops forward progress
CancelCheck = Callable[[], bool]


def _never_cancelled() -> bool:
    return False


def _no_progress(weight: int) -> None:
    pass


def _log_task(name: str) -> None:
    logger.debug("  %s", name)


class Orchestrator:
    """Runs install and uninstall operations.

    Args:
        modules: Active modules, in contribution order.
        action_registry: Re-creates actions from the manifest.
        ledger: Location ledger; loading and saving it is the caller's job.
        agent: Provisioning agent handed to every action.
        product_registry: Per-user installed-product registry.
        platform: ``(os, arch)`` to check action support against.
        install_data: Front-end choices passed to the modules.
    """

    def __init__(
        self,
        modules: list[InstallModule],
        action_registry: ActionRegistry,
        ledger: LocationLedger,
        *,
        agent: Any = None,
        product_registry: InstalledProductRegistry | None = None,
        platform: tuple[str, str] | None = None,
        install_data: dict[str, str] | None = None,
    ):
        self._modules = list(modules)
        self._registry = action_registry
        self._ledger = ledger
        self._agent = agent
        self._product_registry = product_registry
        self._os, self._arch = platform or current_platform()
        self._install_data = dict(install_data or {})

    @property
    def ledger(self) -> LocationLedger:
        return self._ledger

    def _supported(self, action: InstallAction) -> bool:
        return action.is_supported(self._os, self._arch)

    # ── Action collection ────────────────────────────────────────

    def collect_actions(self, description: InstallDescription, mode: InstallMode) -> list[InstallAction]:
        """Candidate actions from every module, excluded ones dropped, phase-sorted."""
        candidates: list[InstallAction] = []
        for module in self._modules:
            if not module.supports(Capability.ACTIONS):
                continue
            contributed = module.get_install_actions(self._agent, self._install_data, mode)
            logger.debug("Module '%s' contributed %d actions", module.id, len(contributed))
            candidates.extend(contributed)

        excluded = set(description.excluded_actions)
        if excluded:
            kept = []
            for action in candidates:
                if action.id in excluded:
                    logger.info("Excluding install action %s", action.id)
                else:
                    kept.append(action)
            candidates = kept

        return sort_by_phase(candidates)

    # ── Existing product ─────────────────────────────────────────

    def existing_product(
        self,
        manifest: InstallManifest,
        description: InstallDescription,
        selected_product: str | None = None,
    ) -> InstallProduct | None:
        """The installed product this install replaces or patches.

        A regular install targets the product with the same id. A patch
        targets the selected product, else the first product matching
        the description's ``requires`` ranges, else any product.

        Raises:
            AlreadyInstalledError: If a patch finds its own version
                already installed.
        """
        if not description.patch:
            return manifest.get_product(description.id)

        product: InstallProduct | None = None
        if selected_product:
            product = manifest.get_product(selected_product)
        elif description.requires:
            matches = manifest.products_in_ranges(description.requires)
            product = matches[0] if matches else None
        elif len(manifest):
            product = manifest.products[0]

        if product is not None and product.version == description.version:
            raise AlreadyInstalledError(
                f"{product.name} {product.version} is already installed at {product.location}"
            )
        return product

    # ── Action execution ─────────────────────────────────────────

    def _run_action(
        self,
        action: InstallAction,
        product: InstallProduct,
        mode: InstallMode,
        task: TaskSink,
    ) -> None:
        try:
            action.run(self._agent, product, mode, task)
        except InstallError:
            raise
        except Exception as e:
            raise ActionError(f"Install action {action.id} failed: {e}", action.id, cause=e) from e

    def _reverse(
        self,
        actions: list[InstallAction],
        product: InstallProduct,
        mode: InstallMode,
        task: TaskSink,
    ) -> None:
        """Run ``actions`` in uninstall mode, logging failures and carrying on."""
        for action in actions:
            if not self._supported(action):
                logger.info("⊘ %s (unsupported on %s/%s)", action.id, self._os, self._arch)
                continue
            try:
                self._run_action(action, product, mode, task)
                logger.info("✓ %s reversed", action.id)
            except InstallError as e:
                logger.error("✗ Rollback of %s failed: %s", action.id, e.message)

    def _reverse_for_upgrade(self, old: InstallProduct, mode: InstallMode, task: TaskSink) -> None:
        logger.info("Removing %s %s before upgrade", old.id, old.version)
        for action in old.actions:
            if not action.remove_on_upgrade:
                continue
            if not self._supported(action):
                logger.info("⊘ %s (unsupported on %s/%s)", action.id, self._os, self._arch)
                continue
            self._run_action(action, old, mode, task)
            logger.info("✓ %s removed", action.id)

    # ── Install ──────────────────────────────────────────────────

    def _new_product(self, description: InstallDescription, root: Path) -> InstallProduct:
        product = InstallProduct(
            id=description.id,
            name=description.name,
            version=description.version,
            location=root,
            install_location=Path(description.install_location).absolute(),
            uninstall_name=description.uninstall_name,
        )
        if description.uninstall is not None:
            product.set_property(
                PROPERTY_REMOVE_DIRS, str(description.uninstall.remove_directories).lower()
            )
            product.set_property(
                PROPERTY_SHOW_UNINSTALL, str(description.uninstall.show_uninstall).lower()
            )
            if description.uninstall.text:
                product.set_property(PROPERTY_UNINSTALL_TEXT, description.uninstall.text)
        return product

    def install(
        self,
        description: InstallDescription,
        *,
        progress: ProgressCallback | None = None,
        is_cancelled: CancelCheck | None = None,
        task: TaskSink | None = None,
        selected_product: str | None = None,
    ) -> OperationResult:
        """Install the described product.

        Returns:
            A result with status ``ok`` or ``cancelled``.

        Raises:
            InstallError: On any failure. A failed action leaves the
                product recorded as partially installed.
        """
        progress = progress or _no_progress
        is_cancelled = is_cancelled or _never_cancelled
        task = task or _log_task
        started = time.monotonic()

        root = Path(description.root_location).expanduser().absolute()
        mode = InstallMode.for_install(patch=description.patch)
        result = OperationResult(operation="install", product_id=description.id)

        manifest = InstallManifest.load_from_location(root, self._registry)
        new_manifest = manifest is None
        if manifest is None:
            manifest = InstallManifest(data_path=self._ledger.data_dir)

        existing = self.existing_product(manifest, description, selected_product)
        if existing is not None:
            if mode.patch or existing.version == description.version:
                mode = mode.as_update()
            else:
                mode = mode.as_upgrade()
        elif description.patch:
            raise InstallError(f"No installed product at {root} can be patched by {description.id}")

        logger.info(
            "Starting %s of %s %s at %s", mode.describe(), description.id, description.version, root
        )

        for module in self._modules:
            module.init_agent(self._agent)
        actions = self.collect_actions(description, mode)

        # A product already at this root holds the directory references
        took_reference = existing is None
        if took_reference:
            created = self._ledger.create_path(root)
            if new_manifest:
                manifest.directories = [path.name for path in created]
        else:
            root.mkdir(parents=True, exist_ok=True)
        Path(description.install_location).absolute().mkdir(parents=True, exist_ok=True)

        if mode.upgrade and existing is not None:
            self._reverse_for_upgrade(existing, mode.as_rollback(), task)
            manifest.remove_product(existing)

        product = existing if mode.update and existing is not None else self._new_product(description, root)

        index = -1
        cancelled = False
        try:
            for index, action in enumerate(actions):
                if not self._supported(action):
                    logger.info("⊘ %s (unsupported on %s/%s)", action.id, self._os, self._arch)
                else:
                    self._run_action(action, product, mode, task)
                    # An update keeps the product's original provisioning record
                    if not (mode.update and isinstance(action, ProvisionUnitsAction)):
                        product.add_action(action)
                    result.actions_run.append(action.id)
                    result.needs_restart = result.needs_restart or action.needs_restart_or_relogin
                    logger.info("✓ %s", action.id)
                progress(action.progress_weight)
                if is_cancelled():
                    cancelled = True
                    break
        except InstallError as e:
            logger.error("✗ %s failed: %s", actions[index].id, e.message)
            product.status = ProductStatus.PARTIALLY_INSTALLED
            manifest.add_product(product)
            if description.uninstall is not None:
                manifest.save(manifest_path_for(root), mode)
            raise

        if cancelled:
            logger.info("Installation of %s cancelled after %s", description.id, actions[index].id)
            if not mode.update:
                rollback_mode = mode.as_rollback().as_root_uninstall(len(manifest) == 0)
                self._reverse(actions[: index + 1], product, rollback_mode, task)
            if took_reference:
                leftovers = self._ledger.delete_tree(root)
                self._defer(leftovers)
                result.leftovers = [str(p) for p in leftovers]
            return self._finish(result.model_copy(update={"status": "cancelled"}), mode, started)

        product.status = ProductStatus.INSTALLED
        manifest.add_product(product)

        if description.uninstall is not None:
            manifest_file = manifest_path_for(root)
            if description.uninstall_files and not mode.update:
                try:
                    self._bundle_uninstaller(description, root / UNINSTALL_DIRECTORY)
                except InstallError as e:
                    # The product is applied; its manifest must still be written
                    logger.error("✗ %s", e.message)
                    result.message = e.message
            manifest.save(manifest_file, mode)
            logger.info("Install manifest committed to %s", manifest_file)

        if self._product_registry is not None and description.use_registry:
            self._product_registry.add(product, description.category)
            self._save_product_registry()

        return self._finish(result, mode, started)

    def _bundle_uninstaller(self, description: InstallDescription, uninstall_dir: Path) -> None:
        """Replace the uninstaller next to the manifest with the latest files.

        The stale uninstaller tree goes first, manifest included; the
        caller re-saves the manifest from memory right after.

        Raises:
            InstallError: If the old tree cannot be removed or a file
                cannot be copied.
        """
        if uninstall_dir.exists():
            try:
                shutil.rmtree(uninstall_dir)
            except OSError as e:
                raise InstallError(f"Cannot remove old uninstaller {uninstall_dir}: {e}", cause=e) from e
        uninstall_dir.mkdir(parents=True)

        for source, destination in description.uninstall_sources():
            target = uninstall_dir / destination
            try:
                if source.is_dir():
                    shutil.copytree(source, target, copy_function=shutil.copy2)
                else:
                    shutil.copy2(source, target)
            except OSError as e:
                raise InstallError(f"Cannot copy uninstaller file {source}: {e}", cause=e) from e
            logger.debug("Bundled %s as %s", source, target)

    # ── Uninstall ────────────────────────────────────────────────

    def uninstall(
        self,
        root_location: Path,
        product_ids: list[str] | None = None,
        *,
        progress: ProgressCallback | None = None,
        is_cancelled: CancelCheck | None = None,
        task: TaskSink | None = None,
    ) -> OperationResult:
        """Uninstall products from the manifest at ``root_location``.

        Args:
            root_location: Product root holding the manifest.
            product_ids: Products to remove; all of them when empty.

        Raises:
            InstallError: If there is no manifest or a product id is unknown.
        """
        progress = progress or _no_progress
        is_cancelled = is_cancelled or _never_cancelled
        task = task or _log_task
        started = time.monotonic()

        root = Path(root_location).expanduser().absolute()
        manifest = InstallManifest.load_from_location(root, self._registry)
        if manifest is None:
            raise InstallError(f"Nothing is installed at {root}")

        if product_ids:
            targets = []
            for product_id in product_ids:
                product = manifest.get_product(product_id)
                if product is None:
                    raise InstallError(f"Product '{product_id}' is not installed at {root}")
                targets.append(product)
        else:
            targets = manifest.products

        root_uninstall = len(targets) == len(manifest)
        mode = InstallMode.for_uninstall(root_uninstall)
        result = OperationResult(
            operation="uninstall",
            product_id=",".join(p.id for p in targets),
        )
        logger.info("Starting %s of %s at %s", mode.describe(), result.product_id, root)

        leftovers: list[Path] = []
        for product in targets:
            cancelled = False
            for action in product.actions:
                if not self._supported(action):
                    logger.info("⊘ %s (unsupported on %s/%s)", action.id, self._os, self._arch)
                else:
                    self._run_action(action, product, mode, task)
                    result.actions_run.append(action.id)
                    result.needs_restart = result.needs_restart or action.needs_restart_or_relogin
                    logger.info("✓ %s", action.id)
                progress(action.progress_weight)
                if is_cancelled():
                    cancelled = True
                    break

            if cancelled:
                logger.info("Uninstall of %s cancelled", product.id)
                manifest.save(mode=mode)
                result.leftovers = [str(p) for p in leftovers]
                return self._finish(result.model_copy(update={"status": "cancelled"}), mode, started)

            manifest.remove_product(product)
            if self._product_registry is not None:
                self._product_registry.remove(product)
            leftovers.extend(self._reclaim(product, manifest, root))
            if not root_uninstall:
                manifest.save(mode=mode)

        if root_uninstall:
            manifest.delete()
            self._ledger.cleanup.add_directory(root / UNINSTALL_DIRECTORY)
        if self._product_registry is not None:
            self._save_product_registry()

        if leftovers:
            logger.warning("Some files could not be removed:\n%s", describe_leftovers(leftovers))
        self._defer(leftovers)
        result.leftovers = [str(p) for p in leftovers]
        return self._finish(result, mode, started)

    def _reclaim(self, product: InstallProduct, manifest: InstallManifest, root: Path) -> list[Path]:
        """Release a removed product's directory if nothing else uses it."""
        if any(other.location == product.location for other in manifest.products):
            logger.debug("%s is shared with other products; keeping it", product.location)
            self._ledger.release(product.location)
            return []
        if not product.removes_directories:
            logger.info("Keeping %s as configured", product.location)
            return []
        return self._ledger.release_product_location(
            product.location, exclude=root / UNINSTALL_DIRECTORY
        )

    # ── Result helpers ───────────────────────────────────────────

    def _save_product_registry(self) -> None:
        """Persist the product registry; a failure does not undo the operation."""
        try:
            self._product_registry.save()
        except InstallError as e:
            logger.warning("Product registry not updated: %s", e.message)

    def _defer(self, leftovers: list[Path]) -> None:
        for path in leftovers:
            self._ledger.cleanup.add_directory(path)

    def _finish(self, result: OperationResult, mode: InstallMode, started: float) -> OperationResult:
        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "%s of %s %s in %.1fs",
            mode.describe().capitalize(),
            result.product_id,
            "cancelled" if result.cancelled else "finished",
            duration_ms / 1000,
        )
        return result.model_copy(
            update={"mode": mode.describe(), "duration_ms": duration_ms, "ended_at": now_iso()}
        )

    def run_install(self, description: InstallDescription, **kwargs: Any) -> OperationResult:
        """Like ``install()``, but failures become a ``failed`` result."""
        started = time.monotonic()
        started_at = now_iso()
        try:
            return self.install(description, **kwargs)
        except InstallError as e:
            logger.error("Installation of %s failed: %s", description.id, e.message)
            return OperationResult.failure(
                e,
                operation="install",
                product_id=description.id,
                started_at=started_at,
                duration_ms=int((time.monotonic() - started) * 1000),
            )

    def run_uninstall(
        self,
        root_location: Path,
        product_ids: list[str] | None = None,
        **kwargs: Any,
    ) -> OperationResult:
        """Like ``uninstall()``, but failures become a ``failed`` result."""
        started = time.monotonic()
        started_at = now_iso()
        try:
            return self.uninstall(root_location, product_ids, **kwargs)
        except InstallError as e:
            logger.error("Uninstall at %s failed: %s", root_location, e.message)
            return OperationResult.failure(
                e,
                operation="uninstall",
                product_id=",".join(product_ids or []),
                started_at=started_at,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
