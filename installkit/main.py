"""
installkit — CLI entrypoint.

Usage:
    installkit --help
    installkit install --description install.yml
    installkit uninstall /opt/tools/p1
    installkit list /opt/tools/p1
"""

from __future__ import annotations

import json
import logging
import os
import signal
import sys
import threading
from pathlib import Path

import click

from installkit import __version__
from installkit.core.observability.logging_config import default_log_file, setup_logging

logger = logging.getLogger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="installkit")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Engine data directory (default: $INSTALLKIT_DATA_DIR or ~/.local/share/installkit).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    data_dir: str | None,
) -> None:
    """installkit — install and uninstall products with rollback."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug

    from installkit.core.context import get_data_dir, set_data_dir

    if data_dir:
        set_data_dir(Path(data_dir))

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("INSTALLKIT_LOG_LEVEL", "WARNING")

    log_file = os.environ.get("INSTALLKIT_LOG_FILE") or default_log_file(get_data_dir())
    setup_logging(
        level=level,
        log_file=log_file,
        log_file_level=os.environ.get("INSTALLKIT_LOG_FILE_LEVEL"),
    )
    logger.info("installkit %s %s started", __version__, ctx.invoked_subcommand)


# ── Helpers ─────────────────────────────────────────────────────


def _open_ledger():
    """Location ledger in the data directory, with deferred cleanup armed."""
    from installkit.core.context import get_data_dir
    from installkit.core.persistence.cleanup import DeferredCleanup
    from installkit.core.persistence.locations import LocationLedger

    cleanup = DeferredCleanup()
    cleanup.register_atexit()
    ledger = LocationLedger(get_data_dir(), cleanup)
    ledger.load()
    return ledger


def _open_product_registry():
    from installkit.core.context import get_data_dir
    from installkit.core.persistence.registry import InstalledProductRegistry

    registry = InstalledProductRegistry(get_data_dir())
    registry.load()
    return registry


class _CancelOnInterrupt:
    """Turns Ctrl-C into a cancellation request polled between actions."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._previous = None

    def __call__(self) -> bool:
        return self._event.is_set()

    def __enter__(self) -> _CancelOnInterrupt:
        if threading.current_thread() is threading.main_thread():
            self._previous = signal.signal(signal.SIGINT, self._handle)
        return self

    def __exit__(self, *exc: object) -> None:
        if self._previous is not None:
            signal.signal(signal.SIGINT, self._previous)

    def _handle(self, signum: int, frame: object) -> None:
        click.secho("\n⏹  Cancelling after the current action...", fg="yellow", err=True)
        self._event.set()


def _report(result, status_file: str | None, quiet: bool) -> None:
    """Print the result, write the status file, and exit with its code."""
    if status_file:
        Path(status_file).write_text(
            json.dumps(result.model_dump(mode="json"), indent=2) + "\n", encoding="utf-8"
        )

    verb = "Installed" if result.operation == "install" else "Uninstalled"
    if result.ok:
        if not quiet:
            click.secho(f"✅ {verb} {result.product_id} ({result.mode})", fg="green")
            if result.message:
                click.secho(f"⚠️  {result.message}", fg="yellow")
            if result.needs_restart:
                click.secho("   A restart or re-login is needed to finish.", fg="yellow")
    elif result.cancelled:
        click.secho(f"⏹  {result.operation.capitalize()} of {result.product_id} cancelled", fg="yellow")
    else:
        click.secho(f"❌ {result.message}", fg="red", err=True)
        for cause in result.causes:
            click.echo(f"   caused by: {cause}", err=True)

    if result.leftovers and not quiet:
        click.secho(f"   {len(result.leftovers)} paths will be removed on exit", fg="yellow")

    sys.exit(result.exit_code)


# ── Commands ────────────────────────────────────────────────────


@cli.command()
@click.option(
    "--description",
    "-d",
    "description_path",
    type=click.Path(exists=False, dir_okay=False),
    default=None,
    help="Path to install.yml (default: auto-detect).",
)
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation.")
@click.option("--product", "selected_product", default=None, help="Installed product to patch.")
@click.option("--status-file", type=click.Path(dir_okay=False), default=None, help="Write the result as JSON.")
@click.pass_context
def install(
    ctx: click.Context,
    description_path: str | None,
    yes: bool,
    selected_product: str | None,
    status_file: str | None,
) -> None:
    """Install the product described by install.yml."""
    from installkit.core.actions import default_action_registry
    from installkit.core.config.loader import load_description
    from installkit.core.engine.modules import build_modules
    from installkit.core.engine.orchestrator import Orchestrator
    from installkit.core.errors import ConfigError
    from installkit.core.models.result import OperationResult

    quiet = ctx.obj.get("quiet", False)

    try:
        description = load_description(Path(description_path) if description_path else None)
    except ConfigError as e:
        _report(OperationResult.failure(e, operation="install"), status_file, quiet)
        return

    if not yes and not click.confirm(
        f"Install {description.name} {description.version} to {description.root_location}?",
        default=True,
    ):
        _report(
            OperationResult(operation="install", status="cancelled", product_id=description.id),
            status_file,
            quiet,
        )
        return

    registry = default_action_registry()
    ledger = _open_ledger()
    try:
        modules = build_modules(description, registry)
    except ConfigError as e:
        _report(OperationResult.failure(e, operation="install", product_id=description.id), status_file, quiet)
        return

    orchestrator = Orchestrator(
        modules,
        registry,
        ledger,
        product_registry=_open_product_registry(),
    )
    with _CancelOnInterrupt() as is_cancelled:
        result = orchestrator.run_install(
            description,
            is_cancelled=is_cancelled,
            selected_product=selected_product,
        )
    ledger.save()
    _report(result, status_file, quiet)


@cli.command()
@click.argument("location", type=click.Path(file_okay=False))
@click.option("--product", "-p", "product_ids", multiple=True, help="Product to remove (repeatable).")
@click.option("--status-file", type=click.Path(dir_okay=False), default=None, help="Write the result as JSON.")
@click.pass_context
def uninstall(
    ctx: click.Context,
    location: str,
    product_ids: tuple[str, ...],
    status_file: str | None,
) -> None:
    """Uninstall products installed at LOCATION (all of them by default)."""
    from installkit.core.actions import default_action_registry
    from installkit.core.engine.orchestrator import Orchestrator

    ledger = _open_ledger()
    orchestrator = Orchestrator(
        [],
        default_action_registry(),
        ledger,
        product_registry=_open_product_registry(),
    )
    with _CancelOnInterrupt() as is_cancelled:
        result = orchestrator.run_uninstall(
            Path(location),
            list(product_ids) or None,
            is_cancelled=is_cancelled,
        )
    ledger.save()
    _report(result, status_file, ctx.obj.get("quiet", False))


@cli.command(name="list")
@click.argument("location", type=click.Path(file_okay=False))
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def list_products(location: str, as_json: bool) -> None:
    """List the products recorded in the manifest at LOCATION."""
    from installkit.core.actions import default_action_registry
    from installkit.core.errors import ManifestError
    from installkit.core.persistence.manifest import InstallManifest, manifest_path_for

    root = Path(location).absolute()
    try:
        manifest = InstallManifest.load_from_location(root, default_action_registry())
    except ManifestError as e:
        click.secho(f"❌ {e.message}", fg="red", err=True)
        sys.exit(1)

    if manifest is None:
        if as_json:
            click.echo(json.dumps({"location": str(root), "products": []}, indent=2))
            return
        click.secho(f"⚠️  No install manifest at {manifest_path_for(root)}", fg="yellow")
        return

    if as_json:
        document = manifest.to_document(manifest_path_for(root).parent)
        click.echo(json.dumps({"location": str(root), **document.model_dump(mode="json")}, indent=2))
        return

    click.secho(f"📦 {root}", fg="cyan", bold=True)
    for product in manifest.products:
        status = "" if product.status.value == "installed" else f" ({product.status.value})"
        click.echo(f"   • {product.id} {product.version}{status}  {product.name}")
        for action in product.actions:
            click.echo(f"       - {action.id}")
        if product.units:
            click.echo(f"       units: {', '.join(str(u) for u in product.units)}")


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def locations(as_json: bool) -> None:
    """Show the directories tracked by the location ledger."""
    from installkit.core.context import get_data_dir
    from installkit.core.persistence.locations import LocationLedger

    ledger = LocationLedger(get_data_dir())
    ledger.load()

    if as_json:
        click.echo(
            json.dumps(
                [{"path": str(loc.path), "references": loc.references} for loc in ledger.locations],
                indent=2,
            )
        )
        return

    if not ledger.locations:
        click.echo("No tracked install locations")
        return
    for loc in ledger.locations:
        click.echo(f"   {loc.references:>3}  {loc.path}")


def main() -> None:
    """Entry point for ``python -m installkit.main``."""
    cli(obj={})


if __name__ == "__main__":
    main()
