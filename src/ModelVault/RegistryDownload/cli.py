# === NAVMAP v1 ===
# {
#   "module": "ModelVault.RegistryDownload.cli",
#   "purpose": "Typer CLI for pulling models and browsing the Hugging Face catalog",
#   "sections": [
#     {"id": "clicontext", "name": "CliContext", "anchor": "class-clicontext", "kind": "class"},
#     {"id": "factories", "name": "Client and coordinator factories", "anchor": "FAC", "kind": "helpers"},
#     {"id": "main", "name": "main", "anchor": "function-main", "kind": "function"},
#     {"id": "pull", "name": "pull / hf-pull", "anchor": "PUL", "kind": "function"},
#     {"id": "catalog", "name": "hf-list / hf-tags", "anchor": "CAT", "kind": "function"},
#     {"id": "info", "name": "show-config / version", "anchor": "INF", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Command line interface for the registry downloader.

Example:
    $ modelvault pull all-minilm:22m
    $ modelvault hf-pull unsloth/SmolLM2-135M-Instruct-GGUF:Q4_K_M
    $ modelvault hf-list --page 2 --page-size 50

Download commands run with interrupt confirmation enabled: Ctrl-C asks
before abandoning the transfer and rolling back partial files.  Every other
command exits immediately on SIGINT/SIGTERM.
"""

import json
from pathlib import Path
from typing import Optional

import httpx
import typer
from rich.console import Console
from rich.markup import escape

from .cancellation import CancellationCoordinator
from .catalog import DEFAULT_PAGE_SIZE, list_hf_model_tags, list_hf_models
from .errors import (
    EXIT_USAGE,
    CatalogLimitError,
    RegistryDownloadError,
    UserConfigError,
    exit_code_for,
)
from .logging_config import mask_sensitive_data, setup_logging
from .net import PACKAGE_VERSION, build_http_client
from .ownership import warn_if_store_requires_root
from .progress import TqdmProgressSink
from .registry import HuggingFaceRegistry, LibraryRegistry, ModelRegistry
from .session import DownloadSession
from .settings import AppSettings, get_default_settings

_console = Console(soft_wrap=True)
_err_console = Console(stderr=True, soft_wrap=True)

_VERBOSITY_LEVELS = {0: "WARNING", 1: "INFO"}


class CliContext:
    """Per-invocation state shared by commands."""

    def __init__(self, settings: AppSettings, verbosity: int = 0, quiet: bool = False) -> None:
        self.settings = settings
        self.verbosity = verbosity
        self.quiet = quiet
        self.console = _console
        self.err_console = _err_console


_context: Optional[CliContext] = None


def get_context() -> CliContext:
    if _context is None:
        raise RuntimeError("CLI context not initialized")
    return _context


# --- Client and coordinator factories ---------------------------------------------


def _build_client(settings: AppSettings) -> httpx.Client:
    return build_http_client(settings)


def _build_coordinator() -> CancellationCoordinator:
    return CancellationCoordinator()


# --- main ------------------------------------------------------------------------

app = typer.Typer(
    name="modelvault",
    help="Download models from registries into a local content-addressed model store",
    no_args_is_help=True,
)


@app.callback(invoke_without_command=False)
def main(
    verbosity: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase console verbosity (-v for INFO, -vv for DEBUG)",
    ),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Hide progress bars"),
    log_dir: Optional[Path] = typer.Option(
        None,
        "--log-dir",
        envvar="MODELVAULT_LOG_DIR",
        help="Directory for JSON log files",
    ),
) -> None:
    """Pull models from the public library or Hugging Face into the local store."""

    global _context

    try:
        settings = get_default_settings(copy=True)
    except UserConfigError as exc:
        _err_console.print(f"[red]Error loading settings: {escape(str(exc))}[/red]")
        raise typer.Exit(EXIT_USAGE) from exc

    console_level = _VERBOSITY_LEVELS.get(verbosity, "DEBUG")
    setup_logging(settings.logging, log_dir, console_level=console_level)
    _context = CliContext(settings=settings, verbosity=verbosity, quiet=quiet)


# --- pull / hf-pull --------------------------------------------------------------


def _run_pull(ctx: CliContext, registry: ModelRegistry) -> None:
    settings = ctx.settings
    coordinator = _build_coordinator()
    coordinator.install(confirmation_required=True)
    warn_if_store_requires_root(settings.store_root)

    progress = TqdmProgressSink(coordinator.state, disable=True if ctx.quiet else None)
    try:
        with _build_client(settings) as client:
            session = DownloadSession(registry, settings, client, coordinator, progress=progress)
            result = session.pull()
    except (RegistryDownloadError, OSError) as exc:
        coordinator.acknowledge_cleanup()
        coordinator.stop()
        ctx.err_console.print(f"[red]✗ {escape(str(exc))}[/red]")
        raise typer.Exit(exit_code_for(exc)) from exc

    coordinator.acknowledge_cleanup()
    coordinator.stop()
    ctx.console.print(f"[green]✓ Model {result.model} successfully downloaded[/green]")
    if ctx.verbosity:
        ctx.console.print(f"Manifest: {result.manifest_path}")


def _parse_registry(factory, identifier: str) -> ModelRegistry:
    try:
        return factory(identifier)
    except RegistryDownloadError as exc:
        _err_console.print(f"[red]✗ {escape(str(exc))}[/red]")
        raise typer.Exit(exit_code_for(exc)) from exc


@app.command("pull")
def pull(
    model: str = typer.Argument(..., help="Library model identifier, e.g. llama3:8b"),
) -> None:
    """Download a model from the public library registry."""

    ctx = get_context()
    registry = _parse_registry(
        lambda ident: LibraryRegistry.from_identifier(ident, ctx.settings.library.registry_base_url),
        model,
    )
    ctx.console.print(f"Downloading library model [bold]{registry.display_name}[/bold]")
    _run_pull(ctx, registry)


@app.command("hf-pull")
def hf_pull(
    model: str = typer.Argument(..., help="Hugging Face identifier, e.g. user/repo:Q4_K_M"),
) -> None:
    """Download a GGUF model from Hugging Face."""

    ctx = get_context()
    registry = _parse_registry(HuggingFaceRegistry.from_identifier, model)
    ctx.console.print(
        f"Downloading Hugging Face model [bold]{registry.repo}[/bold] from "
        f"[bold]{registry.user}[/bold] with [bold]{registry.tag}[/bold] quantisation"
    )
    _run_pull(ctx, registry)


# --- hf-list / hf-tags -----------------------------------------------------------


def _install_immediate_exit() -> CancellationCoordinator:
    coordinator = _build_coordinator()
    coordinator.install(confirmation_required=False)
    return coordinator


@app.command("hf-list")
def hf_list(
    page: int = typer.Option(1, "--page", min=1, help="Page number (1-indexed)"),
    page_size: int = typer.Option(
        DEFAULT_PAGE_SIZE, "--page-size", min=1, help="Models per page (capped at 100)"
    ),
) -> None:
    """List trending Hugging Face models usable by the model server."""

    ctx = get_context()
    coordinator = _install_immediate_exit()
    try:
        with _build_client(ctx.settings) as client:
            models = list_hf_models(client, page=page, page_size=page_size)
    except (RegistryDownloadError, CatalogLimitError) as exc:
        ctx.err_console.print(f"[red]✗ {escape(str(exc))}[/red]")
        raise typer.Exit(exit_code_for(exc)) from exc
    finally:
        coordinator.stop()
    for model_id in models:
        ctx.console.print(model_id)


@app.command("hf-tags")
def hf_tags(
    model: str = typer.Argument(..., help="Hugging Face repository, e.g. user/repo"),
) -> None:
    """List quantisation tags available for a Hugging Face repository."""

    ctx = get_context()
    coordinator = _install_immediate_exit()
    try:
        with _build_client(ctx.settings) as client:
            tags = list_hf_model_tags(client, model)
    except RegistryDownloadError as exc:
        ctx.err_console.print(f"[red]✗ {escape(str(exc))}[/red]")
        raise typer.Exit(exit_code_for(exc)) from exc
    finally:
        coordinator.stop()
    for tag in tags:
        ctx.console.print(tag)


# --- show-config / version -------------------------------------------------------


@app.command("show-config")
def show_config() -> None:
    """Print the effective settings (defaults plus MODELVAULT_* overrides) as JSON."""

    ctx = get_context()
    payload = ctx.settings.model_dump(mode="json")
    payload["server"] = mask_sensitive_data(payload["server"])
    ctx.console.print_json(json.dumps(payload))


@app.command("version")
def version() -> None:
    """Show version information."""

    typer.echo(f"modelvault {PACKAGE_VERSION}")


__all__ = ["app", "get_context", "CliContext"]
