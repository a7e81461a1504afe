"""Thin CLI wrapper for kmod_builder.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import logging
from pathlib import Path
from typing import Annotated

import httpx
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from kmod_builder import __version__
from kmod_builder.config import Settings, get_settings, print_settings_json

PROG_NAME = "kmod-build"

app = typer.Typer(
    name=PROG_NAME,
    help="Kernel module builder - build kernel modules against published device kernel headers",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True, soft_wrap=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"kmod-builder version {__version__}")
        raise typer.Exit()


def configure_logging(level: str) -> None:
    """Send log records to stderr through rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _http_client(settings: Settings) -> httpx.Client:
    return httpx.Client(follow_redirects=True, timeout=settings.listing_timeout)


def _fatal(message: str) -> typer.Exit:
    err_console.print(f"[red]{escape(message)}[/red]")
    return typer.Exit(code=1)


@app.callback()
def main(
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            help="Logging level (overrides KMOD_LOG_LEVEL)",
        ),
    ] = None,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Kernel module builder - build kernel modules against published device kernel headers."""
    try:
        settings = get_settings()
    except ValidationError as e:
        raise _fatal(f"ERROR: Invalid configuration: {e}") from None
    configure_logging((log_level or settings.log_level).upper())


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        typer.echo(print_settings_json(settings))
        return

    tmp_dir_display = str(settings.tmp_dir) if settings.tmp_dir else "(system default)"
    make_vars_display = (
        " ".join(f"{k}={v}" for k, v in settings.make_vars.items()) or "(none)"
    )
    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Remote:[/bold]")
    console.print(f"  Files URL:           {settings.files_url}")
    console.print(f"  Bucket:              {settings.bucket or '(discovered)'}")
    console.print(f"  Kernel git source:   {settings.kernel_git_source}")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Kernel source root:  {settings.kernel_src_root}")
    console.print(f"  Workarounds hook:    {settings.workarounds_script}")
    console.print(f"  Temp directory:      {tmp_dir_display}")
    console.print()
    console.print("[bold]Build:[/bold]")
    console.print(f"  Default device:      {settings.machine_name or '(none)'}")
    console.print(f"  Make jobs:           {settings.make_jobs or '(make default)'}")
    console.print(f"  Make variables:      {make_vars_display}", markup=False)
    console.print(f"  Log level:           {settings.log_level}")


@app.command("list")
def list_cmd() -> None:
    """List available devices and versions."""
    from kmod_builder.catalog.service import list_versions
    from kmod_builder.catalog.store import CatalogError

    settings = get_settings()
    err_console.print("Fetching list from servers")

    with _http_client(settings) as client:
        try:
            for row in list_versions(client, settings):
                typer.echo(row)
        except CatalogError as e:
            err_console.print(f"[red]Failed to list archives: {escape(str(e))}[/red]")
            raise typer.Exit(code=1) from None


@app.command()
def build(
    device: Annotated[
        str | None,
        typer.Option("--device", help="Machine name (defaults to BALENA_MACHINE_NAME)"),
    ] = None,
    os_version: Annotated[
        str | None,
        typer.Option("--os-version", help="Space separated list of OS versions"),
    ] = None,
    src: Annotated[
        Path | None,
        typer.Option("--src", help="Where to find kernel module source"),
    ] = None,
    modules_list: Annotated[
        str | None,
        typer.Option("--modules-list", help="Space separated list of modules to build"),
    ] = None,
    dest_dir: Annotated[
        Path,
        typer.Option("--dest-dir", help="Destination directory"),
    ] = Path("output"),
) -> None:
    """Build kernel modules for a device and OS versions."""
    from kmod_builder.builds.kernel_source import KernelSourceError
    from kmod_builder.builds.service import build_modules
    from kmod_builder.builds.stages import StageError
    from kmod_builder.catalog.store import CatalogError
    from kmod_builder.types import BuildRequest

    versions = (os_version or "").split()
    modules = (modules_list or "").split()

    if not versions:
        raise _fatal("ERROR: No version specified")
    if src is None or not str(src):
        raise _fatal("ERROR: No path for kernel module source specified")
    if not modules:
        raise _fatal("ERROR: No modules specified")

    settings = get_settings()
    if not device:
        if not settings.machine_name:
            raise _fatal("ERROR: No device specified")
        err_console.print(
            f"No device specified, use default device type: {settings.machine_name}."
        )
        device = settings.machine_name

    request = BuildRequest(
        device=device,
        versions=tuple(versions),
        module_src=src,
        modules=tuple(modules),
        dest_dir=dest_dir,
    )

    with _http_client(settings) as client:
        try:
            summary = build_modules(request, settings, client)
        except (CatalogError, KernelSourceError, StageError) as e:
            raise _fatal(f"ERROR: {e}") from None

    if not summary.ok:
        failed = " ".join(summary.failed_versions(request.versions))
        raise _fatal(
            f"Could not find headers for '{request.device}' at version "
            f"'{failed}', run {PROG_NAME} list"
        )

    for output in summary.outputs:
        console.print(f"[green]✓ Built modules in {escape(str(output))}[/green]")


def run(args: list[str] | None = None) -> None:
    """Console script entry point.

    Usage errors exit with status 1 instead of the usual 2.
    """
    command = typer.main.get_command(app)
    try:
        command.main(args=args, prog_name=PROG_NAME)
    except SystemExit as e:
        raise SystemExit(1 if e.code == 2 else e.code) from None


if __name__ == "__main__":
    run()
