"""Thin CLI wrapper for mason.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console

from mason import __version__
from mason.config import Settings, get_settings, print_settings_json
from mason.errors import CleanupError, MasonError

if TYPE_CHECKING:
    from mason.cache.store import ArtifactCache

app = typer.Typer(
    name="mason",
    help="Mason - build or reuse cached cross-compiled binaries",
    no_args_is_help=True,
)
console = Console()
logger = logging.getLogger(__name__)

# Exit status when a work dir could not be removed
EXIT_CLEANUP_FAILED = 3


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"mason version {__version__}")
        raise typer.Exit()


def _load_settings(cache_dir: Path | None) -> Settings:
    from mason.logs import configure_logging

    settings = get_settings()
    if cache_dir is not None:
        settings = settings.model_copy(update={"cache_dir": cache_dir})
    configure_logging(settings.log_level)
    return settings


def _print_json(data: object) -> None:
    # No wrapping or markup, so long paths stay valid JSON
    console.print(json.dumps(data, indent=2), soft_wrap=True, markup=False)


def _fail(e: MasonError, json_output: bool) -> None:
    if json_output:
        _print_json({"code": e.code, "message": str(e)})
    else:
        console.print(f"[red]Error ({e.code}): {e}[/red]")


@app.callback()
def main(
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
    """Mason - build or reuse cached cross-compiled binaries."""


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
        console.print(print_settings_json(settings), soft_wrap=True, markup=False)
    else:
        tmp_dir_display = (
            str(settings.tmp_dir) if settings.tmp_dir else "(system default)"
        )
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Paths:[/bold]")
        console.print(f"  Cache directory:     {settings.cache_dir}")
        console.print(f"  Temp directory:      {tmp_dir_display}")
        console.print()
        console.print("[bold]Toolchain:[/bold]")
        console.print(f"  Source URL:          {settings.source_url}")
        console.print(f"  Go version:          {settings.go_version}")
        console.print(f"  xgo package:         {settings.xgo_package}")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Log level:           {settings.log_level}")
        console.print(f"  Verify digests:      {settings.verify_cache_digest}")
        console.print(f"  Rebuild corrupted:   {settings.rebuild_corrupted}")
        console.print()
        console.print("[bold]Timeouts (seconds):[/bold]")
        console.print(f"  Build timeout:       {settings.build_timeout or 'none'}")
        console.print(f"  Lock timeout:        {settings.lock_timeout or 'none'}")


@app.command()
def target(
    prefix: Annotated[
        str,
        typer.Option("--prefix", "-p", help="Binary name prefix"),
    ] = "openbazaard",
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show the build target and expected binary name for this host."""
    from mason.targets import binary_filename, resolve_build_target

    try:
        build_target = resolve_build_target()
    except MasonError as e:
        _fail(e, json_output)
        raise typer.Exit(code=1) from None

    filename = binary_filename(prefix, build_target)
    if json_output:
        output = {
            "os": build_target.os,
            "arch": build_target.arch,
            "target": str(build_target),
            "filename": filename,
        }
        _print_json(output)
    else:
        console.print(f"Target:   [green]{build_target}[/green]")
        console.print(f"Filename: {filename}")


@app.command()
def build(
    label: Annotated[str, typer.Argument(help="Friendly label for the build")],
    version_reference: Annotated[
        str, typer.Argument(help="Version to build (tag, branch, or commit)")
    ],
    clean: Annotated[
        bool,
        typer.Option("--clean/--keep", help="Remove the work dir after building"),
    ] = True,
    cache_dir: Annotated[
        Path | None,
        typer.Option("--cache-dir", help="Override the cache directory"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Build the OpenBazaar daemon at a version, or reuse a cached build."""
    from mason.builder import new_openbazaar_daemon

    settings = _load_settings(cache_dir)
    builder = new_openbazaar_daemon(label, version_reference, settings=settings)

    try:
        runner = builder.build()
    except MasonError as e:
        _fail(e, json_output)
        if builder.work_dir is not None:
            console.print(f"Work dir kept for inspection: {builder.work_dir}")
        raise typer.Exit(code=1) from None

    work_dir = builder.work_dir
    if clean:
        try:
            builder.must_clean()
        except CleanupError as e:
            logger.critical("%s", e)
            _fail(e, json_output)
            raise typer.Exit(code=EXIT_CLEANUP_FAILED) from None

    if json_output:
        output = {
            "artifact_name": builder.artifact_name,
            "version_reference": version_reference,
            "binary_path": str(runner.binary_path),
            "cache_hit": builder.last_build_was_cache_hit,
            "work_dir": None if clean or work_dir is None else str(work_dir),
        }
        _print_json(output)
    else:
        source = "cache" if builder.last_build_was_cache_hit else "fresh build"
        console.print(f"[green]{runner.binary_path}[/green] ({source})")
        if not clean and work_dir is not None:
            console.print(f"Work dir: {work_dir}")


cache_app = typer.Typer(help="Inspect and manage the artifact cache")
app.add_typer(cache_app, name="cache")


def _open_cache(cache_dir: Path | None, json_output: bool) -> "ArtifactCache":
    from mason.cache.store import ArtifactCache

    settings = _load_settings(cache_dir)
    try:
        return ArtifactCache.open_or_create(
            settings.cache_dir, verify_digest=settings.verify_cache_digest
        )
    except MasonError as e:
        _fail(e, json_output)
        raise typer.Exit(code=1) from None


@cache_app.command("list")
def cache_list(
    verify: Annotated[
        bool,
        typer.Option("--verify", help="Re-hash every cached binary"),
    ] = False,
    cache_dir: Annotated[
        Path | None,
        typer.Option("--cache-dir", help="Override the cache directory"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List cached builds."""
    cache = _open_cache(cache_dir, json_output)
    try:
        entries = cache.entries(verify_digest=verify)
    except MasonError as e:
        _fail(e, json_output)
        raise typer.Exit(code=1) from None
    finally:
        cache.close()

    if json_output:
        _print_json([e.to_dict() for e in entries])
        return

    if not entries:
        console.print("[yellow]No cached builds[/yellow]")
        return

    console.print(f"[bold]Found {len(entries)} cached build(s):[/bold]")
    console.print()
    for entry in entries:
        color = "green" if entry.state.value == "ok" else "red"
        console.print(
            f"  [{color}]{entry.artifact_name} {entry.version_reference}[/{color}]"
        )
        console.print(f"    Path:  {entry.path}")
        console.print(f"    Size:  {entry.size_bytes} bytes")
        console.print(f"    SHA:   {entry.sha256[:16]}...")
        console.print(f"    State: {entry.state.value}")
        console.print()


@cache_app.command("show")
def cache_show(
    artifact_name: Annotated[str, typer.Argument(help="Artifact name")],
    version_reference: Annotated[str, typer.Argument(help="Version reference")],
    cache_dir: Annotated[
        Path | None,
        typer.Option("--cache-dir", help="Override the cache directory"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show the cached binary path for a build."""
    cache = _open_cache(cache_dir, json_output)
    try:
        path = cache.get(artifact_name, version_reference)
    except MasonError as e:
        _fail(e, json_output)
        raise typer.Exit(code=1) from None
    finally:
        cache.close()

    if json_output:
        _print_json({"path": str(path)})
    else:
        console.print(str(path))


@cache_app.command("remove")
def cache_remove(
    artifact_name: Annotated[str, typer.Argument(help="Artifact name")],
    version_reference: Annotated[str, typer.Argument(help="Version reference")],
    cache_dir: Annotated[
        Path | None,
        typer.Option("--cache-dir", help="Override the cache directory"),
    ] = None,
) -> None:
    """Remove a cached build."""
    cache = _open_cache(cache_dir, False)
    try:
        removed = cache.remove(artifact_name, version_reference)
    except MasonError as e:
        _fail(e, False)
        raise typer.Exit(code=1) from None
    finally:
        cache.close()

    if not removed:
        console.print(
            f"[yellow]No cached build for {artifact_name} ({version_reference})[/yellow]"
        )
        raise typer.Exit(code=1)
    console.print(f"Removed {artifact_name} ({version_reference})")


@cache_app.command("prune")
def cache_prune(
    min_age: Annotated[
        float,
        typer.Option("--min-age", help="Only prune objects older than N seconds"),
    ] = 3600,
    cache_dir: Annotated[
        Path | None,
        typer.Option("--cache-dir", help="Override the cache directory"),
    ] = None,
) -> None:
    """Delete cached binaries that no entry references any more."""
    cache = _open_cache(cache_dir, False)
    try:
        removed = cache.prune_objects(min_age=min_age)
    except MasonError as e:
        _fail(e, False)
        raise typer.Exit(code=1) from None
    finally:
        cache.close()

    if removed:
        console.print(f"Pruned {removed} unreferenced object(s)")
    else:
        console.print("[yellow]Nothing to prune[/yellow]")


if __name__ == "__main__":
    app()
