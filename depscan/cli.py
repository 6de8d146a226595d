"""
Depscan CLI
============

Click-based command-line interface for Depscan.  Inspects ELF images and
QNX core dumps and resolves their shared-library dependencies against
local directory trees.

Usage::

    python -m depscan header /work/bin/myapp
    python -m depscan deps /work/bin/myapp
    python -m depscan buildid /work/lib/libfoo.so.1
    python -m depscan linkmap /work/crash/myapp.core
    python -m depscan resolve /work/crash/myapp.core -s /work --sdp /opt
    python -m depscan resolve /work/bin/myapp -s /work --json

References:
    - Click Documentation. https://click.palletsprojects.com/
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import NoReturn, Optional

import click
from rich.markup import escape

from shared.config import DepscanConfig
from shared.console import DepscanConsole
from shared.logger import DepscanLogger

from depscan.core.dependencies import (
    get_build_id,
    get_dependencies,
    get_link_map,
    read_image,
)
from depscan.core.engine import DepscanEngine
from depscan.core.errors import DepscanError
from depscan.output.console import DepscanConsoleOutput
from depscan.resolvers.toolchain import ToolchainLocator


# ===================================================================== #
#  Helpers
# ===================================================================== #

def _run_async(coro):
    """Run an async coroutine from synchronous Click handlers."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop and loop.is_running():
        import concurrent.futures
        with concurrent.futures.ThreadPoolExecutor() as pool:
            future = pool.submit(asyncio.run, coro)
            return future.result()
    else:
        return asyncio.run(coro)


def _fail(ctx: click.Context, exc: Exception) -> NoReturn:
    console: DepscanConsole = ctx.obj["console"]
    console.error(escape(str(exc)))
    sys.exit(1)


def _make_logger(ctx: click.Context, *, console_output: bool = True) -> DepscanLogger:
    config: DepscanConfig = ctx.obj["config"]
    settings = config.global_settings
    level = "DEBUG" if ctx.obj["verbose"] else settings.effective_level
    return DepscanLogger(
        "engine",
        log_level=level,
        log_file=settings.log_file,
        json_logs=settings.log_json,
        console_output=console_output,
    )


# ===================================================================== #
#  CLI Group
# ===================================================================== #

@click.group()
@click.option(
    "--config", "-c",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Path to Depscan configuration file (TOML).",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Log every resolution decision.",
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], verbose: bool) -> None:
    """Depscan -- ELF / QNX core dump dependency analysis.

    Extract the shared libraries an executable or core dump depends on
    and locate matching library files for post-mortem debugging.
    """
    ctx.ensure_object(dict)

    try:
        ctx.obj["config"] = DepscanConfig.load(config)
    except (ValueError, TypeError) as exc:
        raise click.BadParameter(str(exc), param_hint="--config") from exc
    ctx.obj["verbose"] = verbose

    console = DepscanConsole()
    ctx.obj["console"] = console
    ctx.obj["display"] = DepscanConsoleOutput(console)


# ===================================================================== #
#  Subcommands
# ===================================================================== #

@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def header(ctx: click.Context, path: str) -> None:
    """Show the ELF header of PATH."""
    display: DepscanConsoleOutput = ctx.obj["display"]
    try:
        image = read_image(path)
    except (DepscanError, OSError) as exc:
        _fail(ctx, exc)
    display.display_header(image, path)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def deps(ctx: click.Context, path: str) -> None:
    """List the dependencies recorded in PATH."""
    display: DepscanConsoleOutput = ctx.obj["display"]
    console: DepscanConsole = ctx.obj["console"]
    try:
        dependencies = get_dependencies(path)
    except (DepscanError, OSError) as exc:
        _fail(ctx, exc)

    if dependencies is None:
        console.warning(f"{escape(path)} carries no dependency information")
        return
    display.display_dependencies(dependencies)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def buildid(ctx: click.Context, path: str) -> None:
    """Print the GNU build ID of PATH."""
    display: DepscanConsoleOutput = ctx.obj["display"]
    try:
        build_id = get_build_id(path)
    except (DepscanError, OSError) as exc:
        _fail(ctx, exc)
    display.display_build_id(path, build_id)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def linkmap(ctx: click.Context, path: str) -> None:
    """Show the QNX link map of core dump PATH."""
    display: DepscanConsoleOutput = ctx.obj["display"]
    try:
        entries = get_link_map(path)
    except (DepscanError, OSError) as exc:
        _fail(ctx, exc)
    display.display_link_map(entries)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--search-path", "-s",
    "search_paths",
    multiple=True,
    type=click.Path(file_okay=False),
    help="Library search root; repeat for several, highest priority first.",
)
@click.option(
    "--sdp",
    "sdp_paths",
    multiple=True,
    type=click.Path(file_okay=False),
    help="Root to search for QNX SDP installations.",
)
@click.option(
    "--json", "as_json",
    is_flag=True,
    default=False,
    help="Print the report as JSON on stdout.",
)
@click.pass_context
def resolve(
    ctx: click.Context,
    path: str,
    search_paths: tuple[str, ...],
    sdp_paths: tuple[str, ...],
    as_json: bool,
) -> None:
    """Resolve the dependencies of PATH to library files on disk."""
    config: DepscanConfig = ctx.obj["config"]
    display: DepscanConsoleOutput = ctx.obj["display"]

    logger = _make_logger(ctx, console_output=not as_json)
    locator = ToolchainLocator(sdp_paths, logger=logger) if sdp_paths else None
    engine = DepscanEngine(config, logger, locator)

    try:
        report = _run_async(engine.analyze(path, list(search_paths) or None))
    except (DepscanError, OSError) as exc:
        _fail(ctx, exc)

    if as_json:
        click.echo(json.dumps(
            report.model_dump(mode="json", exclude={"image": {"ident_padding"}}),
            indent=2,
            ensure_ascii=False,
        ))
    else:
        display.display(report)


# ===================================================================== #
#  Entry Point
# ===================================================================== #

def main() -> None:
    """Main entry point for the Depscan CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
