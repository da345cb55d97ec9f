"""Command-line interface for mdweave.

This module defines the CLI commands using the Click framework.

Commands:
- build: Build the site into the output directory.
- check: Run the pipeline, list diagnostics and write only the manifest.
"""

from __future__ import annotations

import functools
from pathlib import Path

import click

from . import __version__
from .config import BROKEN_LINK_POLICIES
from .diagnostics import Diagnostic
from .errors import BuildError, ConfigError, UnreadableSource
from .log import configure_logging


def _logging_options(func):
    """Add --verbose/--log-json and configure structlog before the command runs."""

    @click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
    @click.option("--log-json", is_flag=True, help="Log JSON lines to stderr")
    @functools.wraps(func)
    def wrapper(*args, verbose: bool, log_json: bool, **kwargs):
        configure_logging(verbose=verbose, log_json=log_json)
        return func(*args, **kwargs)

    return wrapper


def _display_path(path: Path, project_root: Path) -> Path:
    try:
        return path.resolve().relative_to(project_root.resolve())
    except ValueError:
        return path


def _fail(title: str, exc: Exception, project_root: Path) -> None:
    """Print a fatal error with file context and exit 1."""
    click.echo(click.style(f"{title}:", fg="red", bold=True), err=True)
    source_path = getattr(exc, "source_path", None)
    if source_path is not None:
        click.echo(
            click.style(f"  File: {_display_path(source_path, project_root)}", fg="yellow"),
            err=True,
        )
    message = getattr(exc, "message", None) or str(exc)
    click.echo(click.style(f"  Error: {message}", fg="white"), err=True)
    raise SystemExit(1) from None


def _format_diagnostic(diagnostic: Diagnostic) -> str:
    location = diagnostic.document
    if diagnostic.line is not None:
        location = f"{location}:{diagnostic.line}"
    return f"{location}: [{diagnostic.kind.value}] {diagnostic.message}"


@click.group()
@click.version_option(version=__version__, prog_name="mdweave")
def cli():
    """mdweave: Markdown notes to linked HTML pages."""


@cli.command()
@click.argument(
    "project",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
)
@click.option("--output", "-o", type=click.Path(file_okay=False), help="Output directory (overrides mdweave.yaml)")
@click.option("--workers", "-j", type=click.IntRange(min=1), help="Worker threads per stage")
@click.option("--broken-links", type=click.Choice(BROKEN_LINK_POLICIES), help="How unresolved links render")
@click.option("--drafts", is_flag=True, help="Include draft content")
@click.option("--only", multiple=True, help="Only build this document (repeatable)")
@_logging_options
def build(
    project: Path,
    output: str | None,
    workers: int | None,
    broken_links: str | None,
    drafts: bool,
    only: tuple[str, ...],
):
    """Build the site into the output directory."""
    from .pipeline import build_site

    overrides = {
        "output_dir": output,
        "workers": workers,
        "broken_links": broken_links,
        "include_drafts": drafts or None,
    }
    try:
        result = build_site(project, overrides=overrides, only=only or None)
    except ConfigError as exc:
        _fail("Invalid configuration", exc, project)
    except (UnreadableSource, BuildError) as exc:
        _fail("Build failed", exc, project)
    click.echo(
        f"Built {len(result.pages)} pages into {result.output_dir} "
        f"({len(result.diagnostics)} diagnostics)"
    )


@cli.command()
@click.argument(
    "project",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
)
@click.option("--drafts", is_flag=True, help="Include draft content")
@_logging_options
def check(project: Path, drafts: bool):
    """Check links and frontmatter, writing only the diagnostics manifest."""
    from .pipeline import build_site

    try:
        result = build_site(project, overrides={"include_drafts": drafts or None}, write=False)
    except ConfigError as exc:
        _fail("Invalid configuration", exc, project)
    except UnreadableSource as exc:
        _fail("Check failed", exc, project)
    entries = result.diagnostics.entries()
    for diagnostic in entries:
        click.echo(_format_diagnostic(diagnostic))
    click.echo(f"Checked {len(result.documents)} documents ({len(entries)} diagnostics)")


def main():
    """Entry point for the CLI application."""
    cli()
