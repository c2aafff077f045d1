"""Command-line interface for Trellis.

This module defines the CLI commands using Click framework.

Commands:
- build: Compile a site from its entry document.
- tree: Print the pages and resources reachable from an entry document.
"""

from __future__ import annotations

import logging
from pathlib import Path

import click

from . import __version__
from .errors import BuildError, SiteTreeError
from .fetch import DefaultFetcher
from .locator import Locator
from .sitetree import SiteGraphResolver, SiteTree


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _display(locator: object, root: Path) -> str:
    if isinstance(locator, Locator) and locator.is_local:
        try:
            return locator.path.relative_to(root).as_posix()
        except ValueError:
            return str(locator)
    return str(locator)


@click.group()
@click.version_option(version=__version__, prog_name="trellis")
def cli():
    """Trellis static site compiler."""


@cli.command()
@click.argument("entry", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "-o",
    "--output",
    type=click.Path(file_okay=False, path_type=Path),
    required=False,
    help="Output directory (overrides trellis.yaml output_dir)",
)
@click.option("-j", "--jobs", type=click.IntRange(min=1), required=False, help="Pages rendered in parallel")
@click.option("--minify-js/--no-minify-js", default=None, help="Minify JavaScript output")
@click.option("-v", "--verbose", is_flag=True, help="Show debug output")
def build(entry: Path, output: Path | None, jobs: int | None, minify_js: bool | None, verbose: bool):
    """Compile the site reachable from ENTRY."""
    _configure_logging(verbose)
    from .build import build_site

    root = entry.resolve().parent
    try:
        result = build_site(entry, output_dir=output, jobs=jobs, minify_js=minify_js)
    except BuildError as exc:
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        if exc.locator is not None:
            click.echo(click.style(f"  File: {_display(exc.locator, root)}", fg="yellow"), err=True)
        click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)
        raise SystemExit(1) from None

    click.echo(f"Built {len(result.pages)} pages into {result.output_dir}")
    if result.failures:
        click.echo(
            click.style(f"{len(result.failures)} failed:", fg="red", bold=True), err=True
        )
        for failure in result.failures:
            click.echo(click.style(f"  File: {_display(failure.locator, root)}", fg="yellow"), err=True)
            click.echo(click.style(f"  Error: {failure.message}", fg="white"), err=True)
        raise SystemExit(1)


@cli.command()
@click.argument("entry", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-v", "--verbose", is_flag=True, help="Show debug output")
def tree(entry: Path, verbose: bool):
    """Print the pages and resources reachable from ENTRY."""
    _configure_logging(verbose)
    entry = entry.resolve()
    try:
        with DefaultFetcher() as fetcher:
            site = SiteGraphResolver(fetcher).resolve(Locator.local(entry))
    except SiteTreeError as exc:
        click.echo(click.style("Discovery failed:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  Error: {exc}", fg="white"), err=True)
        raise SystemExit(1) from None
    _echo_tree(site, site.entry, entry.parent, 0, set())


def _echo_tree(site: SiteTree, locator: Locator, root: Path, depth: int, seen: set[Locator]) -> None:
    seen.add(locator)
    node = site[locator]
    indent = "  " * depth
    label = _display(locator, root)
    if node.error is not None:
        click.echo(f"{indent}{label} -> {node.output_path} " + click.style(f"({node.error})", fg="red"))
    else:
        click.echo(f"{indent}{label} -> {node.output_path}")
    for raw, reason in site.missing_references(locator).items():
        click.echo(f"{indent}  {raw} -> " + click.style(f"({reason})", fg="red"))
    for target in site.targets(locator):
        if target.locator in seen or (target.is_page and target.source != locator):
            continue
        _echo_tree(site, target.locator, root, depth + 1, seen)


def main() -> None:
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()
