"""CLI entry point for grammar-sync."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from grammarsync.config import Settings
from grammarsync.errors import GrammarSyncError
from grammarsync.sync import synchronize

# Diagnostics go to stderr; stdout stays clean
console = Console(stderr=True)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[
            RichHandler(console=console, show_time=False, show_path=False, markup=False)
        ],
        force=True,
    )


@click.command()
@click.option(
    "--add",
    "add_source",
    metavar="SOURCE",
    default=None,
    help="Add one grammar source to the manifest instead of refreshing all",
)
@click.option(
    "--install/--no-install",
    default=True,
    help="Write grammars/<scope>.json files (--no-install only rebuilds the manifest)",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the manifest here instead of replacing it in place",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def cli(add_source: str | None, install: bool, output: Path | None, verbose: bool):
    """Download grammar sources and normalize them to JSON.

    Without --add, every source listed in grammars.yml is fetched again and
    the manifest is rebuilt from the results.

    Examples:
        grammarsync
        grammarsync --add https://github.com/textmate/ruby.tmbundle
        grammarsync --add vendor/grammars/language-foo
    """
    configure_logging(verbose)

    try:
        settings = Settings.from_env()
        report = synchronize(settings, add=add_source, install=install, output=output)
    except (GrammarSyncError, OSError, ValueError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)

    if report.failures:
        table = Table(title="Failed sources")
        table.add_column("Source", style="cyan")
        table.add_column("Error", style="red")
        for failure in sorted(report.failures, key=lambda f: f.descriptor):
            table.add_row(escape(failure.descriptor), escape(failure.error))
        console.print(table)
        console.print(
            f"[yellow]⚠ {len(report.failures)} source(s) failed; "
            f"manifest written to {report.manifest_path} without them[/yellow]"
        )
        sys.exit(1)

    console.print("Done")


if __name__ == "__main__":
    cli()
