"""Enrichment command: label changed entities and persist the enriched snapshot."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from ..exceptions import FrontmapError
from ..labeler import StaticLabeler
from ..logging_config import setup_logging
from ..orchestrator import EnrichmentOrchestrator, EnrichmentReport
from . import app
from ._common import build_context, console, resolve_config


def _print_report(report: EnrichmentReport) -> None:
    table = Table(title="Enrichment", show_header=True, header_style="bold cyan")
    table.add_column("Outcome")
    table.add_column("Entities", justify="right")
    for outcome, count in report.counts.items():
        if count:
            table.add_row(outcome.replace("_", " "), str(count))
    console.print(table)

    if report.changed_files:
        console.print(f"[yellow]Annotations written to {len(report.changed_files)} files[/yellow]")
    for entity_id, reason in sorted(report.failures.items()):
        console.print(f"  [red]failed[/red] {entity_id}: {reason}")


@app.command()
def enrich(
    input_path: Path = typer.Argument(..., help="Base snapshot written by 'frontmap extract'"),
    output_path: Path = typer.Argument(..., help="Enriched snapshot; read back as the prior state"),
    root: Path = typer.Option(
        Path("."),
        "--root",
        help="Project root the snapshot paths are relative to",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
    concurrency: Optional[int] = typer.Option(
        None, "--concurrency", min=1, help="Maximum simultaneous labeler calls"
    ),
    retries: Optional[int] = typer.Option(None, "--retries", min=0, help="Retries per entity"),
    retry_delay: Optional[float] = typer.Option(
        None, "--retry-delay", min=0.0, help="Delay between attempts (seconds)"
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Deadline for one labeler call (seconds)"
    ),
    write_annotation: bool = typer.Option(
        False, "--write-annotation", help="Write generated annotations back into source files"
    ),
    static_only: bool = typer.Option(
        False, "--static-only", help="Refresh references only; keep prior labels"
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="TOML configuration file",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable DEBUG logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log errors"),
):
    """
    Enrich a base snapshot, labeling only entities whose code changed.

    [bold cyan]Examples:[/bold cyan]

      frontmap enrich entities.json entities.enriched.json

      frontmap enrich entities.json out.json --concurrency 2 --write-annotation
    """
    logger = setup_logging(verbose=verbose, quiet=quiet)

    try:
        settings = resolve_config(
            config=config,
            concurrency=concurrency,
            retries=retries,
            retry_delay=retry_delay,
            timeout=timeout,
            verbose=verbose,
            quiet=quiet,
        )
        context = build_context(root, settings)
        try:
            orchestrator = EnrichmentOrchestrator(root, StaticLabeler(), settings, context=context)
            if static_only:
                report = asyncio.run(orchestrator.run_static_update(input_path, output_path))
            else:
                report = asyncio.run(orchestrator.run(input_path, output_path, write_annotation))
        finally:
            if context.store is not None:
                context.store.close()
    except FrontmapError as e:
        logger.error(f"{e.__class__.__name__}: {e}")
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Enrichment interrupted[/yellow]")
        raise typer.Exit(130)

    if not quiet:
        _print_report(report)
