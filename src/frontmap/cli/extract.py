"""Extraction command: discover sources and write the base entity snapshot."""

import asyncio
from pathlib import Path
from typing import Optional

import typer

from ..discovery import FileDiscovery
from ..exceptions import FrontmapError
from ..logging_config import setup_logging
from ..persistence import save_base_entities
from . import app
from ._common import build_context, console, resolve_config


@app.command()
def extract(
    root: Path = typer.Option(
        Path("."),
        "--root",
        help="Project root to index",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
    output: Path = typer.Option(
        Path("entities.json"),
        "--output",
        "-o",
        help="Base snapshot path, relative to the project root",
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
    Discover source files and extract their entities.

    [bold cyan]Examples:[/bold cyan]

      frontmap extract --root ./my-monorepo

      frontmap extract -o data/entities.json
    """
    logger = setup_logging(verbose=verbose, quiet=quiet)

    try:
        settings = resolve_config(config=config, verbose=verbose, quiet=quiet)
        context = build_context(root, settings)
        try:
            discovery = FileDiscovery(root, config=settings, context=context)
            entities = asyncio.run(discovery.run())
            path = save_base_entities(entities, output, root)
        finally:
            if context.store is not None:
                context.store.close()
    except FrontmapError as e:
        logger.error(f"{e.__class__.__name__}: {e}")
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Extraction interrupted[/yellow]")
        raise typer.Exit(130)

    console.print(f"[green]Extracted {len(entities)} entities[/green] -> [blue]{path}[/blue]")
