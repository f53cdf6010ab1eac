"""Cache management commands."""

import typer

from . import app
from ._common import console, open_store


@app.command()
def cache_info():
    """Show extraction cache information and statistics."""
    from ..config import load_config
    from ..exceptions import ConfigurationError

    try:
        config = load_config()
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    if not config.cache_enabled:
        console.print("Status: [red]Disabled[/red]")
        return

    store = open_store(config)
    stats = store.stats()
    store.close()

    console.print("[bold cyan]frontmap Cache Info[/bold cyan]")
    console.print()
    console.print("Status: [green]Enabled[/green]")
    console.print(f"Directory: [blue]{stats.get('directory', 'N/A')}[/blue]")
    console.print(f"Entries: [yellow]{stats.get('size', 0)}[/yellow]")
    console.print(f"Size: [yellow]{stats.get('volume', 0)} bytes[/yellow]")


@app.command()
def cache_clear():
    """Clear the extraction cache."""
    from ..config import load_config
    from ..exceptions import ConfigurationError

    try:
        config = load_config()
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    if not config.cache_enabled:
        console.print("[yellow]Cache is disabled[/yellow]")
        raise typer.Exit(0)

    store = open_store(config)
    store.clear()
    store.close()
    console.print("[green]Cache cleared successfully[/green]")
