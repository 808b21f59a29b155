"""Database management CLI commands."""

import asyncio

import typer
from rich.console import Console

from linkgate.config import settings

console = Console()
app = typer.Typer(help="Database management commands")


def _require_database() -> None:
    if not settings.has_durable_store:
        console.print("[red]Error:[/red] DATABASE_URL is not configured")
        raise typer.Exit(1)


@app.command("init")
def init():
    """Create the token, rate limit and profile tables."""
    _require_database()

    from linkgate.database import close_db, init_db

    async def _init():
        try:
            await init_db()
        finally:
            await close_db()

    console.print("[dim]Creating tables...[/dim]")
    asyncio.run(_init())
    console.print("[green]Database ready![/green]")


@app.command("drop")
def drop(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
):
    """Drop all tables.

    WARNING: This deletes every outstanding token and profile!
    """
    _require_database()

    if not force:
        console.print("[bold red]WARNING:[/bold red] This will delete ALL data in the database!")
        if not typer.confirm("Are you sure you want to continue?"):
            console.print("[dim]Cancelled[/dim]")
            raise typer.Exit(0)

    from linkgate.database import close_db, drop_db

    async def _drop():
        try:
            await drop_db()
        finally:
            await close_db()

    console.print("[dim]Dropping all tables...[/dim]")
    asyncio.run(_drop())
    console.print("[green]Tables dropped[/green]")
