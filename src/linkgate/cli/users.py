"""User profile CLI commands."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from linkgate.config import settings
from linkgate.models import ensure_utc
from linkgate.services.identity import RolePolicy, is_valid_email, normalize_email

console = Console()
app = typer.Typer(help="User profile commands")


@app.command("list")
def list_users():
    """List all user profiles."""
    if not settings.has_durable_store:
        console.print("[red]Error:[/red] DATABASE_URL is not configured")
        raise typer.Exit(1)

    from linkgate.database import close_db, get_session_factory
    from linkgate.services.profiles import SQLProfileStore

    async def _list():
        try:
            return await SQLProfileStore(get_session_factory()).list_all()
        finally:
            await close_db()

    profiles = asyncio.run(_list())

    table = Table(title="Users")
    table.add_column("ID", style="cyan")
    table.add_column("Email", style="green")
    table.add_column("Name")
    table.add_column("Role", style="magenta")
    table.add_column("Last Login", style="dim")

    for profile in profiles:
        last_login = (
            ensure_utc(profile.last_login).strftime("%Y-%m-%d %H:%M")
            if profile.last_login
            else "-"
        )
        table.add_row(
            profile.id, profile.email, profile.display_name or "-", profile.role.value, last_login
        )

    console.print(table)


@app.command("role")
def role(email: str = typer.Argument(..., help="User email")):
    """Show the role an address resolves to under the current allow-list."""
    if not is_valid_email(email):
        console.print(f"[red]Error:[/red] {email!r} is not a valid email address")
        raise typer.Exit(1)

    normalized = normalize_email(email)
    resolved = RolePolicy.from_settings(settings).resolve(normalized)
    style = "bold magenta" if resolved.value == "administrator" else "green"
    console.print(f"{normalized}: [{style}]{resolved.value}[/{style}]")
