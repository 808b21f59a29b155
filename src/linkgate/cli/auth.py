"""Client-side sign-in commands backed by a local session file."""

import asyncio
from datetime import timedelta
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from linkgate.client import AuthClient, SessionManager
from linkgate.client.storage import FileStorage
from linkgate.config import get_client_settings, settings
from linkgate.services.errors import AuthError
from linkgate.services.identity import RolePolicy

console = Console()
app = typer.Typer(help="Sign in from this machine using magic links")


def _manager() -> SessionManager:
    client_settings = get_client_settings()
    storage = FileStorage(Path(client_settings.storage_path).expanduser())
    return SessionManager(
        storage,
        policy=RolePolicy.from_settings(settings),
        session_ttl=timedelta(days=client_settings.session_expiration_days),
        renew_interval=client_settings.renew_interval_seconds,
        sweep_interval=client_settings.expiry_sweep_seconds,
    )


def _client(manager: SessionManager) -> AuthClient:
    client_settings = get_client_settings()
    return AuthClient(
        manager,
        base_url=client_settings.base_url,
        allow_degraded=client_settings.allow_degraded_fallback,
        timeout=client_settings.request_timeout,
    )


@app.command("request")
def request(email: str = typer.Argument(..., help="Email to send the link to")):
    """Request a magic link."""
    manager = _manager()

    async def _request():
        async with _client(manager) as client:
            return await client.request_magic_link(email)

    try:
        result = asyncio.run(_request())
    except AuthError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1) from e

    console.print(f"[green]{result.get('message', 'Magic link sent')}[/green]")
    if "remaining" in result:
        console.print(f"[dim]{result['remaining']} request(s) left this hour[/dim]")


@app.command("verify")
def verify(
    token: str = typer.Argument(..., help="Token from the magic link"),
    email: str = typer.Argument(..., help="Email the link was sent to"),
):
    """Redeem a magic link token and sign in."""
    manager = _manager()

    async def _verify():
        async with _client(manager) as client:
            return await client.verify(token, email)

    try:
        session = asyncio.run(_verify())
    except AuthError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1) from e

    if session.verified:
        console.print(f"[green]Signed in as[/green] {session.email} ({session.role.value})")
    else:
        console.print(
            f"[yellow]Signed in as {session.email} ({session.role.value}) in DEGRADED mode:"
            f"[/yellow] backend verification was not possible"
        )


@app.command("status")
def status():
    """Show the local session."""
    state = _manager().status()
    if not state.authenticated:
        console.print("[dim]Not signed in[/dim]")
        raise typer.Exit(1)

    table = Table(title="Session")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Email", state.email or "-")
    table.add_row("Role", state.role.value if state.role else "-")
    table.add_row("Verified", "[yellow]No (degraded)[/yellow]" if state.degraded else "Yes")
    if state.login_time:
        table.add_row("Signed In", state.login_time.strftime("%Y-%m-%d %H:%M:%S"))
    if state.expires_at:
        table.add_row("Expires", state.expires_at.strftime("%Y-%m-%d %H:%M:%S"))
    table.add_row("Remaining", str(state.time_remaining).split(".")[0])
    console.print(table)


@app.command("logout")
def logout():
    """Sign out and forget the local session."""
    _manager().logout()
    console.print("[green]Signed out[/green]")
