"""Magic link token CLI commands."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table
from sqlmodel import select

from linkgate.config import settings
from linkgate.models import MagicToken, ensure_utc, utcnow

console = Console()
app = typer.Typer(help="Magic link token commands")


@app.command("list")
def list_tokens(
    all_tokens: bool = typer.Option(False, "--all", "-a", help="Include used and expired tokens"),
):
    """List stored tokens. Token values are truncated."""
    if not settings.has_durable_store:
        console.print("[red]Error:[/red] DATABASE_URL is not configured")
        raise typer.Exit(1)

    from linkgate.database import close_db, get_session_context

    async def _list():
        try:
            async with get_session_context() as session:
                stmt = select(MagicToken).order_by(MagicToken.created_at)
                result = await session.execute(stmt)
                tokens = result.scalars().all()
        finally:
            await close_db()

        now = utcnow()
        table = Table(title="Magic Link Tokens")
        table.add_column("Token", style="dim")
        table.add_column("Email", style="green")
        table.add_column("Role", style="magenta")
        table.add_column("Expires", style="cyan")
        table.add_column("State")

        shown = 0
        for token in tokens:
            expired = token.is_expired(now)
            if not all_tokens and (token.used or expired):
                continue
            if token.used:
                state = "[dim]used[/dim]"
            elif expired:
                state = "[yellow]expired[/yellow]"
            else:
                state = "[green]outstanding[/green]"
            table.add_row(
                f"{token.token[:8]}...",
                token.email,
                token.role.value,
                ensure_utc(token.expires_at).strftime("%Y-%m-%d %H:%M:%S"),
                state,
            )
            shown += 1

        console.print(table)
        console.print(f"[dim]{shown} token(s)[/dim]")

    asyncio.run(_list())


@app.command("sweep")
def sweep():
    """Delete expired tokens and elapsed rate limit windows now."""
    from linkgate.database import close_db
    from linkgate.services.backend import get_auth_backend
    from linkgate.tasks import sweep_expired

    async def _sweep():
        try:
            return await sweep_expired(get_auth_backend())
        finally:
            await close_db()

    result = asyncio.run(_sweep())

    table = Table(title="Sweep Results")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Tokens Removed", str(result["tokens_removed"]))
    table.add_row("Rate Limit Windows Removed", str(result["windows_removed"]))
    console.print(table)
