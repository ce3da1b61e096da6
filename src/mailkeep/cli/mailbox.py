"""CLI commands for managing mailbox configurations."""

from __future__ import annotations

from typing import Optional

import typer
from rich.table import Table

from ..errors import MailkeepError
from ._common import console, error_console, open_context

mailbox_app = typer.Typer(help="Manage mailbox configurations")


@mailbox_app.command("add")
def add_mailbox(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Unique display name"),
    host: str = typer.Option(..., "--host", "-h", help="IMAP hostname"),
    port: int = typer.Option(993, "--port", "-p", help="IMAP port (default: 993 for TLS)"),
    username: str = typer.Option(..., "--username", "-u", help="Login name"),
    password: Optional[str] = typer.Option(
        None, "--password", help="Password (prompted when omitted)"
    ),
    tls: bool = typer.Option(True, "--tls/--no-tls", help="Connect with implicit TLS"),
    active: bool = typer.Option(False, "--active", help="Mark as the active mailbox"),
) -> None:
    """Add or update a mailbox configuration.

    Examples:
        mailkeep mailbox add work --host imap.example.com --username me@example.com
    """
    if password is None:
        password = typer.prompt("Password", hide_input=True)

    with open_context(ctx) as app:
        try:
            config = app.add_mailbox(
                name=name,
                host=host,
                port=port,
                username=username,
                password=password,
                use_tls=tls,
                is_active=active,
            )
        except MailkeepError as exc:
            error_console.print(f"[red]Error:[/red] {exc}")
            raise typer.Exit(1)

    console.print(
        f"[green]Saved mailbox[/green] '{config.name}' (id {config.id}, "
        f"{config.username}@{config.mail_host}:{config.mail_port})"
    )


@mailbox_app.command("list")
def list_mailboxes(ctx: typer.Context) -> None:
    """List configured mailboxes."""
    with open_context(ctx) as app:
        configs = app.mailboxes.get_all()
        counts = {config.id: app.emails.count(config.id) for config in configs}

    if not configs:
        console.print("[yellow]No mailboxes configured[/yellow]")
        return

    table = Table(title="Mailboxes")
    table.add_column("ID", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Server")
    table.add_column("Username")
    table.add_column("TLS")
    table.add_column("Active")
    table.add_column("Messages", justify="right")
    for config in configs:
        table.add_row(
            str(config.id),
            config.name,
            f"{config.mail_host}:{config.mail_port}",
            config.username,
            "yes" if config.use_tls else "no",
            "*" if config.is_active else "",
            str(counts[config.id]),
        )
    console.print(table)


@mailbox_app.command("remove")
def remove_mailbox(
    ctx: typer.Context,
    config_id: int = typer.Argument(..., help="Mailbox ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete a mailbox together with its stored messages and runs."""
    if not yes:
        typer.confirm(
            f"Delete mailbox {config_id} and all of its stored messages?", abort=True
        )
    with open_context(ctx) as app:
        try:
            app.mailboxes.delete(config_id)
        except MailkeepError as exc:
            error_console.print(f"[red]Error:[/red] {exc}")
            raise typer.Exit(1)
    console.print(f"[green]Removed mailbox {config_id}[/green]")


@mailbox_app.command("activate")
def activate_mailbox(
    ctx: typer.Context,
    config_id: int = typer.Argument(..., help="Mailbox ID"),
) -> None:
    """Mark a mailbox as the active one."""
    with open_context(ctx) as app:
        try:
            app.mailboxes.set_active(config_id)
        except MailkeepError as exc:
            error_console.print(f"[red]Error:[/red] {exc}")
            raise typer.Exit(1)
    console.print(f"[green]Mailbox {config_id} is now active[/green]")


__all__ = ["mailbox_app"]
