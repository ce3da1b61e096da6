"""CLI commands for running syncs and inspecting their results."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import typer
from rich.table import Table

from ..errors import AlreadyRunningError
from ..orchestrator.daemon import SYNC_SIGNAL
from ..storage.models import RunStatus
from ._common import console, error_console, open_context

logger = logging.getLogger(__name__)


def sync_once(ctx: typer.Context) -> None:
    """Run one sync pass over every mailbox."""
    with open_context(ctx) as app:
        summaries = app.build_scheduler().run_pass()

    if not summaries:
        console.print("[yellow]No mailboxes configured[/yellow]")
        return

    table = Table(title="Sync results")
    table.add_column("Mailbox", style="cyan")
    table.add_column("Mode")
    table.add_column("Processed", justify="right")
    table.add_column("New", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Status")
    for summary in summaries:
        status = (
            "[green]completed[/green]"
            if summary.succeeded
            else f"[red]failed[/red]: {summary.error}"
        )
        table.add_row(
            summary.mailbox_name,
            summary.mode.value if summary.mode else "-",
            str(summary.processed),
            str(summary.new),
            str(summary.updated),
            str(summary.failed),
            status,
        )
    console.print(table)

    if any(not summary.succeeded for summary in summaries):
        raise typer.Exit(1)


def serve(ctx: typer.Context) -> None:
    """Sync at startup, then on every interval or SIGUSR1, until interrupted."""
    with open_context(ctx) as app:
        if not app.mailboxes.get_all():
            console.print(
                "[yellow]No mailboxes configured yet; add one with "
                "'mailkeep mailbox add'.[/yellow]"
            )
        scheduler = app.build_scheduler()
        console.print(
            f"[bold blue]Syncing every {scheduler.interval}s[/bold blue] "
            f"(database: {app.settings.database_path})"
        )

        pid_file = app.server_pid_file()

        async def _serve() -> None:
            loop = asyncio.get_running_loop()
            if SYNC_SIGNAL is not None:
                loop.add_signal_handler(SYNC_SIGNAL, app.trigger.request)
            # the PID file only ever names a process with the handler installed
            pid_file.write()
            try:
                await scheduler.run_forever()
            finally:
                pid_file.remove()

        try:
            asyncio.run(_serve())
        except AlreadyRunningError as exc:
            error_console.print(f"[red]Error:[/red] {exc}")
            raise typer.Exit(1)
        except KeyboardInterrupt:
            logger.info("Scheduler interrupted, shutting down")
    console.print("Stopped")


def list_runs(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Number of runs"),
    mailbox: Optional[int] = typer.Option(None, "--mailbox", "-m", help="Mailbox ID"),
) -> None:
    """Show recent ingestion runs."""
    with open_context(ctx) as app:
        runs = app.ledger.list_runs(limit=limit, mailbox_config_id=mailbox)

    if not runs:
        console.print("[yellow]No ingestion runs recorded[/yellow]")
        return

    table = Table(title="Ingestion runs")
    table.add_column("Run", justify="right")
    table.add_column("Mailbox", justify="right")
    table.add_column("Started")
    table.add_column("Completed")
    table.add_column("Processed", justify="right")
    table.add_column("New", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Status")
    table.add_column("Error")
    colors = {RunStatus.COMPLETED: "green", RunStatus.FAILED: "red", RunStatus.RUNNING: "yellow"}
    for run in runs:
        table.add_row(
            str(run.id),
            str(run.mailbox_config_id) if run.mailbox_config_id is not None else "-",
            run.started_at.strftime("%Y-%m-%d %H:%M:%S"),
            run.completed_at.strftime("%Y-%m-%d %H:%M:%S") if run.completed_at else "-",
            str(run.emails_processed),
            str(run.emails_new),
            str(run.emails_updated),
            f"[{colors[run.status]}]{run.status.value}[/{colors[run.status]}]",
            run.error_message or "",
        )
    console.print(table)


def list_emails(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Number of messages"),
    mailbox: Optional[int] = typer.Option(None, "--mailbox", "-m", help="Mailbox ID"),
) -> None:
    """Show recently ingested messages."""
    with open_context(ctx) as app:
        emails = app.emails.list_recent(limit=limit, mailbox_config_id=mailbox)

    if not emails:
        console.print("[yellow]No messages stored[/yellow]")
        return

    table = Table(title="Recent messages")
    table.add_column("Mailbox", justify="right")
    table.add_column("UID", justify="right")
    table.add_column("From")
    table.add_column("Subject", style="cyan")
    table.add_column("Sent")
    for email in emails:
        table.add_row(
            str(email.mailbox_config_id),
            str(email.uid),
            email.from_address or "-",
            email.subject or "(no subject)",
            email.date_sent.strftime("%Y-%m-%d %H:%M") if email.date_sent else "-",
        )
    console.print(table)


__all__ = ["list_emails", "list_runs", "serve", "sync_once"]
