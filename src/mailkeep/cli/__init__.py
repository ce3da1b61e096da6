"""Command line entry points for mailkeep."""

from pathlib import Path
from typing import Optional

import typer
from typer import Typer

from ._common import configure_logging
from .mailbox import mailbox_app
from .sync import list_emails, list_runs, serve, sync_once


cli = Typer(help="mailkeep: archive IMAP mailboxes into SQLite")


@cli.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Settings file (default: ~/.mailkeep/config.json)"
    ),
) -> None:
    configure_logging(verbose)
    ctx.obj = {"config_path": config}


cli.add_typer(mailbox_app, name="mailbox")
cli.command("sync")(sync_once)
cli.command("serve")(serve)
cli.command("runs")(list_runs)
cli.command("emails")(list_emails)

__all__ = ["cli", "mailbox_app"]
