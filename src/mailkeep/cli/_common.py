"""Helpers shared by the mailkeep CLI commands."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from ..configuration.settings import Settings, load_settings
from ..context import AppContext
from ..errors import MailkeepError

console = Console()
error_console = Console(stderr=True)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def resolve_settings(ctx: typer.Context) -> Settings:
    obj = ctx.obj or {}
    settings = obj.get("settings")
    if settings is None:
        config_path: Optional[Path] = obj.get("config_path")
        try:
            settings = load_settings(config_path)
        except MailkeepError as exc:
            error_console.print(f"[red]Error:[/red] {exc}")
            raise typer.Exit(1)
    return settings


def open_context(ctx: typer.Context) -> AppContext:
    """Build the application context for a command."""
    settings = resolve_settings(ctx)
    try:
        return AppContext.create(settings)
    except MailkeepError as exc:
        error_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1)
