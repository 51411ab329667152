"""Shared helpers for sven CLI commands."""

import os

import click
from rich.console import Console
from rich.markup import escape

from sven.config import SvenConfig
from sven.services.cipher import key_is_encrypted

console = Console()


def error(msg: str) -> None:
    """Print an error message."""
    console.print(f"[red]Error:[/red] {escape(msg)}")


def warning(msg: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]Warning:[/yellow] {escape(msg)}")


def info(msg: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{escape(msg)}[/dim]")


def success(msg: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {escape(msg)}")


def get_config(ctx: click.Context) -> SvenConfig:
    """Get the configuration loaded by the root command."""
    return ctx.obj["config"]


def resolve_passphrase(config: SvenConfig) -> str | None:
    """Get the key passphrase, prompting only if the key needs one.

    SVEN_PASSPHRASE is used when set, so scripts never block on a prompt.
    """
    env_passphrase = os.environ.get("SVEN_PASSPHRASE")
    if env_passphrase is not None:
        return env_passphrase
    if not key_is_encrypted(config.key_path):
        return None
    return click.prompt("Key passphrase", hide_input=True, err=True)
