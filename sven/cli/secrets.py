"""Secret commands for sven CLI: add, remove, list, export.

Each command goes through the daemon when it is running and falls back to
decrypting the store directly otherwise.
"""

import os
from pathlib import Path

import click

from sven.cli.client import run_with_fallback
from sven.cli.common import error, get_config, resolve_passphrase, success
from sven.exceptions import SvenError
from sven.utils.shell import SUPPORTED_SHELLS, format_export


def _default_shell() -> str:
    """Guess the export format from $SHELL."""
    shell = Path(os.environ.get("SHELL", "")).name
    return shell if shell in SUPPORTED_SHELLS else "bash"


@click.command()
@click.argument("key")
@click.argument("value")
@click.pass_context
def add(ctx: click.Context, key: str, value: str) -> None:
    """Add a secret, replacing any existing value for KEY."""
    config = get_config(ctx)
    try:
        message = run_with_fallback(
            config,
            lambda backend: backend.add_secret(key, value),
            lambda: resolve_passphrase(config),
        )
    except SvenError as e:
        error(f"Failed to add secret: {e}")
        raise SystemExit(1) from e
    success(message)


@click.command()
@click.argument("key")
@click.pass_context
def remove(ctx: click.Context, key: str) -> None:
    """Remove a secret. Removing a missing KEY is not an error."""
    config = get_config(ctx)
    try:
        message = run_with_fallback(
            config,
            lambda backend: backend.remove_secret(key),
            lambda: resolve_passphrase(config),
        )
    except SvenError as e:
        error(f"Failed to remove secret: {e}")
        raise SystemExit(1) from e
    success(message)


@click.command("list")
@click.pass_context
def list_secrets(ctx: click.Context) -> None:
    """List secret names."""
    config = get_config(ctx)
    try:
        keys = run_with_fallback(
            config,
            lambda backend: backend.list_secrets(),
            lambda: resolve_passphrase(config),
        )
    except SvenError as e:
        error(f"Failed to list secrets: {e}")
        raise SystemExit(1) from e

    if not keys:
        click.echo("No secrets found")
        return
    click.echo("Secrets:")
    for key in keys:
        click.echo(f"  {key}")


@click.command()
@click.option(
    "--shell", "-s",
    type=click.Choice(SUPPORTED_SHELLS),
    default=_default_shell,
    help="Shell syntax to emit (default: from $SHELL)",
)
@click.pass_context
def export(ctx: click.Context, shell: str) -> None:
    """Print every secret as shell export statements.

    Examples:
        eval "$(sven export --shell bash)"
        sven export --shell fish | source
    """
    config = get_config(ctx)
    try:
        secrets = run_with_fallback(
            config,
            lambda backend: backend.get_secrets(shell),
            lambda: resolve_passphrase(config),
        )
    except SvenError as e:
        error(f"Failed to export secrets: {e}")
        raise SystemExit(1) from e

    for key, value in secrets:
        click.echo(format_export(key, value, shell))
