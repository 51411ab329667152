"""Init command for sven CLI."""

import os

import click

from sven.cli.common import console, error, get_config, info, success
from sven.exceptions import SvenError
from sven.services.cipher import generate_key


@click.command()
@click.option("--no-passphrase", is_flag=True, help="Store the key unencrypted")
@click.option("--force", is_flag=True, help="Replace an existing key (old secrets become unreadable)")
@click.pass_context
def init(ctx: click.Context, no_passphrase: bool, force: bool) -> None:
    """Generate the private key used to encrypt secrets."""
    config = get_config(ctx)

    if config.key_path.exists() and not force:
        error(f"Key already exists at {config.key_path}")
        info("Use --force to replace it. Existing secrets will become unreadable.")
        raise SystemExit(1)

    passphrase: str | None = None
    if not no_passphrase:
        passphrase = os.environ.get("SVEN_PASSPHRASE")
        if passphrase is None:
            passphrase = click.prompt(
                "Passphrase (empty for none)",
                hide_input=True,
                confirmation_prompt=True,
                default="",
                show_default=False,
                err=True,
            )

    try:
        with console.status("Generating key..."):
            fingerprint = generate_key(
                config.key_path,
                passphrase=passphrase or None,
                key_size=config.key_size,
                overwrite=force,
            )
    except SvenError as e:
        error(str(e))
        raise SystemExit(1) from e

    success(f"Generated key at {config.key_path}")
    info(f"  Fingerprint: {fingerprint}")
    if not passphrase:
        info("  The key is not protected by a passphrase.")
