"""Main CLI entry point for sven."""

import logging
import os
import sys
from pathlib import Path

import click

from sven import __version__
from sven.cli.common import error
from sven.cli.daemon_cmd import logs, status, stop, unlock
from sven.cli.init import init
from sven.cli.secrets import add, export, list_secrets, remove
from sven.config import load_config
from sven.exceptions import SvenError


@click.group()
@click.option(
    "--config", "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to config file",
)
@click.option("--debug/--no-debug", default=False, help="Show debug information")
@click.version_option(__version__, prog_name="sven")
@click.pass_context
def cli(ctx: click.Context, config: Path | None, debug: bool) -> None:
    """sven - encrypted secrets for your shell environment.

    Secrets are stored encrypted on disk. Run 'sven unlock' to keep them
    decrypted in memory so exports need no further unlocking.
    """
    if debug:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["config"] = load_config(config)
    ctx.obj["debug"] = debug


# Register commands
cli.add_command(init)
cli.add_command(add)
cli.add_command(remove)
cli.add_command(list_secrets, name="list")
cli.add_command(export)
cli.add_command(unlock)
cli.add_command(status)
cli.add_command(stop)
cli.add_command(logs)


def main() -> None:
    """Main entry point with error handling."""
    try:
        cli()
    except BrokenPipeError:
        # Output was piped into something that exited early
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        sys.exit(0)
    except SvenError as e:
        error(str(e))
        sys.exit(1)
    except Exception as e:
        if "--debug" in sys.argv:
            raise
        error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
