"""Daemon management commands for sven CLI: unlock, status, stop, logs."""

import contextlib
import os
import signal
import subprocess

import click

from sven.cli.client import DaemonClient
from sven.cli.common import error, get_config, info, resolve_passphrase, success, warning
from sven.daemon import lifecycle
from sven.exceptions import AlreadyRunningError, SvenError
from sven.services.vault import SecretVault


@click.command()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose daemon logging")
@click.pass_context
def unlock(ctx: click.Context, verbose: bool) -> None:
    """Unlock the key and start the caching daemon."""
    config = get_config(ctx)

    pid = lifecycle.live_pid(config)
    if pid:
        warning(f"Daemon is already running (PID {pid})")
        return

    try:
        passphrase = resolve_passphrase(config)
        # Fail here, where the user can see it, rather than in the detached daemon
        SecretVault.open(config, passphrase).close()
        proc = lifecycle.launch_daemon(
            config,
            passphrase=passphrase,
            config_path=ctx.obj.get("config_path"),
            verbose=verbose,
        )
    except AlreadyRunningError as e:
        warning(str(e))
        return
    except SvenError as e:
        error(f"Failed to start daemon: {e}")
        raise SystemExit(1) from e
    except OSError as e:
        error(f"Failed to start daemon: {e}")
        raise SystemExit(1) from e

    if lifecycle.wait_for_daemon(config, process=proc):
        success("Daemon started successfully. Secrets are now unlocked and cached in memory.")
        info(f"  PID: {proc.pid}")
        info(f"  Socket: {config.socket_path}")
        info(f"  Logs: {config.log_path}")
    elif proc.poll() is not None:
        error("Daemon exited during startup")
        info(f"Check logs: {config.log_path}")
        raise SystemExit(1)
    else:
        info("Daemon started but may need a moment to initialize fully. Run 'sven status' to check.")


@click.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Check daemon status."""
    config = get_config(ctx)
    pid = lifecycle.live_pid(config)

    if not pid:
        info("Daemon is not running. Secrets will be decrypted on demand.")
        return

    if lifecycle.socket_accepts(config.socket_path):
        success(f"Daemon is running (PID {pid}). Secrets are unlocked and cached in memory.")
        info(f"  Socket: {config.socket_path}")
    else:
        warning(f"Daemon process running (PID {pid}) but not responding")
        info("The daemon may still be starting up, or may have crashed.")
        info(f"Check logs: {config.log_path}")


@click.command()
@click.option("--force", "-f", is_flag=True, help="Send SIGTERM if the daemon does not answer")
@click.pass_context
def stop(ctx: click.Context, force: bool) -> None:
    """Stop the daemon and forget the unlocked secrets."""
    config = get_config(ctx)
    pid = lifecycle.live_pid(config)

    if not pid:
        warning("Daemon is not running.")
        return

    try:
        message = DaemonClient(config).shutdown()
    except SvenError as e:
        if not force:
            error(f"Failed to stop daemon: {e}")
            info("Use --force to send SIGTERM.")
            raise SystemExit(1) from e
        warning(f"Daemon did not answer ({e}), sending SIGTERM...")
        try:
            os.kill(pid, signal.SIGTERM)
        except OSError as kill_error:
            error(f"Failed to send SIGTERM: {kill_error}")
            raise SystemExit(1) from kill_error
        message = "Daemon terminated"

    if lifecycle.wait_for_shutdown(pid):
        success(message)
    else:
        warning(f"{message}, but process {pid} is still exiting")


@click.command()
@click.option("--lines", "-n", type=int, default=50, help="Number of lines to show")
@click.option("--follow", "-f", is_flag=True, help="Follow log output")
@click.pass_context
def logs(ctx: click.Context, lines: int, follow: bool) -> None:
    """View daemon logs."""
    log_path = get_config(ctx).log_path
    if not log_path.exists():
        warning("No log file found")
        info(f"Expected location: {log_path}")
        return

    if follow:
        with contextlib.suppress(KeyboardInterrupt):
            subprocess.run(["tail", "-f", str(log_path)], check=True)
    else:
        try:
            result = subprocess.run(
                ["tail", "-n", str(lines), str(log_path)],
                capture_output=True,
                text=True,
                check=True,
            )
            click.echo(result.stdout, nl=False)
        except subprocess.CalledProcessError as e:
            error(f"Failed to read logs: {e}")
