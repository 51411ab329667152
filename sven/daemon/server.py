"""sven daemon server orchestration.

Main entry point for the daemon that wires the persistence worker, the cache
and the Unix socket transport together and manages their lifecycle.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from sven.config import SvenConfig, load_config
from sven.daemon import lifecycle
from sven.daemon.cache import SecretCache
from sven.daemon.handlers import HandlerContext, dispatch_command
from sven.daemon.lifecycle import DaemonState
from sven.daemon.protocol import Command, Response
from sven.daemon.transports.unix_socket import UnixSocketTransport
from sven.daemon.worker import PersistenceWorker
from sven.exceptions import AlreadyRunningError, SvenError
from sven.services.vault import SecretVault

logger = logging.getLogger(__name__)


class SvenDaemon:
    """sven daemon server.

    Holds every secret in memory, decrypted once at startup, and serves them
    to clients over a Unix socket.
    """

    def __init__(
        self,
        config: SvenConfig,
        passphrase: str | None = None,
        vault_factory: Callable[[], SecretVault] | None = None,
    ) -> None:
        """Initialize the daemon.

        Args:
            config: Resolved configuration.
            passphrase: Passphrase for the private key, if it has one.
            vault_factory: Opens the vault on the worker thread. Defaults to
                SecretVault.open with config and passphrase.
        """
        self._config = config
        self._vault_factory = vault_factory or (lambda: SecretVault.open(config, passphrase))

        self._cache = SecretCache()
        self._worker: PersistenceWorker | None = None
        self._socket_transport: UnixSocketTransport | None = None
        self._context: HandlerContext | None = None

        self._state = DaemonState.NOT_RUNNING
        self._pid: int | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._shutdown_event: asyncio.Event | None = None

    @property
    def state(self) -> DaemonState:
        """Get the lifecycle state."""
        return self._state

    @property
    def is_running(self) -> bool:
        """Check if the daemon is running."""
        return self._state == DaemonState.RUNNING

    @property
    def cache(self) -> SecretCache:
        """Get the secret cache."""
        return self._cache

    async def start(self) -> None:
        """Start the daemon.

        Writes the PID file, opens the vault on the worker thread, decrypts
        every secret into the cache and binds the socket. Any failure undoes
        the steps already taken and is re-raised.

        Raises:
            AlreadyRunningError: If this instance or another daemon is already
                live. Nothing is changed.
            SvenError: If the vault cannot be opened or decrypted.
            OSError: If the PID file cannot be written or the socket bound.
        """
        if self._state != DaemonState.NOT_RUNNING:
            raise AlreadyRunningError(self._pid)

        lifecycle.ensure_not_running(self._config)
        lifecycle.remove_stale_endpoint(self._config.socket_path)

        logger.info("Starting sven daemon...")
        self._state = DaemonState.STARTING
        self._loop = asyncio.get_running_loop()
        self._shutdown_event = asyncio.Event()

        try:
            self._pid = os.getpid()
            lifecycle.write_pid_file(self._config.pid_path, self._pid)

            self._worker = PersistenceWorker(self._vault_factory)
            await self._loop.run_in_executor(None, self._worker.start)

            logger.info("Populating cache...")
            secrets = await asyncio.wrap_future(self._worker.load_all())
            self._cache.replace_all(secrets)

            self._context = HandlerContext(
                cache=self._cache,
                worker=self._worker,
                request_shutdown=self.request_shutdown,
            )

            self._socket_transport = UnixSocketTransport(
                self._config.socket_path,
                self._handle_command,
            )
            await self._socket_transport.start()
        except BaseException:
            logger.error("Daemon startup failed")
            await self._teardown()
            raise

        self._state = DaemonState.RUNNING
        logger.info("sven daemon started successfully")
        logger.info("  PID: %d", self._pid)
        logger.info("  Cache: %d secrets loaded", self._cache.count)
        logger.info("  Unix socket: %s", self._config.socket_path)

    async def stop(self) -> None:
        """Stop the daemon.

        Stops accepting connections, lets the worker finish, removes the
        socket and (best effort) the PID file.
        """
        if self._state != DaemonState.RUNNING:
            return

        logger.info("Stopping sven daemon...")
        self._state = DaemonState.SHUTTING_DOWN
        await self._teardown()
        logger.info("sven daemon stopped")

    async def _teardown(self) -> None:
        """Release everything start() acquired, in reverse order."""
        if self._socket_transport:
            await self._socket_transport.stop()
            self._socket_transport = None

        if self._worker:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._worker.stop)
            self._worker = None

        if self._pid is not None:
            lifecycle.remove_pid_file(self._config.pid_path, self._pid)
            self._pid = None

        self._context = None
        self._state = DaemonState.NOT_RUNNING

        if self._shutdown_event:
            self._shutdown_event.set()

    def request_shutdown(self) -> None:
        """Ask run_forever() to stop. Safe to call from any thread."""
        if self._loop is None or self._shutdown_event is None:
            return
        self._loop.call_soon_threadsafe(self._shutdown_event.set)

    async def run_forever(self) -> None:
        """Run the daemon until shutdown is requested.

        Blocks until a Shutdown command, a signal or request_shutdown().
        """
        await self.start()

        try:
            if self._shutdown_event:
                await self._shutdown_event.wait()
        finally:
            await self.stop()

    def health_check(self) -> dict[str, Any]:
        """Get health status of the daemon.

        Returns:
            Dictionary with health information.
        """
        return {
            "status": self._state.value,
            "pid": self._pid,
            "cache": self._cache.get_stats(),
            "socket": {
                "path": str(self._config.socket_path),
                "running": bool(self._socket_transport and self._socket_transport.is_running),
            },
            "worker": bool(self._worker and self._worker.is_alive),
        }

    async def _handle_command(self, command: Command) -> Response:
        """Handle one decoded command."""
        if self._context is None:
            raise SvenError("Daemon not initialized")
        return await dispatch_command(self._context, command)


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging for the daemon."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _read_passphrase() -> str | None:
    """Read the passphrase line handed over by the launcher."""
    line = sys.stdin.readline()
    passphrase = line.rstrip("\n")
    return passphrase or None


def main() -> None:
    """Entry point for the sven-daemon command."""
    # Set process title for ps/top (optional)
    try:
        import setproctitle
        setproctitle.setproctitle("sven daemon")
    except ImportError:
        pass  # Not critical - just makes it easier to find in ps

    parser = argparse.ArgumentParser(description="sven secret cache daemon")
    parser.add_argument(
        "--config", "-c",
        type=Path,
        help="Path to config file (default: ~/.config/sven/config.yaml)",
    )
    parser.add_argument(
        "--passphrase-stdin",
        action="store_true",
        help="Read the key passphrase from the first line of stdin",
    )
    parser.add_argument(
        "--verbose", "-V",
        action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args()

    _setup_logging(args.verbose)

    try:
        config = load_config(args.config)
    except SvenError as e:
        logger.error("%s", e)
        sys.exit(1)

    passphrase = _read_passphrase() if args.passphrase_stdin else os.environ.get("SVEN_PASSPHRASE")
    daemon = SvenDaemon(config, passphrase=passphrase)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def handle_shutdown(signum: int) -> None:
        """Handle shutdown signal."""
        logger.info("Received signal %s, shutting down...", signal.Signals(signum).name)
        daemon.request_shutdown()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_shutdown, sig)

    exit_code = 0
    try:
        loop.run_until_complete(daemon.run_forever())
    except SvenError as e:
        logger.error("Daemon error: %s", e)
        exit_code = 1
    except OSError as e:
        logger.error("Daemon error: %s", lifecycle.describe_bind_error(e))
        exit_code = 1
    finally:
        loop.close()

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
