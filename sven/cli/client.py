"""Daemon client for CLI communication.

This module provides a thin client that talks to the sven daemon over its
Unix socket, plus the fallback to direct vault access when no daemon is
reachable.
"""

import logging
import socket
from collections.abc import Callable
from pathlib import Path
from typing import Protocol, TypeVar

from sven.config import SvenConfig
from sven.daemon import lifecycle
from sven.daemon.protocol import (
    DEFAULT_SHELL,
    AddSecret,
    Command,
    Error,
    GetSecrets,
    KeyList,
    ListSecrets,
    RemoveSecret,
    Response,
    Secrets,
    Shutdown,
    Success,
    decode_response,
    encode_command,
)
from sven.exceptions import DaemonError, NotRunningError, ProtocolError
from sven.services.vault import SecretVault

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SecretBackend(Protocol):
    """Operations shared by DaemonClient and SecretVault."""

    def get_secrets(self, shell: str | None = None) -> list[tuple[str, str]]: ...

    def list_secrets(self) -> list[str]: ...

    def add_secret(self, key: str, value: str) -> str: ...

    def remove_secret(self, key: str) -> str: ...


class DaemonClient:
    """Client for communicating with the sven daemon.

    Sends one newline-terminated JSON command per connection and reads one
    response line back.

    Example:
        client = DaemonClient(config)
        if client.is_running():
            for key in client.list_secrets():
                print(key)
    """

    def __init__(self, config: SvenConfig, timeout: float | None = None) -> None:
        """Initialize the daemon client.

        Args:
            config: Resolved configuration (socket and PID file locations).
            timeout: Socket timeout in seconds (default: config.request_timeout).
        """
        self._config = config
        self._timeout = timeout if timeout is not None else config.request_timeout

    @property
    def socket_path(self) -> Path:
        """Get the socket path."""
        return self._config.socket_path

    def is_running(self) -> bool:
        """Check if the daemon is running (PID file names a live process)."""
        return lifecycle.is_running(self._config)

    def send_command(self, command: Command) -> Response:
        """Send a command and wait for its response.

        Args:
            command: The command to send.

        Returns:
            The decoded response.

        Raises:
            NotRunningError: If the daemon cannot be reached.
            DaemonError: If the connection fails mid-request.
            ProtocolError: If the response cannot be decoded.
        """
        if not self.socket_path.exists():
            raise NotRunningError("Daemon is not running")

        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self._timeout)
        try:
            try:
                sock.connect(str(self.socket_path))
            except (FileNotFoundError, ConnectionRefusedError) as e:
                raise NotRunningError(f"Daemon is not running: {e}") from e
            except OSError as e:
                raise NotRunningError(f"Failed to connect to daemon: {e}") from e

            try:
                sock.sendall((encode_command(command) + "\n").encode("utf-8"))
                with sock.makefile("rb") as stream:
                    line = stream.readline()
            except TimeoutError as e:
                raise DaemonError("Daemon request timed out") from e
            except OSError as e:
                raise DaemonError(f"Connection to daemon failed: {e}") from e
        finally:
            sock.close()

        if not line:
            raise DaemonError("Daemon closed the connection without a response")
        return decode_response(line)

    def _expect(self, response: Response, expected: type[T]) -> T:
        if isinstance(response, expected):
            return response
        if isinstance(response, Error):
            raise DaemonError(response.message)
        raise ProtocolError(f"Unexpected response from daemon: {type(response).__name__}")

    # Convenience methods for each command

    def get_secrets(self, shell: str | None = None) -> list[tuple[str, str]]:
        """Get every secret as (key, value) pairs."""
        response = self.send_command(GetSecrets(shell=shell or DEFAULT_SHELL))
        return self._expect(response, Secrets).secrets

    def list_secrets(self) -> list[str]:
        """List every secret key."""
        return self._expect(self.send_command(ListSecrets()), KeyList).keys

    def add_secret(self, key: str, value: str) -> str:
        """Add or overwrite a secret.

        Returns:
            The daemon's confirmation message.
        """
        return self._expect(self.send_command(AddSecret(key=key, value=value)), Success).message

    def remove_secret(self, key: str) -> str:
        """Remove a secret.

        Returns:
            The daemon's confirmation message.
        """
        return self._expect(self.send_command(RemoveSecret(key=key)), Success).message

    def shutdown(self) -> str:
        """Ask the daemon to shut down.

        Returns:
            The daemon's confirmation message.
        """
        return self._expect(self.send_command(Shutdown()), Success).message


def run_with_fallback(
    config: SvenConfig,
    operation: Callable[[SecretBackend], T],
    unlock: Callable[[], str | None],
) -> T:
    """Run an operation through the daemon, or directly if it is unreachable.

    Args:
        config: Resolved configuration.
        operation: Called with either a DaemonClient or an open SecretVault.
        unlock: Returns the key passphrase; only called for direct access.

    Returns:
        Whatever operation returns.
    """
    client = DaemonClient(config)
    if client.is_running():
        try:
            return operation(client)
        except NotRunningError as e:
            logger.info("Daemon unreachable, using direct access: %s", e)

    with SecretVault.open(config, passphrase=unlock()) as vault:
        return operation(vault)
