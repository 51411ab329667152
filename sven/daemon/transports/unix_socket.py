"""Unix socket transport for the sven daemon.

Newline-delimited JSON over a Unix domain socket. Each connection carries
exactly one command line from the client and one response line back.
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from sven.daemon.protocol import (
    Command,
    Error,
    Response,
    decode_command,
    encode_response,
)
from sven.exceptions import ProtocolError

logger = logging.getLogger(__name__)

MAX_MESSAGE_SIZE = 10 * 1024 * 1024  # 10 MB max line size

# How long stop() lets in-flight connections finish before cancelling them
DRAIN_TIMEOUT = 5.0


class UnixSocketTransport:
    """Accepts connections and hands each decoded command to a handler.

    Every connection runs in its own task, so a slow request never holds up
    accepting the next one.
    """

    def __init__(
        self,
        socket_path: Path,
        handler: Callable[[Command], Awaitable[Response]],
    ) -> None:
        """Initialize the Unix socket transport.

        Args:
            socket_path: Path to the Unix domain socket.
            handler: Async function turning a command into a response.
        """
        self._socket_path = socket_path
        self._handler = handler
        self._server: asyncio.Server | None = None
        self._clients: set[asyncio.Task[None]] = set()

    @property
    def socket_path(self) -> Path:
        """Get the socket path."""
        return self._socket_path

    @property
    def is_running(self) -> bool:
        """Check if the transport is running."""
        return self._server is not None and self._server.is_serving()

    async def start(self) -> None:
        """Bind the socket and begin accepting connections.

        The caller is expected to have cleared a stale socket file first;
        binding over an existing path fails with EADDRINUSE. Socket
        permissions are set to owner-only (0o600).

        Raises:
            OSError: If the socket cannot be bound.
        """
        self._socket_path.parent.mkdir(parents=True, exist_ok=True)

        self._server = await asyncio.start_unix_server(
            self._handle_client,
            path=str(self._socket_path),
            limit=MAX_MESSAGE_SIZE,
        )
        self._socket_path.chmod(0o600)

        logger.info("Unix socket listening at %s", self._socket_path)

    async def stop(self) -> None:
        """Stop accepting, finish or cancel open connections, remove the socket file."""
        if self._server is None:
            return

        self._server.close()

        if self._clients:
            _, pending = await asyncio.wait(set(self._clients), timeout=DRAIN_TIMEOUT)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        self._clients.clear()

        await self._server.wait_closed()
        self._server = None

        with contextlib.suppress(FileNotFoundError):
            self._socket_path.unlink()

        logger.info("Unix socket server stopped")

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Handle one connection: one command in, one response out.

        Args:
            reader: Stream reader for receiving data.
            writer: Stream writer for sending data.
        """
        task = asyncio.current_task()
        if task:
            self._clients.add(task)

        try:
            line = await reader.readline()
            if not line:
                logger.debug("Client closed connection without a command")
                return

            try:
                command = decode_command(line)
            except ProtocolError as e:
                # No response: the client sees the connection close
                logger.warning("Rejected malformed command: %s", e)
                return

            logger.debug("Received %s", type(command).__name__)
            response = await self._process(command)
            await self._write_response(writer, response)

        except asyncio.CancelledError:
            logger.debug("Client connection cancelled")
        except (ValueError, OSError) as e:
            logger.error("Error handling client: %s", e)
        finally:
            writer.close()
            with contextlib.suppress(Exception):
                await writer.wait_closed()

            if task:
                self._clients.discard(task)

    async def _process(self, command: Command) -> Response:
        try:
            return await self._handler(command)
        except Exception as e:
            logger.exception("Error processing %s", type(command).__name__)
            return Error(f"Internal error: {e}")

    async def _write_response(self, writer: asyncio.StreamWriter, response: Response) -> None:
        """Write the response line. A client that already left is ignored."""
        try:
            writer.write((encode_response(response) + "\n").encode("utf-8"))
            await writer.drain()
        except (ConnectionError, BrokenPipeError) as e:
            logger.debug("Client went away before the response was sent: %s", e)
