"""Command handlers for the sven daemon.

Reads are answered from the SecretCache. Writes go to the PersistenceWorker,
and the cache is updated only once the worker confirms the durable change.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from sven.daemon.cache import SecretCache
from sven.daemon.protocol import (
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
)
from sven.daemon.worker import PersistenceWorker
from sven.exceptions import InternalChannelError, SvenError

logger = logging.getLogger(__name__)


@dataclass
class HandlerContext:
    """Context providing access to the cache, the worker and shutdown for handlers."""

    cache: SecretCache
    worker: PersistenceWorker
    request_shutdown: Callable[[], None]


async def handle_add_secret(ctx: HandlerContext, key: str, value: str) -> Response:
    """Persist a secret, then publish it to the cache."""
    try:
        message = await asyncio.wrap_future(ctx.worker.add_secret(key, value))
    except InternalChannelError as e:
        return Error(f"Failed to communicate with persistence worker: {e}")
    except SvenError as e:
        return Error(f"Failed to add secret: {e}")

    ctx.cache.upsert(key, value)
    return Success(message)


async def handle_remove_secret(ctx: HandlerContext, key: str) -> Response:
    """Delete a secret durably, then drop it from the cache."""
    try:
        message = await asyncio.wrap_future(ctx.worker.remove_secret(key))
    except InternalChannelError as e:
        return Error(f"Failed to communicate with persistence worker: {e}")
    except SvenError as e:
        return Error(f"Failed to remove secret: {e}")

    ctx.cache.remove(key)
    return Success(message)


async def dispatch_command(ctx: HandlerContext, command: Command) -> Response:
    """Dispatch a decoded command to its handler.

    Args:
        ctx: Handler context.
        command: The decoded command.

    Returns:
        The response to send back.
    """
    match command:
        case GetSecrets(shell=shell):
            logger.debug("Serving secrets for %s", shell)
            return Secrets(ctx.cache.read())
        case ListSecrets():
            return KeyList(ctx.cache.read_keys())
        case AddSecret(key=key, value=value):
            return await handle_add_secret(ctx, key, value)
        case RemoveSecret(key=key):
            return await handle_remove_secret(ctx, key)
        case Shutdown():
            logger.info("Shutdown requested by client")
            ctx.request_shutdown()
            return Success("Daemon shutting down")
    raise TypeError(f"Unhandled command: {command!r}")
