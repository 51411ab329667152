"""sven daemon - keeps unlocked secrets in memory.

The daemon decrypts the store once, serves reads from an in-memory cache and
funnels every write through a single persistence worker that owns the
cipher, so the key is unlocked only once per session.
"""

from sven.daemon.cache import SecretCache
from sven.daemon.handlers import HandlerContext, dispatch_command
from sven.daemon.lifecycle import DaemonState
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
from sven.daemon.server import SvenDaemon
from sven.daemon.worker import PersistenceWorker

__all__ = [
    "SvenDaemon",
    "DaemonState",
    "SecretCache",
    "PersistenceWorker",
    "HandlerContext",
    "dispatch_command",
    "Command",
    "GetSecrets",
    "AddSecret",
    "RemoveSecret",
    "ListSecrets",
    "Shutdown",
    "Response",
    "Secrets",
    "KeyList",
    "Success",
    "Error",
]
