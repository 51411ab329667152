"""Single-threaded persistence worker for the sven daemon.

The cipher holds one unlocked key and must never see two operations at once.
Rather than sharing it behind a lock, the daemon gives the vault (cipher and
store) to one dedicated thread and reaches it only through a FIFO queue. Each
request carries its own Future as the reply channel.
"""

import logging
import queue
import threading
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any

from sven.exceptions import InternalChannelError
from sven.services.vault import SecretVault

logger = logging.getLogger(__name__)


@dataclass
class _AddSecret:
    key: str
    value: str
    reply: Future[str] = field(default_factory=Future)


@dataclass
class _RemoveSecret:
    key: str
    reply: Future[str] = field(default_factory=Future)


@dataclass
class _LoadAll:
    reply: Future[list[tuple[str, str]]] = field(default_factory=Future)


class _Stop:
    """Sentinel ending the worker loop."""


_Request = _AddSecret | _RemoveSecret | _LoadAll


class PersistenceWorker:
    """Serializes every operation that touches the vault.

    Example:
        worker = PersistenceWorker(lambda: SecretVault.open(config, passphrase))
        worker.start()
        message = worker.add_secret("FOO", "bar").result()
        worker.stop()
    """

    # How long start() waits for the vault to open on the worker thread
    OPEN_TIMEOUT = 60.0

    def __init__(self, vault_factory: Callable[[], SecretVault]) -> None:
        """Initialize the worker.

        Args:
            vault_factory: Opens the vault. Called on the worker thread, which
                then owns the vault until it stops.
        """
        self._vault_factory = vault_factory
        self._queue: queue.Queue[_Request | _Stop] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._ready: Future[None] = Future()
        self._accepting = False
        self._submit_lock = threading.Lock()

    @property
    def is_alive(self) -> bool:
        """Check if the worker thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the worker thread and wait for the vault to open.

        Raises:
            SvenError: Whatever opening the vault raised (bad key, unreadable store).
        """
        if self._thread is not None:
            return

        self._accepting = True
        self._thread = threading.Thread(
            target=self._run,
            name="sven-persistence",
            daemon=True,
        )
        self._thread.start()

        try:
            self._ready.result(timeout=self.OPEN_TIMEOUT)
        except BaseException:
            self._accepting = False
            self._thread.join(timeout=5)
            raise

        logger.info("Persistence worker started")

    def stop(self, timeout: float | None = None) -> None:
        """Stop the worker after the request it is processing.

        Requests still queued are failed with InternalChannelError.
        """
        with self._submit_lock:
            if not self._accepting:
                return
            self._accepting = False
            self._queue.put(_Stop())

        if self._thread is not None:
            self._thread.join(timeout=timeout)
        logger.info("Persistence worker stopped")

    def add_secret(self, key: str, value: str) -> Future[str]:
        """Queue an encrypted write of key.

        Returns:
            Future resolving to a confirmation message.
        """
        return self._submit(_AddSecret(key, value)).reply

    def remove_secret(self, key: str) -> Future[str]:
        """Queue removal of key.

        Returns:
            Future resolving to a confirmation message.
        """
        return self._submit(_RemoveSecret(key)).reply

    def load_all(self) -> Future[list[tuple[str, str]]]:
        """Queue a full decrypt of the store.

        Returns:
            Future resolving to (key, value) pairs in key order.
        """
        return self._submit(_LoadAll()).reply

    def _submit(self, request: Any) -> Any:
        with self._submit_lock:
            if not self._accepting:
                raise InternalChannelError("Persistence worker is not running")
            self._queue.put(request)
        return request

    def _run(self) -> None:
        """Worker thread body."""
        try:
            vault = self._vault_factory()
        except BaseException as e:
            self._ready.set_exception(e)
            return
        self._ready.set_result(None)

        try:
            while True:
                request = self._queue.get()
                if isinstance(request, _Stop):
                    break
                self._process(vault, request)
        finally:
            vault.close()
            self._fail_pending()

    def _process(self, vault: SecretVault, request: _Request) -> None:
        """Apply one request and resolve its reply."""
        if not request.reply.set_running_or_notify_cancel():
            return

        try:
            result: Any
            match request:
                case _AddSecret(key=key, value=value):
                    result = vault.add_secret(key, value)
                case _RemoveSecret(key=key):
                    result = vault.remove_secret(key)
                case _LoadAll():
                    result = vault.get_secrets()
        except Exception as e:
            logger.error("Persistence request %s failed: %s", type(request).__name__, e)
            request.reply.set_exception(e)
        else:
            request.reply.set_result(result)

    def _fail_pending(self) -> None:
        """Fail everything left in the queue once the loop has exited."""
        with self._submit_lock:
            self._accepting = False
        while True:
            try:
                request = self._queue.get_nowait()
            except queue.Empty:
                return
            if isinstance(request, _Stop):
                continue
            if request.reply.set_running_or_notify_cancel():
                request.reply.set_exception(
                    InternalChannelError("Persistence worker stopped before replying")
                )
