"""In-memory secret cache for the sven daemon."""

import logging
import threading
from collections.abc import Iterable
from typing import Any

logger = logging.getLogger(__name__)


class SecretCache:
    """Thread-safe mapping of secret key to plaintext value.

    The daemon's source of truth for reads. Writers only apply a change after
    the persistence worker has confirmed the matching durable write, so the
    cache never holds anything the store does not.
    """

    def __init__(self) -> None:
        """Initialize an empty cache."""
        self._secrets: dict[str, str] = {}
        self._lock = threading.Lock()
        self._is_populated = False

    @property
    def is_populated(self) -> bool:
        """Check if the cache has been populated."""
        return self._is_populated

    @property
    def count(self) -> int:
        """Get the number of cached secrets."""
        with self._lock:
            return len(self._secrets)

    def replace_all(self, secrets: Iterable[tuple[str, str]]) -> None:
        """Replace the whole cache, used once with the decrypted store.

        Args:
            secrets: (key, value) pairs.
        """
        loaded = dict(secrets)
        with self._lock:
            self._secrets = loaded
            self._is_populated = True
        logger.info("Cache populated: %d secrets loaded", len(loaded))

    def read(self) -> list[tuple[str, str]]:
        """Snapshot all (key, value) pairs in key order."""
        with self._lock:
            return sorted(self._secrets.items())

    def read_keys(self) -> list[str]:
        """Snapshot all keys in key order."""
        with self._lock:
            return sorted(self._secrets)

    def upsert(self, key: str, value: str) -> None:
        """Insert or replace a secret after its write was confirmed."""
        with self._lock:
            self._secrets[key] = value

    def remove(self, key: str) -> None:
        """Drop a secret after its deletion was confirmed. Missing keys are ignored."""
        with self._lock:
            self._secrets.pop(key, None)

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dictionary with cache stats.
        """
        with self._lock:
            return {
                "total_secrets": len(self._secrets),
                "is_populated": self._is_populated,
            }
