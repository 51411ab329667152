"""Secret vault: the store and the cipher used together.

This is the direct, daemon-free way of reading and writing secrets. The
daemon's persistence worker owns exactly one vault.
"""

import logging
from types import TracebackType

from pydantic import ValidationError

from sven.config import SvenConfig
from sven.exceptions import CryptoError, InvalidSecretError
from sven.models.secret import Secret
from sven.services.cipher import KeyPairCipher
from sven.services.store import SecretStore

logger = logging.getLogger(__name__)

KEY_FINGERPRINT_META = "key_fingerprint"


class SecretVault:
    """Encrypted key/value access over a SecretStore and a KeyPairCipher."""

    def __init__(self, store: SecretStore, cipher: KeyPairCipher) -> None:
        """Initialize the vault.

        The store is bound to the cipher's key on first use. A store written
        with a different key is rejected.

        Args:
            store: The open secret store.
            cipher: The unlocked cipher.

        Raises:
            CryptoError: If the store was written with a different key.
        """
        self._store = store
        self._cipher = cipher
        self._bind_key()

    @classmethod
    def open(cls, config: SvenConfig, passphrase: str | None = None) -> "SecretVault":
        """Open the store and unlock the key named by config.

        Args:
            config: Resolved configuration.
            passphrase: Passphrase for the private key, if it has one.

        Returns:
            An open vault.
        """
        cipher = KeyPairCipher.unlock(config.key_path, passphrase)
        store = SecretStore(config.db_path)
        try:
            return cls(store, cipher)
        except BaseException:
            store.close()
            raise

    def _bind_key(self) -> None:
        recorded = self._store.get_meta(KEY_FINGERPRINT_META)
        if recorded is None:
            self._store.set_meta(KEY_FINGERPRINT_META, self._cipher.fingerprint)
        elif recorded != self._cipher.fingerprint:
            raise CryptoError(
                "Secret store was encrypted with a different key "
                f"({recorded[:16]}, current key {self._cipher.fingerprint[:16]})"
            )

    def add_secret(self, key: str, value: str) -> str:
        """Encrypt and store a secret, replacing any existing value.

        Returns:
            Confirmation message.

        Raises:
            InvalidSecretError: If the key is empty.
        """
        try:
            secret = Secret(key=key, value=value)
        except ValidationError as e:
            raise InvalidSecretError(e.errors()[0]["msg"]) from e

        ciphertext = self._cipher.encrypt(secret.value)
        self._store.put_encrypted(secret.key, ciphertext)
        logger.debug("Stored secret %s", secret.key)
        return f"Added secret: {secret.key}"

    def remove_secret(self, key: str) -> str:
        """Remove a secret. Removing a missing key is not an error.

        Returns:
            Confirmation message.
        """
        self._store.delete(key)
        logger.debug("Removed secret %s", key)
        return f"Removed secret: {key}"

    def list_secrets(self) -> list[str]:
        """List all secret keys in key order."""
        return self._store.list_keys()

    def get_secrets(self, shell: str | None = None) -> list[tuple[str, str]]:
        """Decrypt every stored secret.

        Args:
            shell: Unused; accepted so the vault and the daemon client share a
                signature.

        Returns:
            (key, value) pairs in key order.
        """
        return [
            (key, self._cipher.decrypt(ciphertext))
            for key, ciphertext in self._store.list_all()
        ]

    def close(self) -> None:
        """Close the underlying store."""
        self._store.close()

    def __enter__(self) -> "SecretVault":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
