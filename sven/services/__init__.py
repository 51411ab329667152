"""Storage and encryption services."""

from sven.services.cipher import KeyPairCipher, generate_key, key_is_encrypted
from sven.services.store import SecretStore
from sven.services.vault import SecretVault

__all__ = [
    "KeyPairCipher",
    "SecretStore",
    "SecretVault",
    "generate_key",
    "key_is_encrypted",
]
