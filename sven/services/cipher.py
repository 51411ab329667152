"""Hybrid public-key encryption for secret values.

Each value is encrypted with a fresh Fernet key, and that key is wrapped with
the RSA public key using OAEP. The stored ciphertext is base64 text:

    [2-byte big-endian wrapped-key length][wrapped key][Fernet token]

Decryption needs the private key, which is unlocked once with its passphrase.

Security Note:
    Never log plaintext values.
"""

import base64
import binascii
import hashlib
import logging
import os
import struct
from pathlib import Path

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from sven.exceptions import ConfigError, CryptoError, PassphraseRequiredError

logger = logging.getLogger(__name__)

WRAPPED_KEY_LENGTH_FORMAT = ">H"
WRAPPED_KEY_LENGTH_SIZE = 2

_OAEP = padding.OAEP(
    mgf=padding.MGF1(algorithm=hashes.SHA256()),
    algorithm=hashes.SHA256(),
    label=None,
)


def _load_private_key(key_path: Path, passphrase: str | None) -> rsa.RSAPrivateKey:
    """Load and unlock a PEM private key.

    Raises:
        CryptoError: If the key is missing, unreadable or the passphrase is wrong.
        PassphraseRequiredError: If the key is encrypted and no passphrase was given.
    """
    try:
        pem = key_path.read_bytes()
    except FileNotFoundError as e:
        raise CryptoError(f"No key found at {key_path}. Run 'sven init' first.") from e
    except OSError as e:
        raise CryptoError(f"Cannot read key {key_path}: {e}") from e

    password = passphrase.encode("utf-8") if passphrase is not None else None
    try:
        key = serialization.load_pem_private_key(pem, password=password)
    except TypeError as e:
        # Raised both for "encrypted but no password" and "password but not encrypted"
        if password is None:
            raise PassphraseRequiredError(f"Key {key_path} is protected by a passphrase") from e
        key = serialization.load_pem_private_key(pem, password=None)
    except (ValueError, UnsupportedAlgorithm) as e:
        raise CryptoError(f"Could not unlock key {key_path}: bad passphrase or corrupt key") from e

    if not isinstance(key, rsa.RSAPrivateKey):
        raise CryptoError(f"Key {key_path} is not an RSA private key")
    return key


def key_is_encrypted(key_path: Path) -> bool:
    """Check whether the private key at key_path needs a passphrase."""
    try:
        _load_private_key(key_path, None)
    except PassphraseRequiredError:
        return True
    return False


def generate_key(
    key_path: Path,
    passphrase: str | None = None,
    key_size: int = 3072,
    overwrite: bool = False,
) -> str:
    """Generate a new RSA private key and write it as PEM.

    Args:
        key_path: Where to write the key.
        passphrase: Optional passphrase protecting the key.
        key_size: RSA modulus size in bits.
        overwrite: Replace an existing key file.

    Returns:
        Fingerprint of the new public key.

    Raises:
        ConfigError: If a key already exists and overwrite is False.
    """
    if key_path.exists() and not overwrite:
        raise ConfigError(f"Key already exists at {key_path}")

    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    if passphrase:
        encryption: serialization.KeySerializationEncryption = (
            serialization.BestAvailableEncryption(passphrase.encode("utf-8"))
        )
    else:
        encryption = serialization.NoEncryption()

    pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=encryption,
    )

    key_path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(pem)

    cipher = KeyPairCipher(private_key)
    logger.info("Generated %d-bit key %s", key_size, cipher.fingerprint)
    return cipher.fingerprint


class KeyPairCipher:
    """Encrypt/decrypt capability bound to one unlocked private key.

    Instances are not safe for concurrent use. The daemon hands its cipher to a
    single worker thread.
    """

    def __init__(self, private_key: rsa.RSAPrivateKey) -> None:
        self._private_key = private_key
        self._public_key = private_key.public_key()
        self._fingerprint: str | None = None

    @classmethod
    def unlock(cls, key_path: Path, passphrase: str | None = None) -> "KeyPairCipher":
        """Unlock the private key at key_path.

        Args:
            key_path: PEM private key file.
            passphrase: Passphrase, if the key is protected.

        Returns:
            A cipher bound to the unlocked key.
        """
        return cls(_load_private_key(key_path, passphrase))

    @property
    def fingerprint(self) -> str:
        """SHA-256 fingerprint of the public key, hex encoded."""
        if self._fingerprint is None:
            der = self._public_key.public_bytes(
                encoding=serialization.Encoding.DER,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            )
            self._fingerprint = hashlib.sha256(der).hexdigest()
        return self._fingerprint

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext value into base64 ciphertext."""
        data_key = Fernet.generate_key()
        token = Fernet(data_key).encrypt(plaintext.encode("utf-8"))
        try:
            wrapped = self._public_key.encrypt(data_key, _OAEP)
        except ValueError as e:
            raise CryptoError(f"Failed to encrypt value: {e}") from e

        blob = struct.pack(WRAPPED_KEY_LENGTH_FORMAT, len(wrapped)) + wrapped + token
        return base64.b64encode(blob).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt base64 ciphertext produced by encrypt()."""
        try:
            blob = base64.b64decode(ciphertext.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as e:
            raise CryptoError("Ciphertext is not valid base64") from e

        if len(blob) < WRAPPED_KEY_LENGTH_SIZE:
            raise CryptoError("Ciphertext is truncated")
        (wrapped_length,) = struct.unpack(
            WRAPPED_KEY_LENGTH_FORMAT, blob[:WRAPPED_KEY_LENGTH_SIZE]
        )
        wrapped = blob[WRAPPED_KEY_LENGTH_SIZE:WRAPPED_KEY_LENGTH_SIZE + wrapped_length]
        token = blob[WRAPPED_KEY_LENGTH_SIZE + wrapped_length:]
        if len(wrapped) < wrapped_length or not token:
            raise CryptoError("Ciphertext is truncated")

        try:
            data_key = self._private_key.decrypt(wrapped, _OAEP)
            plaintext = Fernet(data_key).decrypt(token)
        except (ValueError, InvalidToken) as e:
            raise CryptoError("Failed to decrypt value: wrong key or corrupt data") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CryptoError("Decrypted value is not valid UTF-8") from e
