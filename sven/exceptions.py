"""Custom exceptions for sven."""


class SvenError(Exception):
    """Base exception for sven errors."""

    pass


class ConfigError(SvenError):
    """Raised when configuration is missing or invalid."""

    pass


class InvalidSecretError(SvenError):
    """Raised when a secret key or value is not acceptable."""

    pass


class PersistenceError(SvenError):
    """Raised when the secret store cannot be read or written."""

    pass


class CryptoError(SvenError):
    """Raised when a value cannot be encrypted or decrypted."""

    pass


class PassphraseRequiredError(CryptoError):
    """Raised when the private key is encrypted and no passphrase was given."""

    pass


class AlreadyRunningError(SvenError):
    """Raised when a daemon instance is already live."""

    def __init__(self, pid: int | None = None, message: str | None = None) -> None:
        self.pid = pid
        if message is None:
            message = "Daemon is already running"
            if pid is not None:
                message += f" (PID {pid})"
        super().__init__(message)


class NotRunningError(SvenError):
    """Raised when the daemon is not running or unreachable."""

    pass


class ProtocolError(SvenError):
    """Raised when a command or response cannot be decoded."""

    pass


class DaemonError(SvenError):
    """Raised when the daemon reports an error or drops a request."""

    pass


class InternalChannelError(SvenError):
    """Raised when the persistence worker is gone before replying."""

    pass
