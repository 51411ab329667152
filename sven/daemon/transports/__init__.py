"""Transport layer for the sven daemon."""

from sven.daemon.transports.unix_socket import UnixSocketTransport

__all__ = [
    "UnixSocketTransport",
]
