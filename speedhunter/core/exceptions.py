"""
Exception types raised by the speed hunter.

Configuration problems are fatal and surface before any socket is opened.
Dial and handshake problems are per-candidate: they derive from
ConnectionError so the HTTP stack treats them like any other failed
connection, and the speed tester turns them into a zero-speed result.
"""


class ProbeError(Exception):
    """Base class for all speed hunter errors."""


class FragmentConfigError(ProbeError, ValueError):
    """Malformed fragmentation policy string."""


class FragmentWriteError(ProbeError, OSError):
    """The socket under a fragmenting writer failed mid-write.

    ``bytes_written`` is how much of the caller's buffer had already been
    handed to the socket when the failure happened.
    """

    def __init__(self, message: str, bytes_written: int = 0):
        super().__init__(message)
        self.bytes_written = bytes_written


class DialError(ProbeError, ConnectionError):
    """TCP connect or local bind failed."""


class HandshakeError(ProbeError, ConnectionError):
    """TLS handshake over an established TCP connection failed."""
