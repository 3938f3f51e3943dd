"""
Fragment-aware TLS dialer.

``ssl.SSLContext.wrap_socket`` hands the file descriptor to OpenSSL, which
then writes the ClientHello itself in one go. To split it we drive TLS over a
pair of memory BIOs instead and push every record OpenSSL produces through
the fragmenting writer before it touches the socket.

The resulting FragmentedTLSConnection is socket-like enough for http.client
and urllib3 to run HTTP/1.1 over it.
"""

import io
import logging
import socket
import ssl
import time
from typing import Callable, Optional, Tuple

from speedhunter.core.exceptions import DialError, HandshakeError
from speedhunter.core.utils import format_host_port
from speedhunter.security.tls_fingerprint_evasion import TLSFingerprint, build_ssl_context
from speedhunter.security.tls_fragmentation import FragmentingWriter, FragmentOptions, SocketSink

RECV_SIZE = 16384
DEFAULT_CONNECT_TIMEOUT = 30.0
DEFAULT_KEEPALIVE = 30.0


class _TLSReader(io.RawIOBase):
    """Raw reader over a FragmentedTLSConnection, for makefile()."""

    def __init__(self, conn: "FragmentedTLSConnection"):
        super().__init__()
        self._conn = conn

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        return self._conn.recv_into(b)

    def fileno(self) -> int:
        return self._conn.fileno()

    def close(self):
        if not self.closed:
            self._conn._decref_io()
        super().close()


class FragmentedTLSConnection:
    """
    TLS client connection whose outgoing records go through a writer.

    ``writer`` is anything with ``write(bytes) -> int``; a FragmentingWriter
    in front of the socket, or a plain SocketSink.
    """

    def __init__(self, sock: socket.socket, context: ssl.SSLContext,
                 server_hostname: str, writer=None):
        self.sock = sock
        self.server_hostname = server_hostname
        self._incoming = ssl.MemoryBIO()
        self._outgoing = ssl.MemoryBIO()
        self._sslobj = context.wrap_bio(
            self._incoming, self._outgoing,
            server_side=False, server_hostname=server_hostname,
        )
        self._writer = writer if writer is not None else SocketSink(sock)
        self._io_refs = 0
        self._closed = False

    def do_handshake(self):
        while True:
            try:
                self._sslobj.do_handshake()
                break
            except ssl.SSLWantReadError:
                self._flush()
                self._fill()
        self._flush()

    def _flush(self):
        """Send whatever OpenSSL queued in the outgoing BIO."""
        data = self._outgoing.read()
        if data:
            self._writer.write(data)

    def _fill(self) -> bool:
        """Feed the incoming BIO from the socket. False on EOF."""
        data = self.sock.recv(RECV_SIZE)
        if not data:
            self._incoming.write_eof()
            return False
        self._incoming.write(data)
        return True

    # -- socket interface used by http.client / urllib3 --

    def recv_into(self, buffer, nbytes: int = 0, flags: int = 0) -> int:
        nbytes = nbytes or len(buffer)
        while True:
            try:
                return self._sslobj.read(nbytes, buffer)
            except ssl.SSLWantReadError:
                self._flush()
                self._fill()
            except (ssl.SSLZeroReturnError, ssl.SSLEOFError):
                # Clean close_notify or a ragged EOF both end the stream
                return 0

    def recv(self, bufsize: int, flags: int = 0) -> bytes:
        buffer = bytearray(bufsize)
        n = self.recv_into(buffer, bufsize)
        return bytes(buffer[:n])

    def sendall(self, data, flags: int = 0):
        view = memoryview(data)
        while len(view):
            written = self._sslobj.write(view)
            view = view[written:]
            self._flush()

    def send(self, data, flags: int = 0) -> int:
        self.sendall(data)
        return len(data)

    def makefile(self, mode: str = "rb", buffering: Optional[int] = None, **kwargs):
        if set(mode) - {"r", "b"}:
            raise ValueError(f"unsupported mode {mode!r}")
        self._io_refs += 1
        return io.BufferedReader(_TLSReader(self), buffering or io.DEFAULT_BUFFER_SIZE)

    def settimeout(self, timeout: Optional[float]):
        self.sock.settimeout(timeout)

    def gettimeout(self) -> Optional[float]:
        return self.sock.gettimeout()

    def setsockopt(self, *args):
        self.sock.setsockopt(*args)

    def fileno(self) -> int:
        return self.sock.fileno()

    def shutdown(self, how: int):
        self.sock.shutdown(how)

    def close(self):
        self._closed = True
        if self._io_refs <= 0:
            self.sock.close()

    def _decref_io(self):
        self._io_refs -= 1
        if self._closed and self._io_refs <= 0:
            self.sock.close()

    # -- TLS introspection --

    def getpeercert(self, binary_form: bool = False):
        return self._sslobj.getpeercert(binary_form)

    def cipher(self):
        return self._sslobj.cipher()

    def version(self) -> Optional[str]:
        return self._sslobj.version()

    def selected_alpn_protocol(self) -> Optional[str]:
        return self._sslobj.selected_alpn_protocol()


class FragmentAwareDialer:
    """
    Opens TLS connections to a specific edge IP.

    The TLS context is built once from the fingerprint; every dial reuses it.
    No retries here: a failed dial or handshake is reported straight back.
    """

    def __init__(self, fingerprint: TLSFingerprint,
                 fragment_options: Optional[FragmentOptions] = None,
                 source_address: Optional[Tuple[str, int]] = None,
                 connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
                 keepalive: float = DEFAULT_KEEPALIVE,
                 verify: bool = True,
                 sleep: Callable[[float], None] = time.sleep):
        self.logger = logging.getLogger(__name__)
        self.fingerprint = fingerprint
        self.fragment_options = fragment_options
        self.source_address = source_address
        self.connect_timeout = connect_timeout
        self.keepalive = keepalive
        self.verify = verify
        self._sleep = sleep
        self.context = build_ssl_context(fingerprint, verify=verify)

    def connect(self, ip: str, port: int) -> socket.socket:
        """Plain TCP connection to ip:port from the configured source address."""
        try:
            sock = socket.create_connection(
                (ip, port),
                timeout=self.connect_timeout,
                source_address=self.source_address,
            )
        except OSError as e:
            raise DialError(f"dial error: {format_host_port(ip, port)}: {e}") from e
        try:
            self._enable_keepalive(sock)
        except OSError as e:
            sock.close()
            raise DialError(f"keep-alive setup failed: {format_host_port(ip, port)}: {e}") from e
        return sock

    def dial(self, ip: str, port: int, server_hostname: str) -> FragmentedTLSConnection:
        """TCP connect, optionally fragment, then handshake with SNI server_hostname."""
        sock = self.connect(ip, port)

        writer = SocketSink(sock)
        if self.fragment_options is not None:
            # Kernel must not coalesce the fragments back together
            try:
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            except OSError as e:
                sock.close()
                raise DialError(f"TCP_NODELAY setup failed: {format_host_port(ip, port)}: {e}") from e
            writer = FragmentingWriter(writer, self.fragment_options, sleep=self._sleep)

        conn = FragmentedTLSConnection(sock, self.context, server_hostname, writer)
        try:
            conn.do_handshake()
        except (ssl.SSLError, OSError) as e:
            sock.close()
            raise HandshakeError(f"TLS handshake error: {format_host_port(ip, port)}: {e}") from e

        self.logger.debug(
            f"{format_host_port(ip, port)}: {conn.version()} {server_hostname} "
            f"({self.fingerprint.profile.value}, ja3 {self.fingerprint.ja3_hash})"
        )
        return conn

    def _enable_keepalive(self, sock: socket.socket):
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        interval = max(1, int(self.keepalive))
        if hasattr(socket, "TCP_KEEPIDLE"):
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, interval)
        if hasattr(socket, "TCP_KEEPINTVL"):
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, interval)
