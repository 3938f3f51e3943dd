"""
Security module - handshake disguise for probe connections

Modules:
- tls_fingerprint_evasion: browser TLS profiles, JA3 bookkeeping, SSLContext shaping
- tls_fragmentation: ClientHello fragmentation with timing jitter
"""

from .tls_fingerprint_evasion import (
    BrowserProfile,
    TLSFingerprint,
    build_ssl_context,
    lookup_profile,
    resolve_fingerprint,
)
from .tls_fragmentation import (
    FragmentOptions,
    FragmentingWriter,
    WriterState,
    calculate_chunks,
    parse_fragment_options,
)

__all__ = [
    "BrowserProfile",
    "TLSFingerprint",
    "build_ssl_context",
    "lookup_profile",
    "resolve_fingerprint",
    "FragmentOptions",
    "FragmentingWriter",
    "WriterState",
    "calculate_chunks",
    "parse_fragment_options",
]
