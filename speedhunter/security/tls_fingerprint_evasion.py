"""
TLS Fingerprint Profiles

Classifiers keep databases of client TLS fingerprints (JA3 hashes). A probe
that handshakes with the stock OpenSSL defaults of the Python runtime is
trivially told apart from a browser. This module maps client names to the
handshake shape of that client and turns the shape into an SSLContext.

OpenSSL only lets us control part of the shape from Python: the TLS 1.2
cipher suite order, the ALPN list, the protocol versions and whether a
session ticket is offered. Extension order and curve lists are kept on the
fingerprint for JA3 bookkeeping and logging.

Profile names follow the uTLS client identifiers: chrome, firefox, safari,
ios, qq, android, edge, go, randomized, 360. Unknown names fall back to go.
"""

import hashlib
import logging
import random
import ssl
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class BrowserProfile(Enum):
    """Client profiles for TLS fingerprint mimicry."""
    CHROME = "chrome"
    FIREFOX = "firefox"
    SAFARI = "safari"
    IOS = "ios"
    QQ = "qq"
    ANDROID = "android"
    EDGE = "edge"
    GO = "go"
    RANDOMIZED = "randomized"
    BROWSER_360 = "360"


DEFAULT_PROFILE = BrowserProfile.GO


@dataclass
class TLSFingerprint:
    """Represents a complete TLS fingerprint configuration."""
    profile: BrowserProfile
    tls_version: int  # 0x0303 = TLS 1.2, 0x0304 = TLS 1.3
    cipher_suites: List[int] = field(default_factory=list)
    extensions: List[int] = field(default_factory=list)
    elliptic_curves: List[int] = field(default_factory=list)
    ec_point_formats: List[int] = field(default_factory=list)
    alpn: List[str] = field(default_factory=list)
    signature_algorithms: List[int] = field(default_factory=list)
    ja3_hash: str = ""

    @property
    def session_tickets(self) -> bool:
        return 0x0023 in self.extensions

    def openssl_cipher_string(self) -> str:
        """TLS 1.2 suites of this fingerprint, in order, as an OpenSSL cipher list."""
        names = [OPENSSL_CIPHER_NAMES[c] for c in self.cipher_suites if c in OPENSSL_CIPHER_NAMES]
        return ":".join(names)


# TLS 1.3 suites are negotiated by OpenSSL on its own; they only matter for JA3
TLS13_CIPHER_SUITES = [
    0x1301,  # TLS_AES_128_GCM_SHA256
    0x1302,  # TLS_AES_256_GCM_SHA384
    0x1303,  # TLS_CHACHA20_POLY1305_SHA256
]

OPENSSL_CIPHER_NAMES: Dict[int, str] = {
    0xC02C: "ECDHE-ECDSA-AES256-GCM-SHA384",
    0xC02B: "ECDHE-ECDSA-AES128-GCM-SHA256",
    0xC030: "ECDHE-RSA-AES256-GCM-SHA384",
    0xC02F: "ECDHE-RSA-AES128-GCM-SHA256",
    0xCCA9: "ECDHE-ECDSA-CHACHA20-POLY1305",
    0xCCA8: "ECDHE-RSA-CHACHA20-POLY1305",
    0xC024: "ECDHE-ECDSA-AES256-SHA384",
    0xC023: "ECDHE-ECDSA-AES128-SHA256",
    0xC028: "ECDHE-RSA-AES256-SHA384",
    0xC027: "ECDHE-RSA-AES128-SHA256",
    0xC00A: "ECDHE-ECDSA-AES256-SHA",
    0xC009: "ECDHE-ECDSA-AES128-SHA",
    0xC014: "ECDHE-RSA-AES256-SHA",
    0xC013: "ECDHE-RSA-AES128-SHA",
    0x009D: "AES256-GCM-SHA384",
    0x009C: "AES128-GCM-SHA256",
    0x003D: "AES256-SHA256",
    0x003C: "AES128-SHA256",
    0x0035: "AES256-SHA",
    0x002F: "AES128-SHA",
    0x000A: "DES-CBC3-SHA",
}

# Chrome cipher suites (exact order matters for JA3)
CHROME_CIPHER_SUITES = TLS13_CIPHER_SUITES + [
    0xC02B, 0xC02F,  # ECDHE-ECDSA/RSA-AES128-GCM-SHA256
    0xC02C, 0xC030,  # ECDHE-ECDSA/RSA-AES256-GCM-SHA384
    0xCCA9, 0xCCA8,  # ECDHE-ECDSA/RSA-CHACHA20-POLY1305
    0xC013, 0xC014,  # ECDHE-RSA-AES128/256-CBC-SHA
    0x009C, 0x009D,  # AES128/256-GCM
    0x002F, 0x0035,  # AES128/256-CBC-SHA
]

FIREFOX_CIPHER_SUITES = [
    0x1301, 0x1303, 0x1302,  # TLS 1.3 (different order than Chrome)
    0xC02B, 0xC02F,
    0xCCA9, 0xCCA8,
    0xC02C, 0xC030,
    0xC00A, 0xC009,
    0xC013, 0xC014,
    0x009C, 0x009D,
    0x002F, 0x0035,
]

SAFARI_CIPHER_SUITES = TLS13_CIPHER_SUITES + [
    0xC02C, 0xC02B,
    0xCCA9,
    0xC030, 0xC02F,
    0xCCA8,
    0xC00A, 0xC009,
    0xC014, 0xC013,
    0x009D, 0x009C,
    0x0035, 0x002F,
    0xC008, 0xC012, 0x000A,  # 3DES, still offered by Safari
]

# OkHttp on Android 11
ANDROID_CIPHER_SUITES = TLS13_CIPHER_SUITES + [
    0xC02B, 0xC02C, 0xCCA9,
    0xC02F, 0xC030, 0xCCA8,
    0xC013, 0xC014,
    0x009C, 0x009D,
    0x002F, 0x0035,
]

# crypto/tls defaults
GO_CIPHER_SUITES = TLS13_CIPHER_SUITES + [
    0xC02B, 0xC02F, 0xC02C, 0xC030,
    0xCCA9, 0xCCA8,
    0xC009, 0xC013, 0xC00A, 0xC014,
    0x009C, 0x009D, 0x002F, 0x0035,
]

CHROME_EXTENSIONS = [
    0x0000,  # server_name (SNI)
    0x0017,  # extended_master_secret
    0xFF01,  # renegotiation_info
    0x000A,  # supported_groups
    0x000B,  # ec_point_formats
    0x0023,  # session_ticket
    0x0010,  # application_layer_protocol_negotiation (ALPN)
    0x0005,  # status_request (OCSP)
    0x000D,  # signature_algorithms
    0x0012,  # signed_certificate_timestamp
    0x002B,  # supported_versions
    0x002D,  # psk_key_exchange_modes
    0x0033,  # key_share
    0x001B,  # compress_certificate
    0x0015,  # padding
]

FIREFOX_EXTENSIONS = [
    0x0000,  # server_name
    0x0017,  # extended_master_secret
    0xFF01,  # renegotiation_info
    0x000A,  # supported_groups
    0x000B,  # ec_point_formats
    0x0023,  # session_ticket
    0x0010,  # ALPN
    0x0005,  # status_request
    0x0022,  # delegated_credentials
    0x0033,  # key_share
    0x002B,  # supported_versions
    0x000D,  # signature_algorithms
    0x002D,  # psk_key_exchange_modes
    0x001C,  # record_size_limit
    0x0015,  # padding
]

SAFARI_EXTENSIONS = [
    0x0000, 0x0017, 0xFF01, 0x000A, 0x000B, 0x0010, 0x0005,
    0x000D, 0x0012, 0x0033, 0x002D, 0x002B, 0x001B, 0x0015,
]

ANDROID_EXTENSIONS = [
    0xFF01, 0x0000, 0x0017, 0x0023, 0x000D, 0x0005,
    0x0010, 0x000B, 0x000A, 0x002D, 0x002B, 0x0033, 0x0015,
]

GO_EXTENSIONS = [
    0x0000, 0x0005, 0x000A, 0x000B, 0x000D, 0xFF01, 0x0012,
    0x0023, 0x0010, 0x002B, 0x0033, 0x002D, 0x0017,
]

CHROME_CURVES = [0x001D, 0x0017, 0x0018]  # x25519, secp256r1, secp384r1
FIREFOX_CURVES = [0x001D, 0x0017, 0x0018, 0x0019, 0x0100, 0x0101]  # + secp521r1, ffdhe
SAFARI_CURVES = [0x001D, 0x0017, 0x0018, 0x0019]
GO_CURVES = [0x001D, 0x0017, 0x0018, 0x0019]

ALPN_H2_HTTP11 = ["h2", "http/1.1"]
ALPN_HTTP11_ONLY = ["http/1.1"]

CHROME_SIG_ALGS = [
    0x0403, 0x0804, 0x0401, 0x0503, 0x0805, 0x0501,
    0x0806, 0x0601,
]
FIREFOX_SIG_ALGS = [
    0x0403, 0x0503, 0x0603, 0x0804, 0x0805, 0x0806,
    0x0401, 0x0501, 0x0601, 0x0203, 0x0201,
]
GO_SIG_ALGS = [
    0x0804, 0x0403, 0x0807, 0x0805, 0x0806, 0x0401,
    0x0501, 0x0601, 0x0503, 0x0603, 0x0201, 0x0203,
]

_CHROME_SHAPE = (CHROME_CIPHER_SUITES, CHROME_EXTENSIONS, CHROME_CURVES, CHROME_SIG_ALGS)

# profile -> (cipher suites, extensions, curves, signature algorithms)
PROFILE_SHAPES = {
    BrowserProfile.CHROME: _CHROME_SHAPE,
    BrowserProfile.EDGE: _CHROME_SHAPE,
    BrowserProfile.QQ: _CHROME_SHAPE,
    BrowserProfile.BROWSER_360: _CHROME_SHAPE,
    BrowserProfile.FIREFOX: (FIREFOX_CIPHER_SUITES, FIREFOX_EXTENSIONS, FIREFOX_CURVES, FIREFOX_SIG_ALGS),
    BrowserProfile.SAFARI: (SAFARI_CIPHER_SUITES, SAFARI_EXTENSIONS, SAFARI_CURVES, CHROME_SIG_ALGS),
    BrowserProfile.IOS: (SAFARI_CIPHER_SUITES, SAFARI_EXTENSIONS, SAFARI_CURVES, CHROME_SIG_ALGS),
    BrowserProfile.ANDROID: (ANDROID_CIPHER_SUITES, ANDROID_EXTENSIONS, CHROME_CURVES, CHROME_SIG_ALGS),
    BrowserProfile.GO: (GO_CIPHER_SUITES, GO_EXTENSIONS, GO_CURVES, GO_SIG_ALGS),
}

logger = logging.getLogger(__name__)


def lookup_profile(client_hello_id: str) -> BrowserProfile:
    """Map a client name to its profile; unknown names get the default."""
    try:
        return BrowserProfile(client_hello_id.strip().lower())
    except ValueError:
        logger.debug(f"Unknown client hello id {client_hello_id!r}, using {DEFAULT_PROFILE.value}")
        return DEFAULT_PROFILE


def resolve_fingerprint(client_hello_id: str, prefer_h2: bool = False,
                        rng: Optional[random.Random] = None) -> TLSFingerprint:
    """
    Build the fingerprint for a client name.

    Args:
        client_hello_id: profile token such as "chrome" or "firefox"
        prefer_h2: advertise h2 before http/1.1. The probe's HTTP client
            speaks HTTP/1.1 only, so it resolves with this off.
        rng: random source for the randomized profile
    """
    profile = lookup_profile(client_hello_id)
    rng = rng or random

    if profile is BrowserProfile.RANDOMIZED:
        base = rng.choice([p for p in PROFILE_SHAPES if p is not BrowserProfile.GO])
        ciphers, extensions, curves, sig_algs = PROFILE_SHAPES[base]
        ciphers = _shuffle_tls12_ciphers(ciphers, rng)
    else:
        ciphers, extensions, curves, sig_algs = PROFILE_SHAPES[profile]

    fp = TLSFingerprint(
        profile=profile,
        tls_version=0x0303,
        cipher_suites=list(ciphers),
        extensions=list(extensions),
        elliptic_curves=list(curves),
        ec_point_formats=[0x00],  # uncompressed
        alpn=list(ALPN_H2_HTTP11 if prefer_h2 else ALPN_HTTP11_ONLY),
        signature_algorithms=list(sig_algs),
    )
    fp.ja3_hash = compute_ja3(fp)
    return fp


def _shuffle_tls12_ciphers(ciphers: List[int], rng) -> List[int]:
    """TLS 1.3 suites stay in front; the rest are shuffled."""
    tls13 = [c for c in ciphers if c in TLS13_CIPHER_SUITES]
    rest = [c for c in ciphers if c not in TLS13_CIPHER_SUITES]
    rng.shuffle(rest)
    return tls13 + rest


def compute_ja3(fp: TLSFingerprint) -> str:
    """
    Compute JA3 hash from fingerprint.

    JA3 format: TLSVersion,Ciphers,Extensions,EllipticCurves,EllipticCurvePointFormats
    """
    tls_ver = str(fp.tls_version)
    ciphers = "-".join(str(c) for c in fp.cipher_suites)
    extensions = "-".join(str(e) for e in fp.extensions)
    curves = "-".join(str(c) for c in fp.elliptic_curves)
    ec_formats = "-".join(str(f) for f in fp.ec_point_formats)

    ja3_string = f"{tls_ver},{ciphers},{extensions},{curves},{ec_formats}"
    return hashlib.md5(ja3_string.encode()).hexdigest()


def build_ssl_context(fp: TLSFingerprint, verify: bool = True) -> ssl.SSLContext:
    """Create a client SSLContext shaped after the fingerprint."""
    ctx = ssl.create_default_context()
    if not verify:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE

    ctx.minimum_version = ssl.TLSVersion.TLSv1_2
    cipher_string = fp.openssl_cipher_string()
    if cipher_string:
        ctx.set_ciphers(cipher_string)
    if fp.alpn:
        ctx.set_alpn_protocols(fp.alpn)
    if not fp.session_tickets:
        ctx.options |= ssl.OP_NO_TICKET
    return ctx
