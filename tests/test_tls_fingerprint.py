"""
Tests for browser TLS profiles and the SSLContext built from them.
"""

import random
import ssl

import pytest

from speedhunter.security.tls_fingerprint_evasion import (
    CHROME_CIPHER_SUITES,
    PROFILE_SHAPES,
    TLS13_CIPHER_SUITES,
    BrowserProfile,
    build_ssl_context,
    compute_ja3,
    lookup_profile,
    resolve_fingerprint,
)


class TestLookupProfile:

    @pytest.mark.parametrize("token,profile", [
        ("chrome", BrowserProfile.CHROME),
        ("firefox", BrowserProfile.FIREFOX),
        ("safari", BrowserProfile.SAFARI),
        ("ios", BrowserProfile.IOS),
        ("qq", BrowserProfile.QQ),
        ("android", BrowserProfile.ANDROID),
        ("edge", BrowserProfile.EDGE),
        ("go", BrowserProfile.GO),
        ("randomized", BrowserProfile.RANDOMIZED),
        ("360", BrowserProfile.BROWSER_360),
    ])
    def test_known_tokens(self, token, profile):
        assert lookup_profile(token) is profile

    def test_case_and_whitespace(self):
        assert lookup_profile("  Chrome ") is BrowserProfile.CHROME

    @pytest.mark.parametrize("token", ["", "opera", "chrome98", "HelloChrome_Auto"])
    def test_unknown_falls_back_to_go(self, token):
        assert lookup_profile(token) is BrowserProfile.GO

    def test_every_concrete_profile_has_a_shape(self):
        for profile in BrowserProfile:
            if profile is not BrowserProfile.RANDOMIZED:
                assert profile in PROFILE_SHAPES


class TestResolveFingerprint:

    def test_chrome_shape(self):
        fp = resolve_fingerprint("chrome")
        assert fp.profile is BrowserProfile.CHROME
        assert fp.cipher_suites == CHROME_CIPHER_SUITES
        assert fp.tls_version == 0x0303
        assert fp.session_tickets

    def test_chromium_family_shares_ciphers(self):
        chrome = resolve_fingerprint("chrome")
        for token in ("edge", "qq", "360"):
            assert resolve_fingerprint(token).cipher_suites == chrome.cipher_suites

    def test_alpn_is_http11_by_default(self):
        assert resolve_fingerprint("firefox").alpn == ["http/1.1"]

    def test_alpn_with_h2(self):
        assert resolve_fingerprint("firefox", prefer_h2=True).alpn == ["h2", "http/1.1"]

    def test_unknown_token_gets_go_shape(self):
        fp = resolve_fingerprint("nonsense")
        assert fp.profile is BrowserProfile.GO
        assert fp.cipher_suites == PROFILE_SHAPES[BrowserProfile.GO][0]

    def test_ja3_hash(self):
        fp = resolve_fingerprint("safari")
        assert len(fp.ja3_hash) == 32
        assert fp.ja3_hash == compute_ja3(fp)
        assert fp.ja3_hash != resolve_fingerprint("firefox").ja3_hash

    def test_resolving_does_not_share_lists(self):
        first = resolve_fingerprint("chrome")
        first.cipher_suites.append(0x0000)
        assert resolve_fingerprint("chrome").cipher_suites == CHROME_CIPHER_SUITES

    @pytest.mark.parametrize("seed", range(10))
    def test_randomized_keeps_tls13_first(self, seed):
        fp = resolve_fingerprint("randomized", rng=random.Random(seed))
        assert fp.profile is BrowserProfile.RANDOMIZED
        head = fp.cipher_suites[:len(TLS13_CIPHER_SUITES)]
        assert set(head) == set(TLS13_CIPHER_SUITES)
        bases = [shape[0] for p, shape in PROFILE_SHAPES.items() if p is not BrowserProfile.GO]
        assert any(sorted(fp.cipher_suites) == sorted(base) for base in bases)


class TestBuildSSLContext:

    def test_minimum_version(self):
        ctx = build_ssl_context(resolve_fingerprint("chrome"))
        assert ctx.minimum_version == ssl.TLSVersion.TLSv1_2
        assert ctx.verify_mode == ssl.CERT_REQUIRED
        assert ctx.check_hostname

    def test_no_verify(self):
        ctx = build_ssl_context(resolve_fingerprint("chrome"), verify=False)
        assert ctx.verify_mode == ssl.CERT_NONE
        assert not ctx.check_hostname

    def test_session_tickets(self):
        chrome = build_ssl_context(resolve_fingerprint("chrome"))
        safari = build_ssl_context(resolve_fingerprint("safari"))
        assert not chrome.options & ssl.OP_NO_TICKET
        assert safari.options & ssl.OP_NO_TICKET

    def test_cipher_order_follows_profile(self):
        fp = resolve_fingerprint("chrome")
        assert fp.openssl_cipher_string().split(":")[0] == "ECDHE-ECDSA-AES128-GCM-SHA256"
        ctx = build_ssl_context(fp)
        tls12 = [c["name"] for c in ctx.get_ciphers() if c["protocol"] != "TLSv1.3"]
        assert tls12[0] == "ECDHE-ECDSA-AES128-GCM-SHA256"
