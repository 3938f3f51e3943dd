"""
Pytest configuration and shared fixtures for speed hunter tests.

Nothing here touches the network beyond loopback: clocks and sleeps are
fakes, sinks record what they are given.
"""

import http.server
import logging
import os
import random
import ssl
import threading

import pytest

from speedhunter.core.config import SpeedHunterConfig
from speedhunter.network.dialer import FragmentAwareDialer
from speedhunter.security.tls_fingerprint_evasion import resolve_fingerprint
from speedhunter.security.tls_fragmentation import FragmentOptions

# Self-signed certificate for localhost and 127.0.0.1
DATA_DIR = os.path.join(os.path.dirname(__file__), "data")
TLS_CERT = os.path.join(DATA_DIR, "localhost.crt")
TLS_KEY = os.path.join(DATA_DIR, "localhost.key")


# Configure logging for tests
logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


class RecordingSink:
    """Sink that records every underlying write."""

    def __init__(self, fail_on_call=None, accept_limit=None):
        self.writes = []
        self.fail_on_call = fail_on_call
        self.accept_limit = accept_limit

    def write(self, data):
        if self.fail_on_call is not None and len(self.writes) == self.fail_on_call:
            raise ConnectionResetError("connection reset by peer")
        data = bytes(data)
        if self.accept_limit is not None:
            data = data[:self.accept_limit]
        self.writes.append(data)
        return len(data)

    @property
    def data(self):
        return b"".join(self.writes)


class FakeSleep:
    """Records requested sleeps instead of sleeping."""

    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def start_http_server(handler, tls=False):
    """ThreadingHTTPServer on a loopback ephemeral port, optionally behind TLS."""
    server = http.server.ThreadingHTTPServer(("127.0.0.1", 0), handler)
    if tls:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(TLS_CERT, TLS_KEY)
        server.socket = context.wrap_socket(server.socket, server_side=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server


def stop_http_server(server):
    server.shutdown()
    server.server_close()


def make_dialer(trust_local_cert=False, **kwargs):
    """Chrome-shaped dialer with a short connect timeout."""
    kwargs.setdefault("connect_timeout", 5.0)
    dialer = FragmentAwareDialer(resolve_fingerprint("chrome"), **kwargs)
    if trust_local_cert:
        dialer.context.load_verify_locations(TLS_CERT)
    return dialer


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def small_options():
    """Chunks of 2 bytes over the first 20 bytes, no delays."""
    return FragmentOptions(
        minimum_bytes=20,
        chunk_size=2,
        delay_before_start=0.0,
        delay_between_chunks=0.0,
    )


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Environment without any SPEEDHUNTER_ variables and no env file."""
    for key in list(os.environ):
        if key.startswith("SPEEDHUNTER_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("SPEEDHUNTER_ENV_FILE", str(tmp_path / "missing.env"))
    return monkeypatch


@pytest.fixture
def config(clean_env):
    return SpeedHunterConfig()
