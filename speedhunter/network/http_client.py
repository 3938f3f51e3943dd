"""
HTTP client plumbing for download probes.

requests/urllib3 normally resolve the URL host and open their own sockets.
For a probe every connection has to go to one candidate edge IP instead,
through the fragment-aware dialer, while the URL host is still used for SNI
and the Host header. This module swaps the connection classes under a
requests adapter to do that.
"""

import logging
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

import requests
from requests.adapters import HTTPAdapter
from urllib3.connection import HTTPConnection, HTTPSConnection
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool
from urllib3.poolmanager import PoolManager

from speedhunter.core.utils import USER_AGENT
from speedhunter.network.dialer import FragmentAwareDialer

# Redirects followed before the last response is taken as-is
MAX_REDIRECTS = 10


class _ReadSocketMixin:
    """
    Leaves the socket on the response as ``read_socket``.

    http.client drops ``conn.sock`` as soon as it knows the server will close
    the connection, so the response is the only place left to set read
    timeouts on while the body streams in.
    """

    def getresponse(self):
        sock = self.sock
        response = super().getresponse()
        response.read_socket = sock
        return response


class FragmentedHTTPConnection(_ReadSocketMixin, HTTPConnection):
    """Plain-HTTP connection that always goes to the candidate IP."""
    dialer: Optional[FragmentAwareDialer] = None
    target_ip: Optional[str] = None
    target_port: Optional[int] = None

    def _new_conn(self):
        return self.dialer.connect(self.target_ip, self.target_port or self.port)


class FragmentedHTTPSConnection(_ReadSocketMixin, HTTPSConnection):
    """HTTPS connection whose socket is a dialer-made FragmentedTLSConnection."""
    dialer: Optional[FragmentAwareDialer] = None
    target_ip: Optional[str] = None
    target_port: Optional[int] = None

    def connect(self):
        self.sock = self.dialer.dial(self.target_ip, self.target_port or self.port, self.host)
        self.is_verified = self.dialer.verify
        self._has_connected_to_proxy = False


class _TargetedPoolMixin:
    dialer: Optional[FragmentAwareDialer] = None
    target_ip: Optional[str] = None
    target_port: Optional[int] = None

    def _new_conn(self):
        conn = super()._new_conn()
        conn.dialer = self.dialer
        conn.target_ip = self.target_ip
        conn.target_port = self.target_port
        return conn


class FragmentedHTTPConnectionPool(_TargetedPoolMixin, HTTPConnectionPool):
    ConnectionCls = FragmentedHTTPConnection


class FragmentedHTTPSConnectionPool(_TargetedPoolMixin, HTTPSConnectionPool):
    ConnectionCls = FragmentedHTTPSConnection


class TargetedPoolManager(PoolManager):
    """PoolManager whose pools all connect to one IP, whatever the URL host."""

    def __init__(self, dialer: FragmentAwareDialer, target_ip: str,
                 target_port: Optional[int] = None, **kwargs):
        super().__init__(**kwargs)
        self.dialer = dialer
        self.target_ip = target_ip
        self.target_port = target_port
        self.pool_classes_by_scheme = {
            "http": FragmentedHTTPConnectionPool,
            "https": FragmentedHTTPSConnectionPool,
        }

    def _new_pool(self, scheme, host, port, request_context=None):
        pool = super()._new_pool(scheme, host, port, request_context)
        pool.dialer = self.dialer
        pool.target_ip = self.target_ip
        # Plain HTTP keeps the URL port; HTTPS goes to the configured TLS port
        pool.target_port = self.target_port if scheme == "https" else None
        return pool


class FragmentedHTTPAdapter(HTTPAdapter):
    """requests adapter that routes every connection through the dialer."""

    def __init__(self, dialer: FragmentAwareDialer, target_ip: str,
                 target_port: Optional[int] = None, **kwargs):
        # init_poolmanager runs inside HTTPAdapter.__init__
        self.dialer = dialer
        self.target_ip = target_ip
        self.target_port = target_port
        super().__init__(**kwargs)

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        self._pool_connections = connections
        self._pool_maxsize = maxsize
        self._pool_block = block
        self.poolmanager = TargetedPoolManager(
            self.dialer,
            self.target_ip,
            self.target_port,
            num_pools=connections,
            maxsize=maxsize,
            block=block,
            **pool_kwargs,
        )


class ProbeSession(requests.Session):
    """Session for one probe: fixed User-Agent, capped redirects, no probe-URL referer."""

    def __init__(self, origin_url: str, max_redirects: int = MAX_REDIRECTS):
        super().__init__()
        self.logger = logging.getLogger(__name__)
        self.origin_url = origin_url
        self.max_redirects = max_redirects
        self.headers["User-Agent"] = USER_AGENT

    def rebuild_auth(self, prepared_request, response):
        """
        Set the Referer a browser would send on a redirect.

        requests never adds one, so the URL that answered with the redirect is
        used, without credentials. An https to http hop sends none, and
        neither does a hop away from the probe URL itself.
        """
        super().rebuild_auth(prepared_request, response)
        referer = referer_for_redirect(response.url, prepared_request.url)
        if referer == self.origin_url:
            self.logger.debug(f"Dropped probe URL referer on redirect to {prepared_request.url}")
            referer = None

        if referer is None:
            prepared_request.headers.pop("Referer", None)
        else:
            prepared_request.headers["Referer"] = referer


def referer_for_redirect(previous_url: str, next_url: str) -> Optional[str]:
    """Referer for a redirect from previous_url, or None when none may be sent."""
    previous = urlsplit(previous_url)
    if previous.scheme == "https" and urlsplit(next_url).scheme == "http":
        return None
    if "@" in previous.netloc:
        previous = previous._replace(netloc=previous.netloc.rpartition("@")[2])
        return urlunsplit(previous)
    return previous_url


def create_probe_session(url: str, dialer: FragmentAwareDialer, ip: str,
                         port: Optional[int] = None) -> ProbeSession:
    """Build a session whose requests all land on ``ip``."""
    session = ProbeSession(url)
    session.verify = dialer.verify
    # Proxies from the environment would bypass the candidate IP
    session.trust_env = False
    adapter = FragmentedHTTPAdapter(dialer, ip, port, pool_connections=1, pool_maxsize=1)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session
