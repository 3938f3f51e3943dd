"""
Network module initialization.

This module provides the fragment-aware TLS dialer and the requests
plumbing that sends probe downloads through it.
"""

from .dialer import FragmentAwareDialer, FragmentedTLSConnection
from .http_client import (
    FragmentedHTTPAdapter,
    ProbeSession,
    TargetedPoolManager,
    create_probe_session,
    MAX_REDIRECTS,
)

__all__ = [
    "FragmentAwareDialer",
    "FragmentedTLSConnection",
    "FragmentedHTTPAdapter",
    "ProbeSession",
    "TargetedPoolManager",
    "create_probe_session",
    "MAX_REDIRECTS",
]
