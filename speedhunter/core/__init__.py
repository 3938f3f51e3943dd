"""
Core module initialization.

This module provides access to core functionality including
configuration, models, errors and utilities.
"""

from .config import SpeedHunterConfig
from .exceptions import ProbeError, FragmentConfigError, FragmentWriteError, DialError, HandshakeError
from .models import CandidateEndpoint
from .utils import USER_AGENT, format_host_port, format_speed, parse_source_address, setup_logging

__all__ = [
    "SpeedHunterConfig",
    "ProbeError",
    "FragmentConfigError",
    "FragmentWriteError",
    "DialError",
    "HandshakeError",
    "CandidateEndpoint",
    "USER_AGENT",
    "format_host_port",
    "format_speed",
    "parse_source_address",
    "setup_logging",
]
