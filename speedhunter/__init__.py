"""
Speed Hunter Package - download speed probing for CDN edge IPs

Measures how fast candidate edge addresses serve a test file, with the TLS
ClientHello fragmented and shaped after a browser to get past DPI
classification.
"""

__version__ = "2.0.0"
__author__ = "Hunter Project"

from .core.config import SpeedHunterConfig
from .core.models import CandidateEndpoint
from .testing.benchmark import DownloadSpeedTester
from .orchestrator import SpeedTestOrchestrator

__all__ = [
    "SpeedHunterConfig",
    "CandidateEndpoint",
    "DownloadSpeedTester",
    "SpeedTestOrchestrator",
]
