"""
Testing module initialization.

This module provides the download speed measurement.
"""

from .benchmark import DownloadSpeedTester, MovingAverage, sample_download

__all__ = [
    "DownloadSpeedTester",
    "MovingAverage",
    "sample_download",
]
