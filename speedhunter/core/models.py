"""
Core data models for the speed hunter.

Candidates arrive from the latency scan already sorted by latency; the
download test fills in ``download_speed`` in place.
"""

from dataclasses import dataclass


@dataclass
class CandidateEndpoint:
    """An edge IP with its measured latency and, later, its download speed."""
    ip: str
    latency_ms: float
    sent: int = 0
    received: int = 0
    download_speed: float = 0.0  # bytes per second

    @property
    def loss_rate(self) -> float:
        """Fraction of latency probes that got no answer."""
        if self.sent <= 0:
            return 0.0
        return float(self.sent - self.received) / float(self.sent)

    @property
    def download_speed_mb(self) -> float:
        return self.download_speed / 1024 / 1024
