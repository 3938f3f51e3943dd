"""
Speed hunter orchestrator - download test over a latency-ranked candidate list.

Candidates are probed one at a time in latency order. Every candidate that
meets the minimum speed is kept, and the run stops as soon as enough have
been kept.
"""

import logging
from typing import List, Optional, Sequence

from tqdm import tqdm

from speedhunter.core.config import SpeedHunterConfig
from speedhunter.core.models import CandidateEndpoint
from speedhunter.core.utils import format_speed
from speedhunter.testing.benchmark import DownloadSpeedTester


class SpeedTestOrchestrator:
    """Runs the download test across candidates and ranks the survivors."""

    def __init__(self, config: SpeedHunterConfig,
                 tester: Optional[DownloadSpeedTester] = None):
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.config.apply_defaults()
        self.tester = tester or DownloadSpeedTester(config)

    def run(self, candidates: Sequence[CandidateEndpoint]) -> List[CandidateEndpoint]:
        """
        Probe candidates and return the kept ones, fastest first.

        ``download_speed`` is written onto each probed candidate. When no
        candidate reaches the minimum speed, every probed candidate is
        returned instead so the caller still gets a ranking.
        """
        if self.config.get("disable_download"):
            return list(candidates)

        # Settings may have changed since construction
        self.config.apply_defaults()

        if not candidates:
            self.logger.info("No candidates passed the latency test, skipping download speed test")
            return []

        desired = int(self.config.get("test_count"))
        min_speed_mb = float(self.config.get("min_speed_mb"))
        min_speed = min_speed_mb * 1024 * 1024

        # A speed floor means any candidate may be the one that passes
        attempts = desired
        if len(candidates) < desired or min_speed_mb > 0:
            attempts = len(candidates)
        desired = min(desired, attempts)

        self.logger.info(
            f"Starting download speed test (minimum speed: {min_speed_mb:.2f} MB/s, "
            f"number: {desired}, queue: {attempts})"
        )

        kept: List[CandidateEndpoint] = []
        probed = list(candidates[:attempts])
        with tqdm(total=desired, desc="Download test", unit="ip",
                  disable=not self.config.get("show_progress", True)) as pbar:
            for candidate in probed:
                speed = self.tester.download_speed(candidate.ip)
                candidate.download_speed = speed
                if speed >= min_speed:
                    pbar.update(1)
                    kept.append(candidate)
                    if len(kept) == desired:
                        break

        if not kept:
            self.logger.info(f"No candidate reached {format_speed(min_speed)}, returning all probed")
            kept = probed

        kept.sort(key=lambda c: c.download_speed, reverse=True)
        if kept:
            self.logger.info(
                f"Download test finished: {len(kept)} candidates, "
                f"best {format_speed(kept[0].download_speed)}"
            )
        return kept
