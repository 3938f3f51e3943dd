"""
Tests for the download test orchestration over a candidate list.
"""

import logging
from unittest.mock import Mock

import pytest

from speedhunter.core.models import CandidateEndpoint
from speedhunter.orchestrator import SpeedTestOrchestrator

MB = 1024 * 1024


def make_candidates(count):
    return [CandidateEndpoint(ip=f"104.16.0.{i}", latency_ms=10.0 + i, sent=4, received=4)
            for i in range(count)]


def make_tester(speeds):
    """Tester whose speed for each IP comes from ``speeds``."""
    tester = Mock()
    tester.download_speed.side_effect = lambda ip: speeds[ip]
    return tester


@pytest.fixture
def quiet_config(config):
    config.set("show_progress", False)
    return config


class TestSpeedTestOrchestrator:

    def test_stops_after_desired_count(self, quiet_config):
        candidates = make_candidates(10)
        speeds = {c.ip: (i + 1) * 0.1 * MB for i, c in enumerate(candidates)}
        tester = make_tester(speeds)
        quiet_config.set("test_count", 3)

        result = SpeedTestOrchestrator(quiet_config, tester).run(candidates)

        assert tester.download_speed.call_count == 3
        assert [c.ip for c in result] == ["104.16.0.2", "104.16.0.1", "104.16.0.0"]
        assert [c.download_speed for c in result] == sorted(
            (c.download_speed for c in result), reverse=True)

    def test_min_speed_probes_until_enough(self, quiet_config):
        candidates = make_candidates(10)
        fast = {"104.16.0.2", "104.16.0.5", "104.16.0.7", "104.16.0.9"}
        speeds = {c.ip: (5 * MB if c.ip in fast else 1 * MB) for c in candidates}
        speeds["104.16.0.7"] = 8 * MB
        tester = make_tester(speeds)
        quiet_config.update({"test_count": 3, "min_speed_mb": 2.0})

        result = SpeedTestOrchestrator(quiet_config, tester).run(candidates)

        assert tester.download_speed.call_count == 8
        assert [c.ip for c in result] == ["104.16.0.7", "104.16.0.2", "104.16.0.5"]

    def test_nothing_fast_enough_returns_all_probed(self, quiet_config):
        candidates = make_candidates(10)
        speeds = {c.ip: (i % 4) * 0.25 * MB for i, c in enumerate(candidates)}
        tester = make_tester(speeds)
        quiet_config.update({"test_count": 3, "min_speed_mb": 100.0})

        result = SpeedTestOrchestrator(quiet_config, tester).run(candidates)

        assert tester.download_speed.call_count == 10
        assert len(result) == 10
        assert [c.download_speed for c in result] == sorted(speeds.values(), reverse=True)

    def test_fewer_candidates_than_desired(self, quiet_config):
        candidates = make_candidates(2)
        tester = make_tester({candidates[0].ip: 1.0, candidates[1].ip: 2.0})
        quiet_config.set("test_count", 10)

        result = SpeedTestOrchestrator(quiet_config, tester).run(candidates)

        assert [c.ip for c in result] == [candidates[1].ip, candidates[0].ip]

    def test_failed_probes_still_qualify_without_min_speed(self, quiet_config):
        candidates = make_candidates(4)
        tester = make_tester({c.ip: 0.0 for c in candidates})
        quiet_config.set("test_count", 2)

        result = SpeedTestOrchestrator(quiet_config, tester).run(candidates)

        assert [c.ip for c in result] == [candidates[0].ip, candidates[1].ip]

    def test_sort_is_stable(self, quiet_config):
        candidates = make_candidates(4)
        tester = make_tester({c.ip: 3.0 for c in candidates})
        quiet_config.set("test_count", 4)

        result = SpeedTestOrchestrator(quiet_config, tester).run(candidates)

        assert [c.ip for c in result] == [c.ip for c in candidates]

    def test_speed_written_onto_candidates(self, quiet_config):
        candidates = make_candidates(3)
        tester = make_tester({c.ip: 42.0 for c in candidates})
        quiet_config.set("test_count", 3)

        SpeedTestOrchestrator(quiet_config, tester).run(candidates)

        assert all(c.download_speed == 42.0 for c in candidates)

    def test_disabled_returns_input(self, quiet_config):
        candidates = make_candidates(5)
        tester = Mock()
        quiet_config.set("disable_download", True)

        result = SpeedTestOrchestrator(quiet_config, tester).run(candidates)

        assert result == candidates
        tester.download_speed.assert_not_called()

    def test_empty_input(self, quiet_config, caplog):
        tester = Mock()
        with caplog.at_level(logging.INFO, logger="speedhunter.orchestrator"):
            result = SpeedTestOrchestrator(quiet_config, tester).run([])
        assert result == []
        tester.download_speed.assert_not_called()
        assert "skipping download speed test" in caplog.text

    def test_bad_settings_fall_back_to_defaults(self, quiet_config):
        quiet_config.update({"test_count": 0, "timeout_seconds": -1, "min_speed_mb": -3.0, "url": ""})
        SpeedTestOrchestrator(quiet_config, Mock())
        assert quiet_config.get("test_count") == 10
        assert quiet_config.get("timeout_seconds") == 10
        assert quiet_config.get("min_speed_mb") == 0.0
        assert quiet_config.get("url") == "https://cf.xiu2.xyz/url"

    def test_settings_changed_after_construction(self, quiet_config):
        candidates = make_candidates(3)
        tester = make_tester({c.ip: 1.0 for c in candidates})
        orchestrator = SpeedTestOrchestrator(quiet_config, tester)
        quiet_config.set("test_count", 0)

        result = orchestrator.run(candidates)

        assert quiet_config.get("test_count") == 10
        assert [c.ip for c in result] == [c.ip for c in candidates]
