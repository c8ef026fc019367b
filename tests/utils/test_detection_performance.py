"""
Unit tests for detection performance tracking.
"""

import logging
from unittest.mock import patch

import pytest

from utils.detection_performance import (
    DetectionPerformanceMetrics,
    DetectionPerformanceTracker,
)


class TestDetectionPerformanceTracker:
    """Test cases for DetectionPerformanceTracker."""

    def test_records_counts_and_stages(self):
        with DetectionPerformanceTracker("detection") as tracker:
            tracker.set_transaction_count(120)
            with tracker.stage("grouping"):
                pass
            tracker.set_groups_identified(8)
            tracker.set_patterns_detected(3)

        metrics = tracker.metrics.to_dict()
        assert metrics["operation_name"] == "detection"
        assert metrics["transaction_count"] == 120
        assert metrics["groups_identified"] == 8
        assert metrics["patterns_detected"] == 3
        assert "grouping" in metrics["stage_ms"]
        assert metrics["elapsed_ms"] >= 0

    def test_statistics_logged_only_with_transactions(self, caplog):
        with caplog.at_level(logging.INFO, logger="utils.detection_performance"):
            with DetectionPerformanceTracker("empty"):
                pass
        assert not any("Detection statistics" in r.message for r in caplog.records)

        caplog.clear()
        with caplog.at_level(logging.INFO, logger="utils.detection_performance"):
            with DetectionPerformanceTracker("busy") as tracker:
                tracker.set_transaction_count(10)
        assert any("Detection statistics - busy" in r.message for r in caplog.records)

    def test_exceptions_propagate(self):
        with pytest.raises(ValueError):
            with DetectionPerformanceTracker("failing"):
                raise ValueError("bad lookback")


class TestDetectionPerformanceMetrics:

    @pytest.mark.parametrize("elapsed_ms,level", [
        (50.0, logging.INFO),
        (15000.0, logging.WARNING),
        (45000.0, logging.ERROR),
    ])
    def test_log_level_reflects_duration(self, caplog, elapsed_ms, level):
        metrics = DetectionPerformanceMetrics(operation_name="detection")
        metrics.elapsed_ms = elapsed_ms

        with caplog.at_level(logging.DEBUG, logger="utils.detection_performance"):
            metrics.log_metrics()

        assert caplog.records[0].levelno == level

    @patch("utils.detection_performance.time.time", return_value=100.25)
    def test_finish(self, mock_time):
        metrics = DetectionPerformanceMetrics(operation_name="detection", start_time=100.0)
        metrics.finish()
        assert metrics.elapsed_ms == pytest.approx(250.0)
