"""
Tests for Performance Module
=============================
"""

import pytest
import time
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from touchsurface.types import PipelinePhase
from touchsurface.utils.performance import PIPELINE_STAGES, PerformanceMonitor, StageStats


class TestStageStats:
    """Test suite for the rolling stage window."""

    def test_empty(self):
        stats = StageStats(window_size=3)

        assert stats.mean == 0.0
        assert stats.count == 0

    def test_window_rolls_but_worst_is_kept(self):
        stats = StageStats(window_size=2)
        for seconds in (0.5, 0.1, 0.1):
            stats.add(seconds)

        assert stats.mean == pytest.approx(0.1)
        assert stats.worst == pytest.approx(0.5)
        assert stats.count == 3


class TestPerformanceMonitor:
    """Test suite for PerformanceMonitor class."""

    @pytest.fixture
    def monitor(self):
        return PerformanceMonitor(window_size=5)

    def test_no_frames_yet(self, monitor):
        assert monitor.fps == 0.0
        assert monitor.frame_time_ms == 0.0
        assert monitor.stage_time_ms("mapping") == 0.0

    def test_fps_calculation(self, monitor):
        for _ in range(5):
            monitor.frame_start()
            time.sleep(0.02)
            monitor.frame_complete()

        assert 10 < monitor.fps < 55

    def test_frame_complete_returns_ms(self, monitor):
        monitor.frame_start()
        time.sleep(0.01)
        elapsed_ms = monitor.frame_complete()

        assert elapsed_ms >= 9

    def test_frame_complete_without_start(self, monitor):
        assert monitor.frame_complete() == 0.0
        assert monitor.total_frames == 0

    def test_stage_timing(self, monitor):
        for _ in range(3):
            monitor.frame_start()
            with monitor.measure("mapping"):
                time.sleep(0.002)
            with monitor.measure("detection"):
                time.sleep(0.010)
            monitor.frame_complete()

        assert monitor.stage_time_ms("mapping") >= 1
        assert monitor.stage_time_ms("detection") >= 9
        assert monitor.stage_time_ms("detection") > monitor.stage_time_ms("mapping")
        assert monitor.stage_worst_ms("detection") >= monitor.stage_time_ms("detection")

    def test_measure_records_on_exception(self, monitor):
        with pytest.raises(RuntimeError):
            with monitor.measure("contact"):
                raise RuntimeError("boom")

        assert monitor.stage_time_ms("contact") >= 0.0
        assert monitor.get_metrics().stage_worst_ms["contact"] >= 0.0

    def test_dropped_frames(self, monitor):
        monitor.record_drop()
        monitor.record_drop()

        assert monitor.dropped_frames == 2
        assert monitor.get_metrics().dropped_frames == 2

    def test_frames_counted_by_phase(self, monitor):
        for phase in (PipelinePhase.CALIBRATING, PipelinePhase.CALIBRATING, PipelinePhase.RUNNING):
            monitor.frame_start()
            monitor.frame_complete(phase)

        metrics = monitor.get_metrics()

        assert metrics.frames_by_phase == {"calibrating": 2, "running": 1}
        assert metrics.total_frames == 3

    def test_metrics_snapshot(self, monitor):
        monitor.frame_start()
        monitor.frame_complete()

        metrics = monitor.get_metrics()

        assert metrics.total_frames == 1
        assert set(metrics.stage_times_ms) == set(PIPELINE_STAGES)

    def test_report_generation(self, monitor):
        monitor.frame_start()
        monitor.frame_complete(PipelinePhase.RUNNING)

        report = monitor.get_report()

        assert "FPS" in report
        assert "Mapping" in report
        assert "1 processed" in report
        assert "1 running" in report

    def test_reset(self, monitor):
        monitor.frame_start()
        monitor.frame_complete()
        monitor.record_drop()
        monitor.reset()

        assert monitor.total_frames == 0
        assert monitor.dropped_frames == 0
        assert monitor.fps == 0.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
