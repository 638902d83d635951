"""
Tests for the per-sequence registration loop.
"""

import threading
import time

import numpy as np
import pytest
from numpy.testing import assert_array_almost_equal

from odom_bench.common import data_structures
from odom_bench.common.config import VizMode
from odom_bench.common.data_structures import RunOutcome
from odom_bench.datasets.base import ListFrameSource
from odom_bench.runtime.sequence_runner import RunOptions, SequenceRunner
from odom_bench.runtime.visualization import ThreadedVisualization, VisualizationCoordinator
from odom_bench.utils.math_utils import interpolate_se3

from mock_odometry import MockEngine, make_frames, straight_line_poses


class SlowEngine(MockEngine):
    """Engine sleeping during registration."""

    def __init__(self, delay, **kwargs):
        super().__init__(**kwargs)
        self.delay = delay

    def register_frame(self, frame):
        time.sleep(self.delay)
        return super().register_frame(frame)


class SlowFrameSource(ListFrameSource):
    """Frame source sleeping on every read."""

    def __init__(self, frames, delay):
        super().__init__(frames)
        self.delay = delay

    def next_frame(self):
        time.sleep(self.delay)
        return super().next_frame()


class BrokenFrameSource(ListFrameSource):
    """Frame source whose scan at `broken_at` cannot be decoded."""

    def __init__(self, frames, broken_at):
        super().__init__(frames)
        self.broken_at = broken_at

    def next_frame(self):
        if self._next == self.broken_at:
            raise ValueError("Corrupted scan")
        return super().next_frame()


class RecordingVisualization(VisualizationCoordinator):
    """Coordinator recording the calls of the runner."""

    def __init__(self):
        self.calls = []

    def upload_trajectory(self, poses):
        self.calls.append(("trajectory", len(poses)))

    def upload_point_cloud(self, slot, points):
        self.calls.append(("points", slot))

    def is_paused(self):
        return False

    def wait_while_paused(self):
        self.calls.append(("wait",))


class TestSequenceRunner:
    """Test the registration loop."""

    def test_full_sequence(self):
        poses = straight_line_poses(10)
        result = SequenceRunner().run(0, ListFrameSource(make_frames(10)), MockEngine(poses, attempts=2))

        assert result.outcome == RunOutcome.COMPLETED
        assert result.num_frames == 10
        assert len(result.trajectory) == 10
        assert result.average_attempts == pytest.approx(2.0)
        assert_array_almost_equal(result.trajectory[4].mid_pose, poses[4])

    def test_zero_frames(self):
        """Test an empty source gives zero averages instead of dividing by zero."""
        result = SequenceRunner().run(0, ListFrameSource([]), MockEngine())

        assert result.outcome == RunOutcome.COMPLETED
        assert result.num_frames == 0
        assert result.average_attempts == 0.0
        assert result.average_elapsed_ms == 0.0
        assert len(result.trajectory) == 0

    def test_max_frames(self):
        engine = MockEngine()
        runner = SequenceRunner(RunOptions(max_frames=4))
        result = runner.run(0, ListFrameSource(make_frames(10)), engine)

        assert result.num_frames == 4
        assert engine.registered == [0, 1, 2, 3]

    def test_max_frames_zero(self):
        engine = MockEngine()
        result = SequenceRunner(RunOptions(max_frames=0)).run(0, ListFrameSource(make_frames(3)), engine)
        assert result.num_frames == 0
        assert engine.registered == []

    def test_failure_ends_sequence(self, caplog):
        """Test a failure keeps the partial trajectory and stops reading frames."""
        engine = MockEngine(fail_at=5, attempts=3)
        with caplog.at_level("ERROR"):
            result = SequenceRunner().run(7, ListFrameSource(make_frames(10)), engine)

        assert result.outcome == RunOutcome.FAILED
        assert not result.aborted
        assert result.num_frames == 5
        assert len(result.trajectory) == 5
        assert result.failed_frame == 5
        assert result.error_message == "ICP did not converge"
        assert engine.registered == [0, 1, 2, 3, 4, 5]
        # Attempts of the failed frame are counted, divided by registered frames
        assert result.average_attempts == pytest.approx(18 / 5)
        assert "sequence 7" in caplog.text
        assert "frame index 5" in caplog.text

    def test_failure_with_suspend_aborts(self):
        runner = SequenceRunner(RunOptions(suspend_on_failure=True))
        result = runner.run(0, ListFrameSource(make_frames(10)), MockEngine(fail_at=2))

        assert result.outcome == RunOutcome.ABORTED
        assert result.aborted
        assert len(result.trajectory) == 2

    def test_engine_exception_becomes_failure(self):
        result = SequenceRunner().run(0, ListFrameSource(make_frames(5)), MockEngine(raise_at=1))

        assert result.outcome == RunOutcome.FAILED
        assert "solver exploded" in result.error_message
        assert result.num_frames == 1

    def test_frame_read_error_ends_sequence(self):
        engine = MockEngine()
        result = SequenceRunner().run(0, BrokenFrameSource(make_frames(6), broken_at=3), engine)

        assert result.outcome == RunOutcome.FAILED
        assert result.num_frames == 3
        assert len(result.trajectory) == 3
        assert result.failed_frame == 3
        assert "Corrupted scan" in result.error_message
        assert engine.registered == [0, 1, 2]

    def test_frame_read_error_with_suspend(self):
        runner = SequenceRunner(RunOptions(suspend_on_failure=True))
        result = runner.run(0, BrokenFrameSource(make_frames(6), broken_at=0), MockEngine())
        assert result.aborted
        assert result.num_frames == 0

    def test_registration_time_excludes_frame_read(self):
        """Test only the registration call is accumulated."""
        source = SlowFrameSource(make_frames(3), delay=0.05)
        engine = SlowEngine(0.01)
        result = SequenceRunner().run(0, source, engine)

        assert result.registration_elapsed_ms >= 3 * 10.0
        assert result.registration_elapsed_ms < 3 * 50.0
        assert result.average_elapsed_ms == pytest.approx(result.registration_elapsed_ms / 3)

    def test_failed_frame_time_accumulated(self):
        engine = SlowEngine(0.02, fail_at=0)
        result = SequenceRunner().run(0, ListFrameSource(make_frames(3)), engine)

        assert result.num_frames == 0
        assert result.registration_elapsed_ms >= 20.0
        assert result.average_elapsed_ms == 0.0

    def test_start_frame(self):
        source = ListFrameSource(make_frames(10))
        source.set_init_frame(6)
        engine = MockEngine()
        result = SequenceRunner().run(0, source, engine)

        assert result.num_frames == 4
        assert engine.registered == [6, 7, 8, 9]


class TestRunnerVisualization:
    """Test the uploads done by the runner."""

    def test_aggregated_mode(self):
        viz = RecordingVisualization()
        runner = SequenceRunner(RunOptions(viz_mode=VizMode.AGGREGATED), visualization=viz)
        runner.run(0, ListFrameSource(make_frames(2)), MockEngine())

        assert viz.calls == [
            ("trajectory", 1), ("points", 0), ("wait",),
            ("trajectory", 2), ("points", 1), ("wait",)
        ]

    def test_keypoints_mode_skips_points(self):
        viz = RecordingVisualization()
        runner = SequenceRunner(RunOptions(viz_mode=VizMode.KEYPOINTS), visualization=viz)
        runner.run(0, ListFrameSource(make_frames(2)), MockEngine())

        assert ("points", 0) not in viz.calls
        assert viz.calls.count(("wait",)) == 2

    def test_pause_delays_next_frame(self):
        """Test a pause blocks the next frame without touching the registered ones."""
        viz = ThreadedVisualization(lambda snapshot: None, poll_interval=0.001)
        engine = MockEngine()
        runner = SequenceRunner(visualization=viz)
        viz.pause()

        results = []
        thread = threading.Thread(
            target=lambda: results.append(runner.run(0, ListFrameSource(make_frames(3)), engine))
        )
        thread.start()
        time.sleep(0.1)
        assert engine.registered == [0]
        assert len(viz.snapshot().poses) == 1

        viz.resume()
        thread.join(2.0)
        assert not thread.is_alive()
        assert results[0].num_frames == 3
        assert engine.registered == [0, 1, 2]

    def test_mid_poses_interpolated_once_per_frame(self, monkeypatch):
        """Test uploads reuse mid poses instead of interpolating the whole trajectory each frame."""
        calls = []

        def counting_interpolate(T0, T1, alpha):
            calls.append(alpha)
            return interpolate_se3(T0, T1, alpha)

        monkeypatch.setattr(data_structures, "interpolate_se3", counting_interpolate)
        viz = RecordingVisualization()
        runner = SequenceRunner(visualization=viz)
        result = runner.run(0, ListFrameSource(make_frames(20)), MockEngine(straight_line_poses(20)))

        assert result.num_frames == 20
        assert len(calls) == 20
        assert ("trajectory", 20) in viz.calls
        assert_array_almost_equal(result.trajectory.mid_poses()[-1], straight_line_poses(20)[-1])
        assert len(calls) == 20
