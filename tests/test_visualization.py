"""
Tests for the visualization coordinator and live view renderer.
"""

import threading
import time

import numpy as np
import plotly.graph_objects as go
import pytest

from odom_bench.plotting.trajectory_plot import TrajectorySnapshotRenderer, plot_odometry_top_down
from odom_bench.runtime.visualization import (
    NullVisualization,
    ThreadedVisualization,
    VisualizationSnapshot,
    build_visualization
)

from mock_odometry import straight_line_poses


class RecordingRenderer:
    """Render callback keeping every snapshot."""

    def __init__(self, fail=False):
        self.snapshots = []
        self.fail = fail
        self.threads = set()

    def __call__(self, snapshot):
        self.threads.add(threading.current_thread().name)
        self.snapshots.append(snapshot)
        if self.fail:
            raise RuntimeError("render failure")


class TestNullVisualization:
    """Test the disabled coordinator."""

    def test_every_call_is_noop(self):
        viz = NullVisualization()
        with viz:
            viz.upload_trajectory(straight_line_poses(3))
            viz.upload_point_cloud(0, np.zeros((5, 3)))
            viz.wait_while_paused()
            assert viz.is_paused() is False

    def test_build_disabled(self):
        assert isinstance(build_visualization(False, RecordingRenderer()), NullVisualization)
        assert isinstance(build_visualization(True, None), NullVisualization)


class TestThreadedVisualization:
    """Test the render thread coordinator."""

    def test_slots_overwrite(self):
        viz = ThreadedVisualization(RecordingRenderer(), num_slots=3)
        for i in range(5):
            viz.upload_point_cloud(i, np.full((2, 3), float(i)))
        snapshot = viz.snapshot()
        assert sorted(snapshot.point_clouds) == [0, 1, 2]
        assert snapshot.point_clouds[0][0, 0] == 3.0
        assert snapshot.point_clouds[1][0, 0] == 4.0
        assert snapshot.point_clouds[2][0, 0] == 2.0

    def test_trajectory_replaced(self):
        viz = ThreadedVisualization(RecordingRenderer())
        viz.upload_trajectory(straight_line_poses(3))
        viz.upload_trajectory(straight_line_poses(5))
        assert len(viz.snapshot().poses) == 5

    def test_render_thread_lifecycle(self):
        renderer = RecordingRenderer()
        viz = ThreadedVisualization(renderer, render_interval=0.01)
        viz.start()
        assert viz.is_running
        viz.upload_trajectory(straight_line_poses(2))
        time.sleep(0.05)
        viz.close()
        assert not viz.is_running
        assert len(renderer.snapshots) >= 1
        assert len(renderer.snapshots[-1].poses) == 2
        assert renderer.threads == {"visualization"}

    def test_close_idempotent(self):
        viz = ThreadedVisualization(RecordingRenderer(), render_interval=0.01)
        viz.close()
        viz.start()
        viz.close()
        viz.close()
        assert not viz.is_running

    def test_context_manager_joins(self):
        with ThreadedVisualization(RecordingRenderer(), render_interval=0.01) as viz:
            assert viz.is_running
        assert not viz.is_running

    def test_render_errors_stay_on_render_thread(self):
        renderer = RecordingRenderer(fail=True)
        viz = ThreadedVisualization(renderer, render_interval=0.01)
        viz.start()
        time.sleep(0.05)
        viz.close()
        assert len(renderer.snapshots) >= 2

    def test_pause_blocks_until_resume(self):
        viz = ThreadedVisualization(RecordingRenderer(), poll_interval=0.001)
        viz.pause()
        assert viz.is_paused()
        released = threading.Event()

        def producer():
            viz.wait_while_paused()
            released.set()

        thread = threading.Thread(target=producer)
        thread.start()
        assert not released.wait(0.1)
        viz.resume()
        assert released.wait(1.0)
        thread.join()

    def test_pause_file(self, tmp_path):
        pause_file = tmp_path / "PAUSE"
        viz = ThreadedVisualization(RecordingRenderer(), pause_file=pause_file)
        assert not viz.is_paused()
        pause_file.touch()
        assert viz.is_paused()
        assert viz.snapshot().paused
        pause_file.unlink()
        assert not viz.is_paused()

    def test_close_releases_paused_producer(self):
        viz = ThreadedVisualization(RecordingRenderer(), render_interval=0.01, poll_interval=0.001)
        viz.start()
        viz.pause()
        thread = threading.Thread(target=viz.wait_while_paused)
        thread.start()
        time.sleep(0.02)
        viz.close()
        thread.join(1.0)
        assert not thread.is_alive()


class TestSnapshotRenderer:
    """Test the Plotly live view."""

    def test_top_down_figure(self):
        fig = plot_odometry_top_down(straight_line_poses(10), [np.random.rand(100, 3)])
        assert isinstance(fig, go.Figure)
        names = [trace.name for trace in fig.data]
        assert names == ["Points", "Trajectory", "Start", "Current"]

    def test_points_subsampled(self):
        fig = plot_odometry_top_down([], [np.random.rand(1000, 3)], max_points_per_cloud=100)
        assert len(fig.data[0].x) <= 100

    def test_renderer_writes_html(self, tmp_path):
        path = tmp_path / "live" / "view.html"
        renderer = TrajectorySnapshotRenderer(path)
        snapshot = VisualizationSnapshot(poses=straight_line_poses(4), point_clouds={0: np.zeros((3, 3))})
        renderer(snapshot)
        assert path.exists()
        assert renderer.num_renders == 1

    def test_renderer_skips_unchanged_state(self, tmp_path):
        renderer = TrajectorySnapshotRenderer(tmp_path / "view.html")
        snapshot = VisualizationSnapshot(poses=straight_line_poses(4))
        renderer(snapshot)
        renderer(snapshot)
        assert renderer.num_renders == 1
        renderer(VisualizationSnapshot(poses=straight_line_poses(4), paused=True))
        assert renderer.num_renders == 2
