"""
Tests for trajectory and metrics persistence.
"""

import numpy as np
import pytest
from numpy.testing import assert_array_almost_equal

from odom_bench.common.data_structures import SegmentError, SequenceErrors, Trajectory, TrajectoryFrame
from odom_bench.common.persistence import (
    save_poses_kitti, load_poses_kitti,
    save_trajectory_frames,
    save_metrics, load_metrics
)
from odom_bench.utils.math_utils import make_transform, so3_exp


@pytest.fixture
def poses():
    return [
        make_transform(so3_exp(np.array([0.0, 0.0, 0.1 * i])), [i, 2.0 * i, -0.5 * i])
        for i in range(5)
    ]


class TestPoseFiles:
    """Test KITTI pose files."""

    def test_kitti_format(self, tmp_path, poses):
        path = tmp_path / "00_poses.txt"
        assert save_poses_kitti(path, poses)

        lines = path.read_text().splitlines()
        assert len(lines) == 5
        assert all(len(line.split()) == 12 for line in lines)
        assert_array_almost_equal(np.array(lines[3].split(), dtype=float).reshape(3, 4), poses[3][:3, :4])

    def test_poses_reload(self, tmp_path, poses):
        path = tmp_path / "poses.txt"
        save_poses_kitti(path, poses)
        loaded = load_poses_kitti(path)
        assert len(loaded) == len(poses)
        for expected, actual in zip(poses, loaded):
            assert_array_almost_equal(actual, expected)

    def test_load_rejects_short_rows(self, tmp_path):
        path = tmp_path / "bad.txt"
        path.write_text("1 0 0 0 0 1 0 0\n")
        with pytest.raises(ValueError):
            load_poses_kitti(path)

    def test_dual_poses(self, tmp_path, poses):
        trajectory = Trajectory([
            TrajectoryFrame(begin_pose=poses[i], end_pose=poses[i + 1]) for i in range(4)
        ])
        path = tmp_path / "00_dual_poses.txt"
        assert save_trajectory_frames(path, trajectory)

        rows = np.loadtxt(path)
        assert rows.shape == (4, 24)
        assert_array_almost_equal(rows[2, :12], poses[2][:3, :4].reshape(-1))
        assert_array_almost_equal(rows[2, 12:], poses[3][:3, :4].reshape(-1))

    def test_save_failure_returns_false(self, tmp_path, poses):
        """Test an unwritable destination is reported, not raised."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        assert save_poses_kitti(blocker / "poses.txt", poses) is False


class TestMetricsFile:
    """Test the metrics report file."""

    def test_metrics_overwritten(self, tmp_path):
        path = tmp_path / "metrics.yaml"
        first = {"00": SequenceErrors(mean_rpe=1.0)}
        second = {
            "00": SequenceErrors(mean_rpe=2.0),
            "01": SequenceErrors(
                mean_rpe=3.0,
                index_max_local_err=4,
                tab_errors=(SegmentError(first_frame=10, r_err=1e-4, t_err=0.02, length=100.0),)
            )
        }
        assert save_metrics(path, first)
        assert save_metrics(path, second)

        loaded = load_metrics(path)
        assert set(loaded) == {"00", "01"}
        assert loaded["00"].mean_rpe == pytest.approx(2.0)
        assert loaded["01"].index_max_local_err == 4
        assert loaded["01"].tab_errors[0].first_frame == 10
        assert not (tmp_path / "metrics.yaml.tmp").exists()
