"""
Tests for the KITTI dataset reader.
"""

import numpy as np
import pytest
from numpy.testing import assert_array_almost_equal

from odom_bench.common.config import DatasetOptions
from odom_bench.common.data_structures import Trajectory, TrajectoryFrame
from odom_bench.common.persistence import save_poses_kitti
from odom_bench.datasets.base import ListFrameSource
from odom_bench.datasets.kitti import KittiDataset, KittiFrameSource, read_velodyne_bin

from mock_odometry import make_frames, straight_line_poses


def write_kitti_sequence(root, name, num_frames, with_poses=True, num_points=16):
    velodyne = root / "sequences" / name / "velodyne"
    velodyne.mkdir(parents=True)
    rng = np.random.default_rng(0)
    for i in range(num_frames):
        scan = rng.uniform(-10, 10, size=(num_points, 4)).astype(np.float32)
        scan.tofile(str(velodyne / f"{i:06d}.bin"))
    if with_poses:
        save_poses_kitti(root / "poses" / f"{name}.txt", straight_line_poses(num_frames))


class TestVelodyneScans:
    """Test raw scan decoding."""

    def test_read_scan(self, tmp_path):
        scan = np.arange(8, dtype=np.float32)
        scan.tofile(str(tmp_path / "000000.bin"))
        points = read_velodyne_bin(tmp_path / "000000.bin")
        assert points.shape == (2, 4)
        assert_array_almost_equal(points[1], [4, 5, 6, 7])

    def test_corrupted_scan(self, tmp_path):
        np.arange(7, dtype=np.float32).tofile(str(tmp_path / "bad.bin"))
        with pytest.raises(ValueError):
            read_velodyne_bin(tmp_path / "bad.bin")


class TestFrameSources:
    """Test frame iteration."""

    def test_list_source(self):
        source = ListFrameSource(make_frames(3))
        indices = []
        while source.has_next():
            indices.append(source.next_frame().index)
        assert indices == [0, 1, 2]
        with pytest.raises(IndexError):
            source.next_frame()

    def test_kitti_source_init_frame(self, tmp_path):
        write_kitti_sequence(tmp_path, "00", 5)
        files = sorted((tmp_path / "sequences" / "00" / "velodyne").glob("*.bin"))
        source = KittiFrameSource(files)
        source.set_init_frame(3)
        frame = source.next_frame()
        assert frame.index == 3
        assert frame.points.shape == (16, 4)
        with pytest.raises(IndexError):
            source.set_init_frame(10)


class TestKittiDataset:
    """Test dataset discovery and ground truth."""

    def test_sequences(self, tmp_path):
        write_kitti_sequence(tmp_path, "01", 3, with_poses=False)
        write_kitti_sequence(tmp_path, "00", 4)
        dataset = KittiDataset(DatasetOptions(root_path=tmp_path))

        sequences = dataset.get_sequences()
        assert [s.name for s in sequences] == ["00", "01"]
        assert [s.num_frames for s in sequences] == [4, 3]
        assert dataset.has_ground_truth(0)
        assert not dataset.has_ground_truth(1)
        assert len(dataset.load_ground_truth(0)) == 4

    def test_missing_root(self, tmp_path):
        dataset = KittiDataset(DatasetOptions(root_path=tmp_path / "nowhere"))
        with pytest.raises(FileNotFoundError):
            dataset.get_sequences()

    def test_unknown_sequence_id(self, tmp_path):
        write_kitti_sequence(tmp_path, "00", 1)
        with pytest.raises(KeyError):
            KittiDataset(DatasetOptions(root_path=tmp_path)).sequence_name(5)

    def test_absolute_poses_in_camera_frame(self, tmp_path):
        velo_to_cam = [[0, -1, 0, 0], [0, 0, -1, 0], [1, 0, 0, 0]]
        dataset = KittiDataset(DatasetOptions(root_path=tmp_path, velo_to_cam=velo_to_cam))
        trajectory = Trajectory([TrajectoryFrame.from_pose(P) for P in straight_line_poses(3)])

        poses = dataset.to_absolute_poses(0, trajectory)
        assert_array_almost_equal(poses[2][:3, 3], [0, 0, 2])

    def test_absolute_poses_without_calibration(self, tmp_path):
        dataset = KittiDataset(DatasetOptions(root_path=tmp_path))
        trajectory = Trajectory([TrajectoryFrame.from_pose(P) for P in straight_line_poses(3)])
        assert_array_almost_equal(dataset.to_absolute_poses(0, trajectory)[2][:3, 3], [2, 0, 0])
