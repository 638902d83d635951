"""
KITTI odometry layout reader.

    <root>/sequences/<name>/velodyne/000000.bin   float32 x, y, z, intensity
    <root>/poses/<name>.txt                       one 3x4 camera pose per line
"""

import logging
from pathlib import Path
from typing import List, Optional

import numpy as np

from odom_bench.common.config import DatasetOptions
from odom_bench.common.data_structures import Frame, Trajectory
from odom_bench.common.persistence import load_poses_kitti
from odom_bench.datasets.base import FrameSource, SequenceDataset, SequenceInfo
from odom_bench.utils.math_utils import change_of_basis

logger = logging.getLogger(__name__)


def read_velodyne_bin(path: Path) -> np.ndarray:
    """Read a KITTI velodyne scan as an Nx4 float64 array."""
    scan = np.fromfile(str(path), dtype=np.float32)
    if scan.size % 4 != 0:
        raise ValueError(f"Corrupted scan {path}: {scan.size} floats is not a multiple of 4")
    return scan.reshape(-1, 4).astype(np.float64)


class KittiFrameSource(FrameSource):
    """Reads the scans of one sequence lazily, in file name order."""

    def __init__(self, scan_files: List[Path]):
        self.scan_files = scan_files
        self._next = 0

    def has_next(self) -> bool:
        return self._next < len(self.scan_files)

    def next_frame(self) -> Frame:
        if not self.has_next():
            raise IndexError("No more frames in the sequence")
        index = self._next
        self._next += 1
        scan = read_velodyne_bin(self.scan_files[index])
        return Frame(index=index, points=scan)

    def set_init_frame(self, index: int):
        if index < 0 or index > len(self.scan_files):
            raise IndexError(f"Frame {index} out of range [0, {len(self.scan_files)}]")
        self._next = index


class KittiDataset(SequenceDataset):
    """
    Sequences and ground truth of a KITTI-style odometry dataset.

    Args:
        options: Dataset options of the benchmark config
    """

    def __init__(self, options: DatasetOptions):
        self.options = options
        self.root_path = Path(options.root_path)
        self.velo_to_cam: Optional[np.ndarray] = None
        if options.velo_to_cam is not None:
            self.velo_to_cam = np.array(options.velo_to_cam, dtype=np.float64)
        self._sequences: Optional[List[SequenceInfo]] = None

    @property
    def sequences_dir(self) -> Path:
        return self.root_path / "sequences"

    def _scan_files(self, name: str) -> List[Path]:
        return sorted((self.sequences_dir / name / self.options.velodyne_dir).glob("*.bin"))

    def _poses_file(self, sequence_id: int) -> Path:
        return self.root_path / self.options.poses_dir / f"{self.sequence_name(sequence_id)}.txt"

    def get_sequences(self) -> List[SequenceInfo]:
        if self._sequences is None:
            if not self.sequences_dir.is_dir():
                raise FileNotFoundError(f"Sequences directory not found: {self.sequences_dir}")
            names = sorted(p.name for p in self.sequences_dir.iterdir() if p.is_dir())
            self._sequences = [
                SequenceInfo(sequence_id=i, name=name, num_frames=len(self._scan_files(name)))
                for i, name in enumerate(names)
            ]
            logger.info(f"Found {len(self._sequences)} sequences in {self.sequences_dir}")
        return self._sequences

    def open_sequence(self, sequence_id: int) -> FrameSource:
        return KittiFrameSource(self._scan_files(self.sequence_name(sequence_id)))

    def has_ground_truth(self, sequence_id: int) -> bool:
        return self._poses_file(sequence_id).is_file()

    def load_ground_truth(self, sequence_id: int) -> List[np.ndarray]:
        return load_poses_kitti(self._poses_file(sequence_id))

    def to_absolute_poses(self, sequence_id: int, trajectory: Trajectory) -> List[np.ndarray]:
        """Mid poses, moved to the camera frame when a calibration is set."""
        poses = trajectory.mid_poses()
        if self.velo_to_cam is None:
            return poses
        return change_of_basis(poses, self.velo_to_cam)
