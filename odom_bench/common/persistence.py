"""
On-disk persistence of trajectories and benchmark metrics.

Save functions never raise on I/O errors: they log a warning and return False,
so the caller decides whether a failed save is fatal.
"""

import logging
from pathlib import Path
from typing import Dict, List, Sequence, Union

import numpy as np
import yaml

from odom_bench.common.data_structures import SequenceErrors, Trajectory

logger = logging.getLogger(__name__)


def _write_text(path: Path, content: str) -> bool:
    """Replace the file content in one step so readers never see a partial file."""
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, 'w') as f:
            f.write(content)
        tmp_path.replace(path)
    except OSError as e:
        logger.warning(f"Could not write {path}: {e}")
        if tmp_path.is_file():
            tmp_path.unlink()
        return False
    return True


def _pose_row(T: np.ndarray) -> str:
    return " ".join(f"{v:.9e}" for v in np.asarray(T)[:3, :4].reshape(-1))


# ============================================================================
# Poses
# ============================================================================

def save_poses_kitti(path: Union[str, Path], poses: Sequence[np.ndarray]) -> bool:
    """
    Save absolute poses in KITTI format (one row-major 3x4 matrix per line).

    Args:
        path: Output file
        poses: 4x4 poses

    Returns:
        True if the file was written
    """
    content = "".join(_pose_row(T) + "\n" for T in poses)
    return _write_text(Path(path), content)


def load_poses_kitti(path: Union[str, Path]) -> List[np.ndarray]:
    """
    Load poses written in KITTI format.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If a line does not hold 12 values
    """
    path = Path(path)
    poses = []
    with open(path, 'r') as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            values = np.array(line.split(), dtype=np.float64)
            if values.size != 12:
                raise ValueError(f"{path}:{line_no}: expected 12 values, got {values.size}")
            T = np.eye(4)
            T[:3, :4] = values.reshape(3, 4)
            poses.append(T)
    return poses


def save_trajectory_frames(path: Union[str, Path], trajectory: Trajectory) -> bool:
    """
    Save begin and end poses of every frame, 24 values per line.

    Args:
        path: Output file
        trajectory: Estimated trajectory

    Returns:
        True if the file was written
    """
    content = "".join(
        f"{_pose_row(f.begin_pose)} {_pose_row(f.end_pose)}\n" for f in trajectory
    )
    return _write_text(Path(path), content)


# ============================================================================
# Metrics
# ============================================================================

def save_metrics(path: Union[str, Path], errors: Dict[str, SequenceErrors]) -> bool:
    """
    Overwrite the metrics file with the full sequence -> errors mapping.

    Args:
        path: Output YAML file
        errors: Errors of every evaluated sequence

    Returns:
        True if the file was written
    """
    data = {name: seq_errors.to_dict() for name, seq_errors in errors.items()}
    content = yaml.safe_dump(data, sort_keys=True, default_flow_style=False)
    return _write_text(Path(path), content)


def load_metrics(path: Union[str, Path]) -> Dict[str, SequenceErrors]:
    """Load a metrics file written by save_metrics."""
    with open(path, 'r') as f:
        data = yaml.safe_load(f) or {}
    return {str(name): SequenceErrors.from_dict(entry) for name, entry in data.items()}
