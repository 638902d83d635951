"""
Core data structures for the odometry benchmark.
Following the naming convention: A_T_B means T transforms FROM B TO A.
Poses are 4x4 world_T_sensor matrices.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Dict, Any
import numpy as np

from odom_bench.utils.math_utils import interpolate_se3


def _as_transform(T: Any) -> np.ndarray:
    T = np.asarray(T, dtype=np.float64)
    if T.shape != (4, 4):
        raise ValueError(f"Pose must be a 4x4 matrix, got shape {T.shape}")
    return T


# ============================================================================
# Frame Data Structures
# ============================================================================

@dataclass
class Frame:
    """One sensor packet registered as a unit."""
    index: int  # Index in the sequence
    points: np.ndarray  # NxD points, first three columns are x, y, z
    timestamps: Optional[np.ndarray] = None  # Per-point timestamps, normalized to [0, 1]

    def __post_init__(self):
        self.points = np.asarray(self.points)
        if self.points.ndim != 2:
            self.points = self.points.reshape(-1, 3)

    def __len__(self) -> int:
        return self.points.shape[0]


@dataclass
class TrajectoryFrame:
    """Pose interval describing continuous motion across a frame."""
    begin_pose: np.ndarray  # world_T_sensor at the start of the sweep
    end_pose: np.ndarray  # world_T_sensor at the end of the sweep
    mid_pose: np.ndarray = field(init=False, repr=False, compare=False)  # Pose halfway through the sweep

    def __post_init__(self):
        self.begin_pose = _as_transform(self.begin_pose)
        self.end_pose = _as_transform(self.end_pose)
        self.mid_pose = interpolate_se3(self.begin_pose, self.end_pose, 0.5)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "begin_pose": self.begin_pose.tolist(),
            "end_pose": self.end_pose.tolist()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrajectoryFrame':
        """Create from dictionary."""
        return cls(
            begin_pose=np.array(data["begin_pose"]),
            end_pose=np.array(data["end_pose"])
        )

    @classmethod
    def from_pose(cls, pose: np.ndarray) -> 'TrajectoryFrame':
        """Degenerate interval with no motion inside the frame."""
        pose = _as_transform(pose)
        return cls(begin_pose=pose.copy(), end_pose=pose.copy())


@dataclass
class Trajectory:
    """Ordered pose intervals, one per successfully registered frame."""
    frames: List[TrajectoryFrame] = field(default_factory=list)

    def append(self, frame: TrajectoryFrame):
        self.frames.append(frame)

    def __len__(self) -> int:
        return len(self.frames)

    def __iter__(self):
        return iter(self.frames)

    def __getitem__(self, idx):
        return self.frames[idx]

    def mid_poses(self) -> List[np.ndarray]:
        """Mid poses of all frames, used for display and evaluation."""
        return [f.mid_pose for f in self.frames]


# ============================================================================
# Registration Data Structures
# ============================================================================

@dataclass
class RegistrationSummary:
    """
    Result of registering one frame.

    Attributes:
        success: Whether the registration converged
        error_message: Reason of the failure (empty on success)
        number_of_attempts: Attempts made by the engine (>= 1 on success)
        frame: Estimated pose interval of the frame
        corrected_points: Nx3 world points after motion correction
    """
    success: bool
    frame: Optional[TrajectoryFrame] = None
    number_of_attempts: int = 1
    error_message: str = ""
    corrected_points: np.ndarray = field(default_factory=lambda: np.empty((0, 3)))

    def __post_init__(self):
        if self.number_of_attempts < 0:
            raise ValueError(f"number_of_attempts must be >= 0, got {self.number_of_attempts}")
        if self.success:
            if self.number_of_attempts < 1:
                raise ValueError("A successful registration needs at least one attempt")
            if self.frame is None:
                raise ValueError("A successful registration must provide its frame poses")
        self.corrected_points = np.asarray(self.corrected_points, dtype=np.float64).reshape(-1, 3)


# ============================================================================
# Evaluation Data Structures
# ============================================================================

@dataclass(frozen=True)
class SegmentError:
    """Relative pose error over one fixed path-length window."""
    first_frame: int
    r_err: float  # Rotation error per metre (rad/m)
    t_err: float  # Translation error as a fraction of the length
    length: float  # Segment length (m)
    speed: float = 0.0  # Segment length over its duration at 10 Hz (m/s)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "first_frame": self.first_frame,
            "r_err": self.r_err,
            "t_err": self.t_err,
            "length": self.length,
            "speed": self.speed
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SegmentError':
        return cls(
            first_frame=int(data["first_frame"]),
            r_err=float(data["r_err"]),
            t_err=float(data["t_err"]),
            length=float(data["length"]),
            speed=float(data.get("speed", 0.0))
        )


@dataclass(frozen=True)
class SequenceErrors:
    """
    Error report of one sequence evaluated against ground truth.

    Attributes:
        mean_rpe: Mean segment translation error (%)
        mean_ape: Mean absolute pose error (m)
        max_ape: Max absolute pose error (m)
        mean_local_err: Mean frame-to-frame drift (m)
        max_local_err: Max frame-to-frame drift (m)
        index_max_local_err: First index of max drift (None without samples)
        average_elapsed_ms: Average registration time per frame (ms)
        mean_num_attempts: Average registration attempts per frame
        tab_errors: Segment errors used for the KITTI metric
        valid: False when the estimate and ground truth lengths differ
    """
    mean_rpe: float = 0.0
    mean_ape: float = 0.0
    max_ape: float = 0.0
    mean_local_err: float = 0.0
    max_local_err: float = 0.0
    index_max_local_err: Optional[int] = None
    average_elapsed_ms: float = 0.0
    mean_num_attempts: float = 0.0
    tab_errors: tuple = ()
    valid: bool = True

    @property
    def num_segments(self) -> int:
        return len(self.tab_errors)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "mean_rpe": float(self.mean_rpe),
            "mean_ape": float(self.mean_ape),
            "max_ape": float(self.max_ape),
            "mean_local_err": float(self.mean_local_err),
            "max_local_err": float(self.max_local_err),
            "index_max_local_err": self.index_max_local_err,
            "average_elapsed_ms": float(self.average_elapsed_ms),
            "mean_num_attempts": float(self.mean_num_attempts),
            "valid": self.valid,
            "tab_errors": [e.to_dict() for e in self.tab_errors]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SequenceErrors':
        """Create from dictionary."""
        index = data.get("index_max_local_err")
        return cls(
            mean_rpe=float(data.get("mean_rpe", 0.0)),
            mean_ape=float(data.get("mean_ape", 0.0)),
            max_ape=float(data.get("max_ape", 0.0)),
            mean_local_err=float(data.get("mean_local_err", 0.0)),
            max_local_err=float(data.get("max_local_err", 0.0)),
            index_max_local_err=None if index is None else int(index),
            average_elapsed_ms=float(data.get("average_elapsed_ms", 0.0)),
            mean_num_attempts=float(data.get("mean_num_attempts", 0.0)),
            tab_errors=tuple(SegmentError.from_dict(e) for e in data.get("tab_errors", [])),
            valid=bool(data.get("valid", True))
        )


# ============================================================================
# Run Data Structures
# ============================================================================

class RunOutcome(str, Enum):
    """How a sequence run ended."""
    COMPLETED = "completed"  # Source exhausted or frame limit reached
    FAILED = "failed"  # Registration failed, only this sequence stops
    ABORTED = "aborted"  # Registration failed with suspend_on_failure set


@dataclass
class RunTotals:
    """Whole-run latency totals, accumulated over every sequence."""
    registration_elapsed_ms: float = 0.0
    num_frames: int = 0

    def add(self, elapsed_ms: float, num_frames: int = 0):
        self.registration_elapsed_ms += elapsed_ms
        self.num_frames += num_frames

    @property
    def average_elapsed_ms(self) -> float:
        if self.num_frames == 0:
            return 0.0
        return self.registration_elapsed_ms / self.num_frames
