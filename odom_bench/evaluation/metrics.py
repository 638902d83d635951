"""
Evaluation metrics for LiDAR odometry trajectories.

Implements the KITTI odometry benchmark relative pose error together with
absolute and frame-to-frame (local) errors.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from odom_bench.common.data_structures import SegmentError, SequenceErrors
from odom_bench.utils.math_utils import relative_transform, rotation_angle, translation_norm

logger = logging.getLogger(__name__)

KITTI_SEGMENT_LENGTHS = (100.0, 200.0, 300.0, 400.0, 500.0, 600.0, 700.0, 800.0)


def trajectory_distances(poses: Sequence[np.ndarray]) -> np.ndarray:
    """
    Cumulative path length along a trajectory.

    Args:
        poses: 4x4 absolute poses

    Returns:
        Array where entry i is the distance travelled from pose 0 to pose i
    """
    if len(poses) == 0:
        return np.zeros(0)
    positions = np.array([np.asarray(P)[:3, 3] for P in poses])
    steps = np.linalg.norm(np.diff(positions, axis=0), axis=1)
    return np.concatenate([[0.0], np.cumsum(steps)])


def last_frame_from_segment_length(distances: np.ndarray, first_frame: int, length: float) -> int:
    """
    First frame whose travelled distance from first_frame exceeds length.

    Returns:
        Frame index, or -1 if the trajectory is too short
    """
    target = distances[first_frame] + length
    idx = int(np.searchsorted(distances, target, side='right'))
    if idx >= len(distances):
        return -1
    return idx


def compute_segment_errors(
    ground_truth: Sequence[np.ndarray],
    estimate: Sequence[np.ndarray],
    segment_lengths: Sequence[float] = KITTI_SEGMENT_LENGTHS,
    step_size: int = 10
) -> List[SegmentError]:
    """
    Compute Relative Pose Error over fixed path-length segments.

    Args:
        ground_truth: Ground truth poses
        estimate: Estimated poses, same length as ground_truth
        segment_lengths: Target path lengths (m)
        step_size: Frame stride between segment starts

    Returns:
        One SegmentError per segment found; segments running past the end of
        the trajectory are skipped
    """
    distances = trajectory_distances(ground_truth)
    errors = []

    for first_frame in range(0, len(ground_truth), step_size):
        for length in segment_lengths:
            last_frame = last_frame_from_segment_length(distances, first_frame, length)
            if last_frame == -1:
                continue

            gt_delta = relative_transform(ground_truth[first_frame], ground_truth[last_frame])
            est_delta = relative_transform(estimate[first_frame], estimate[last_frame])
            pose_error = relative_transform(est_delta, gt_delta)

            num_frames = last_frame - first_frame + 1
            errors.append(SegmentError(
                first_frame=first_frame,
                r_err=rotation_angle(pose_error[:3, :3]) / length,
                t_err=translation_norm(pose_error) / length,
                length=float(length),
                speed=length / (0.1 * num_frames)
            ))

    return errors


def compute_ape(
    ground_truth: Sequence[np.ndarray],
    estimate: Sequence[np.ndarray]
) -> Tuple[np.ndarray, float, float]:
    """
    Compute Absolute Pose Error after anchoring both trajectories at frame 0.

    Returns:
        Per-frame translation errors, mean and max
    """
    if len(ground_truth) == 0:
        return np.zeros(0), 0.0, 0.0

    errors = np.array([
        translation_norm(relative_transform(
            relative_transform(estimate[0], est),
            relative_transform(ground_truth[0], gt)
        ))
        for gt, est in zip(ground_truth, estimate)
    ])
    return errors, float(np.mean(errors)), float(np.max(errors))


def compute_local_errors(
    ground_truth: Sequence[np.ndarray],
    estimate: Sequence[np.ndarray]
) -> np.ndarray:
    """
    Frame-to-frame drift: difference of the distances travelled between
    consecutive frames.

    Returns:
        Array of len(poses) - 1 errors (empty for fewer than two poses)
    """
    if len(ground_truth) < 2:
        return np.zeros(0)

    gt_positions = np.array([np.asarray(P)[:3, 3] for P in ground_truth])
    est_positions = np.array([np.asarray(P)[:3, 3] for P in estimate])
    gt_steps = np.linalg.norm(np.diff(gt_positions, axis=0), axis=1)
    est_steps = np.linalg.norm(np.diff(est_positions, axis=0), axis=1)
    return np.abs(gt_steps - est_steps)


def summarize_local_errors(errors: Sequence[float]) -> Tuple[float, float, Optional[int]]:
    """
    Running mean, max and first index of the max.

    Returns:
        (mean, max, index); index is None for an empty series
    """
    mean_err = 0.0
    max_err = 0.0
    index_max = None
    for i, err in enumerate(errors):
        mean_err += err
        if index_max is None or err > max_err:
            max_err = float(err)
            index_max = i
    if index_max is not None:
        mean_err /= len(errors)
    return float(mean_err), max_err, index_max


def evaluate_trajectory(
    ground_truth: Sequence[np.ndarray],
    estimate: Sequence[np.ndarray],
    segment_lengths: Sequence[float] = KITTI_SEGMENT_LENGTHS,
    step_size: int = 10,
    average_elapsed_ms: float = 0.0,
    mean_num_attempts: float = 0.0
) -> SequenceErrors:
    """
    Score an estimated trajectory against ground truth.

    A length mismatch never raises: both trajectories are truncated to their
    common prefix and the result is flagged invalid.

    Args:
        ground_truth: Absolute ground truth poses
        estimate: Absolute estimated poses
        segment_lengths: RPE segment lengths (m)
        step_size: Frame stride between RPE segment starts
        average_elapsed_ms: Registration time to attach to the report
        mean_num_attempts: Registration attempts to attach to the report

    Returns:
        SequenceErrors of the sequence
    """
    valid = len(ground_truth) == len(estimate)
    num_poses = min(len(ground_truth), len(estimate))
    if not valid:
        logger.warning(
            f"Trajectory length mismatch (ground truth: {len(ground_truth)}, "
            f"estimate: {len(estimate)}); evaluating the first {num_poses} poses"
        )
    ground_truth = list(ground_truth)[:num_poses]
    estimate = list(estimate)[:num_poses]

    _, mean_ape, max_ape = compute_ape(ground_truth, estimate)
    mean_local, max_local, index_max_local = summarize_local_errors(
        compute_local_errors(ground_truth, estimate)
    )
    tab_errors = compute_segment_errors(ground_truth, estimate, segment_lengths, step_size)
    mean_rpe = 0.0
    if tab_errors:
        mean_rpe = float(np.mean([e.t_err for e in tab_errors])) * 100.0

    return SequenceErrors(
        mean_rpe=mean_rpe,
        mean_ape=mean_ape,
        max_ape=max_ape,
        mean_local_err=mean_local,
        max_local_err=max_local,
        index_max_local_err=index_max_local,
        average_elapsed_ms=average_elapsed_ms,
        mean_num_attempts=mean_num_attempts,
        tab_errors=tuple(tab_errors),
        valid=valid
    )


@dataclass
class TrajectoryEvaluator:
    """Evaluates sequences with fixed RPE settings."""
    segment_lengths: Tuple[float, ...] = KITTI_SEGMENT_LENGTHS
    step_size: int = 10

    def evaluate(
        self,
        ground_truth: Sequence[np.ndarray],
        estimate: Sequence[np.ndarray],
        average_elapsed_ms: float = 0.0,
        mean_num_attempts: float = 0.0
    ) -> SequenceErrors:
        return evaluate_trajectory(
            ground_truth,
            estimate,
            segment_lengths=self.segment_lengths,
            step_size=self.step_size,
            average_elapsed_ms=average_elapsed_ms,
            mean_num_attempts=mean_num_attempts
        )
