#!/usr/bin/env python3
"""
Benchmark demo on a synthetic circular sequence with a drifting replay engine.
"""

import sys
from pathlib import Path

import numpy as np

from odom_bench.common.config import BenchmarkConfig
from odom_bench.common.data_structures import Frame, RegistrationSummary, TrajectoryFrame
from odom_bench.datasets.base import ListFrameSource, SequenceDataset, SequenceInfo
from odom_bench.runtime.orchestrator import BenchmarkOrchestrator
from odom_bench.runtime.registration import RegistrationEngine
from odom_bench.utils.math_utils import make_transform, so3_exp, transform_points


def create_circle_poses(num_frames=1200, radius=150.0):
    """Create a planar circular trajectory, heading tangent to the circle."""
    poses = []
    for i in range(num_frames):
        theta = 2 * np.pi * i / num_frames
        R = so3_exp(np.array([0.0, 0.0, theta + np.pi / 2]))
        t = np.array([radius * np.cos(theta), radius * np.sin(theta), 0.0])
        poses.append(make_transform(R, t))
    return poses


class SyntheticDataset(SequenceDataset):
    """One sequence of random scans with a known trajectory."""

    def __init__(self, poses, num_points=500, seed=0):
        self.poses = poses
        rng = np.random.default_rng(seed)
        self.frames = [
            Frame(index=i, points=rng.uniform(-20, 20, size=(num_points, 3)))
            for i in range(len(poses))
        ]

    def get_sequences(self):
        return [SequenceInfo(sequence_id=0, name="circle", num_frames=len(self.frames))]

    def open_sequence(self, sequence_id):
        return ListFrameSource(self.frames)

    def has_ground_truth(self, sequence_id):
        return True

    def load_ground_truth(self, sequence_id):
        return self.poses


class DriftingReplayEngine(RegistrationEngine):
    """Replays the ground truth with a constant yaw drift per frame."""

    def __init__(self, poses, yaw_drift=1e-4):
        self.poses = poses
        self.yaw_drift = yaw_drift
        self.drift = np.eye(4)

    def register_frame(self, frame):
        self.drift[:3, :3] = so3_exp(np.array([0.0, 0.0, self.yaw_drift * frame.index]))
        pose = self.drift @ self.poses[frame.index]
        return RegistrationSummary(
            success=True,
            frame=TrajectoryFrame.from_pose(pose),
            number_of_attempts=1,
            corrected_points=transform_points(pose, frame.points)
        )


def main():
    """Run the benchmark demo."""
    print("Odometry Benchmark Demo")
    print("=" * 40)

    output_dir = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("outputs/demo")
    poses = create_circle_poses()
    print(f"  Generated {len(poses)} poses")

    config = BenchmarkConfig(
        dataset={"root_path": "."},
        registration={"factory": "odometry_demo:DriftingReplayEngine"},
        output_dir=output_dir,
        show_progress=True
    )
    orchestrator = BenchmarkOrchestrator(
        config,
        SyntheticDataset(poses),
        lambda: DriftingReplayEngine(poses)
    )
    exit_code = orchestrator.run()
    print(f"\nDemo finished with exit code {exit_code}, results in {output_dir}")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
