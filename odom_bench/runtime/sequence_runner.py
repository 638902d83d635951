"""
Runs the registration engine over one sequence.
"""

import logging
import time
import traceback
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
from tqdm import tqdm

from odom_bench.common.config import VizMode
from odom_bench.common.data_structures import (
    RegistrationSummary, RunOutcome, Trajectory
)
from odom_bench.datasets.base import FrameSource
from odom_bench.runtime.registration import RegistrationEngine
from odom_bench.runtime.visualization import NullVisualization, VisualizationCoordinator

logger = logging.getLogger(__name__)


@dataclass
class RunOptions:
    """
    Attributes:
        max_frames: Frames to register per sequence (None for all)
        suspend_on_failure: A registration failure aborts the whole run
        viz_mode: Whether corrected point clouds are uploaded
        show_progress: Show a tqdm progress bar
    """
    max_frames: Optional[int] = None
    suspend_on_failure: bool = False
    viz_mode: VizMode = VizMode.AGGREGATED
    show_progress: bool = False


@dataclass
class SequenceRunResult:
    """
    Outcome of running one sequence.

    Attributes:
        sequence_id: Id of the sequence
        trajectory: Poses of every successfully registered frame
        num_frames: Successfully registered frames
        average_attempts: Registration attempts per registered frame
        registration_elapsed_ms: Registration time of the sequence, failed frame included
        outcome: How the run ended
        error_message: Message of the failed registration
        failed_frame: Index of the frame that failed
    """
    sequence_id: int
    trajectory: Trajectory = field(default_factory=Trajectory)
    num_frames: int = 0
    average_attempts: float = 0.0
    registration_elapsed_ms: float = 0.0
    outcome: RunOutcome = RunOutcome.COMPLETED
    error_message: str = ""
    failed_frame: Optional[int] = None

    @property
    def average_elapsed_ms(self) -> float:
        if self.num_frames == 0:
            return 0.0
        return self.registration_elapsed_ms / self.num_frames

    @property
    def aborted(self) -> bool:
        return self.outcome == RunOutcome.ABORTED


class SequenceRunner:
    """
    Feeds frames one by one to a registration engine.

    Registration failures never raise out of run(): they end the sequence and
    are reported through the result outcome, leaving the decision to abort the
    whole benchmark to the caller.

    Args:
        options: Run options
        visualization: Coordinator receiving the intermediate state
    """

    def __init__(
        self,
        options: Optional[RunOptions] = None,
        visualization: Optional[VisualizationCoordinator] = None
    ):
        self.options = options or RunOptions()
        self.visualization = visualization or NullVisualization()

    def run(
        self,
        sequence_id: int,
        frame_source: FrameSource,
        engine: RegistrationEngine
    ) -> SequenceRunResult:
        """
        Register the frames of a sequence until the source is exhausted, the
        frame limit is reached or a registration fails.

        Args:
            sequence_id: Id used in diagnostics
            frame_source: Frames of the sequence
            engine: Fresh registration engine

        Returns:
            SequenceRunResult with the (possibly partial) trajectory
        """
        result = SequenceRunResult(sequence_id=sequence_id)
        max_frames = self.options.max_frames
        sum_attempts = 0.0
        mid_poses = []

        with tqdm(total=max_frames, desc=f"Sequence {sequence_id}", unit="frame",
                  disable=not self.options.show_progress) as pbar:
            while frame_source.has_next() and (max_frames is None or result.num_frames < max_frames):
                time_start_frame = time.perf_counter()
                try:
                    frame = frame_source.next_frame()
                except Exception as e:
                    logger.debug(f"Traceback: {traceback.format_exc()}")
                    self._fail(result, f"Could not read frame: {type(e).__name__}: {e}")
                    break
                time_read_frame = time.perf_counter()

                summary = self._register(engine, frame)
                time_register_frame = time.perf_counter()

                total_elapsed_ms = (time_register_frame - time_start_frame) * 1000
                registration_elapsed_ms = (time_register_frame - time_read_frame) * 1000
                result.registration_elapsed_ms += registration_elapsed_ms
                sum_attempts += summary.number_of_attempts
                logger.debug(
                    f"Sequence {sequence_id} frame {frame.index}: "
                    f"{registration_elapsed_ms:.2f} ms registration, {total_elapsed_ms:.2f} ms total"
                )

                if summary.success:
                    result.trajectory.append(summary.frame)
                    mid_poses.append(summary.frame.mid_pose)
                self._publish(result.num_frames, mid_poses, summary)

                if not summary.success:
                    self._fail(result, summary.error_message)
                    break

                result.num_frames += 1
                pbar.update(1)

        if result.num_frames > 0:
            result.average_attempts = sum_attempts / result.num_frames
        return result

    def _fail(self, result: SequenceRunResult, message: str):
        logger.error(
            f"Error while running SLAM for sequence {result.sequence_id}, "
            f"at frame index {result.num_frames}. Error Message: {message}"
        )
        result.error_message = message
        result.failed_frame = result.num_frames
        if self.options.suspend_on_failure:
            result.outcome = RunOutcome.ABORTED
        else:
            result.outcome = RunOutcome.FAILED

    def _register(self, engine: RegistrationEngine, frame) -> RegistrationSummary:
        try:
            return engine.register_frame(frame)
        except Exception as e:
            logger.debug(f"Traceback: {traceback.format_exc()}")
            return RegistrationSummary(
                success=False,
                number_of_attempts=0,
                error_message=f"{type(e).__name__}: {e}"
            )

    def _publish(self, frame_id: int, mid_poses: List[np.ndarray], summary: RegistrationSummary):
        """Mirror the new state to the visualization, then honor the pause gate."""
        if isinstance(self.visualization, NullVisualization):
            return
        self.visualization.upload_trajectory(mid_poses)
        if self.options.viz_mode == VizMode.AGGREGATED and len(summary.corrected_points) > 0:
            self.visualization.upload_point_cloud(frame_id, summary.corrected_points)
        self.visualization.wait_while_paused()
