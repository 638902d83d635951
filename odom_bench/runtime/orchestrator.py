"""
Benchmark orchestrator running every selected sequence end to end.
"""

import logging
import traceback
from pathlib import Path
from typing import Callable, List, Optional

from rich.console import Console
from rich.table import Table

from odom_bench.common.config import BenchmarkConfig, save_config
from odom_bench.common.data_structures import SequenceErrors
from odom_bench.common.persistence import save_poses_kitti, save_trajectory_frames
from odom_bench.datasets.base import SequenceDataset, SequenceInfo
from odom_bench.evaluation.aggregator import BenchmarkSummary, MetricsAggregator
from odom_bench.evaluation.metrics import TrajectoryEvaluator
from odom_bench.runtime.registration import RegistrationEngine
from odom_bench.runtime.sequence_runner import RunOptions, SequenceRunner, SequenceRunResult
from odom_bench.runtime.visualization import NullVisualization, VisualizationCoordinator

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.yaml"
METRICS_FILE = "metrics.yaml"
TABLE_FILE = "metrics.csv"


# ============================================================================
# Report printing
# ============================================================================

def print_sequence_errors(console: Console, name: str, errors: SequenceErrors, num_poses: Optional[int] = None):
    """Print the results table of one sequence."""
    table = Table(title=f"Sequence {name} results")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="yellow", justify="right")

    if not errors.valid:
        suffix = f", failed after {num_poses} poses" if num_poses is not None else ""
        console.print(f"[red]Invalid trajectory{suffix}[/red]")
    table.add_row("Average Number of Attempts", f"{errors.mean_num_attempts:.3f}")
    table.add_row("Mean RPE (%)", f"{errors.mean_rpe:.4f}")
    table.add_row("Mean APE (m)", f"{errors.mean_ape:.4f}")
    table.add_row("Max APE (m)", f"{errors.max_ape:.4f}")
    table.add_row("Mean Local Error (m)", f"{errors.mean_local_err:.4f}")
    table.add_row("Max Local Error (m)", f"{errors.max_local_err:.4f}")
    index = "N/A" if errors.index_max_local_err is None else str(errors.index_max_local_err)
    table.add_row("Index Max Local Error", index)
    table.add_row("Average Duration (ms)", f"{errors.average_elapsed_ms:.3f}")
    table.add_row("Segments", str(errors.num_segments))
    console.print(table)


def print_summary(console: Console, summary: BenchmarkSummary, show_timing: bool = True):
    """Print the end-of-run aggregate lines."""
    console.print()
    if summary.has_ground_truth:
        if summary.num_segments > 0:
            console.print(
                f"KITTI metric translation/rotation : "
                f"{summary.translation_pct:.4f} {summary.rotation_deg_per_m:.6f}"
            )
        else:
            console.print("[yellow]KITTI metric translation/rotation : no segment long enough[/yellow]")
        console.print(f"Average RPE on seq : {summary.mean_rpe:.4f}")
    if show_timing:
        console.print(
            f"Average registration time for all sequences (ms) : {summary.average_elapsed_ms:.3f}"
        )


# ============================================================================
# Orchestrator
# ============================================================================

class BenchmarkOrchestrator:
    """
    Runs the selected sequences of a dataset and aggregates their metrics.

    Args:
        config: Validated benchmark configuration
        dataset: Frame sources and ground truth
        engine_factory: Zero-argument callable building a fresh engine
        visualization: Coordinator shared by every sequence
        console: Console receiving the result tables
    """

    def __init__(
        self,
        config: BenchmarkConfig,
        dataset: SequenceDataset,
        engine_factory: Callable[[], RegistrationEngine],
        visualization: Optional[VisualizationCoordinator] = None,
        console: Optional[Console] = None
    ):
        self.config = config
        self.dataset = dataset
        self.engine_factory = engine_factory
        self.visualization = visualization or NullVisualization()
        self.console = console or Console()
        self.output_dir = Path(config.output_dir)
        self.evaluator = TrajectoryEvaluator(
            segment_lengths=tuple(config.evaluation.segment_lengths),
            step_size=config.evaluation.step_size
        )
        self.aggregator = MetricsAggregator(self.output_dir / METRICS_FILE)
        self.runner = SequenceRunner(
            RunOptions(
                max_frames=config.frame_limit,
                suspend_on_failure=config.suspend_on_failure,
                viz_mode=config.visualization.mode,
                show_progress=config.show_progress
            ),
            visualization=self.visualization
        )

    def _setup_logging(self):
        """Setup logging configuration."""
        log_config = self.config.logging
        log_level = getattr(logging, log_config.level)

        handlers = []
        if log_config.console:
            handlers.append(logging.StreamHandler())
        if log_config.file:
            handlers.append(logging.FileHandler(self.output_dir / log_config.file))
        if not handlers:
            handlers.append(logging.NullHandler())

        logging.basicConfig(
            level=log_level,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            handlers=handlers
        )

    def run(self) -> int:
        """
        Run the benchmark.

        Returns:
            Exit code: 0 on success, 1 on a missing sequence or an abort
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._setup_logging()
        save_config(self.config, self.output_dir / CONFIG_FILE)

        try:
            self.visualization.start()
            return self._run_sequences()
        finally:
            self.visualization.close()

    def _select_sequences(self) -> Optional[List[SequenceInfo]]:
        sequences = self.dataset.get_sequences()
        if self.config.all_sequences:
            return sequences
        for info in sequences:
            if info.name == self.config.sequence:
                return [info]
        logger.error(f"Could not find the sequence {self.config.sequence}. Exiting.")
        return None

    def _run_sequences(self) -> int:
        sequences = self._select_sequences()
        if sequences is None:
            return 1
        logger.info(f"Running {len(sequences)} sequence(s), output in {self.output_dir}")

        for info in sequences:
            try:
                result = self._run_sequence(info)
            except Exception as e:
                self._log_failure(f"Could not run sequence {info.name}", e)
                if self.config.suspend_on_failure:
                    return 1
                continue

            self.aggregator.add_run_totals(result.registration_elapsed_ms, result.num_frames)
            if result.aborted:
                logger.error(f"Sequence {info.name} aborted at frame {result.failed_frame}")
                return 1

            if not self._save_and_evaluate(info, result) and self.config.suspend_on_failure:
                return 1

        summary = self.aggregator.finalize_summary()
        print_summary(self.console, summary)
        self.aggregator.save_csv(self.output_dir / TABLE_FILE)
        return 0

    def _log_failure(self, message: str, error: Exception):
        logger.error(f"{message}: {type(error).__name__}: {error}")
        logger.debug(f"Traceback: {traceback.format_exc()}")

    @property
    def _start_index(self) -> int:
        if not self.config.all_sequences:
            return self.config.start_index
        return 0

    def _run_sequence(self, info: SequenceInfo) -> SequenceRunResult:
        frame_source = self.dataset.open_sequence(info.sequence_id)
        if self._start_index > 0:
            logger.info(f"Starting at frame {self._start_index}")
            frame_source.set_init_frame(self._start_index)

        engine = self.engine_factory()
        logger.info(f"Running sequence {info.name} (id {info.sequence_id})")
        result = self.runner.run(info.sequence_id, frame_source, engine)
        logger.info(
            f"Sequence {info.name}: {result.num_frames} frames, {result.outcome.value}, "
            f"{result.average_elapsed_ms:.2f} ms per frame"
        )
        return result

    def _save_and_evaluate(self, info: SequenceInfo, result: SequenceRunResult) -> bool:
        """
        Save the trajectory and score it when ground truth exists.

        Returns:
            False if a file could not be written or the sequence could not be scored
        """
        ok = True
        try:
            absolute_poses = self.dataset.to_absolute_poses(info.sequence_id, result.trajectory)
        except Exception as e:
            self._log_failure(f"Could not compute the poses of sequence {info.name}", e)
            return False

        if self.config.save_trajectory:
            poses_path = self.output_dir / f"{info.name}_poses.txt"
            dual_poses_path = self.output_dir / f"{info.name}_dual_poses.txt"
            if not (save_poses_kitti(poses_path, absolute_poses)
                    and save_trajectory_frames(dual_poses_path, result.trajectory)):
                logger.warning(
                    f"Error while saving the poses to {poses_path}. "
                    f"Make sure output directory {self.output_dir} exists"
                )
                ok = False

        if not self.dataset.has_ground_truth(info.sequence_id):
            logger.info(f"No ground truth for sequence {info.name}, skipping evaluation")
            return ok

        try:
            ground_truth = self.dataset.load_ground_truth(info.sequence_id)[self._start_index:]
        except Exception as e:
            self._log_failure(f"Could not load the ground truth of sequence {info.name}", e)
            return False
        errors = self.evaluator.evaluate(
            ground_truth,
            absolute_poses,
            average_elapsed_ms=result.average_elapsed_ms,
            mean_num_attempts=result.average_attempts
        )
        print_sequence_errors(self.console, info.name, errors, num_poses=len(absolute_poses))
        if not self.aggregator.record_sequence(info.name, errors):
            ok = False
        return ok
