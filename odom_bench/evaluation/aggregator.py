"""
Cross-sequence aggregation of benchmark metrics.
"""

import logging
import math
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

import pandas as pd

from odom_bench.common.data_structures import RunTotals, SequenceErrors
from odom_bench.common.persistence import save_metrics

logger = logging.getLogger(__name__)


@dataclass
class BenchmarkSummary:
    """
    Run-level benchmark results.

    Attributes:
        translation_pct: KITTI translation error over all segments (%)
        rotation_deg_per_m: KITTI rotation error over all segments (deg/m)
        mean_rpe: Unweighted mean of the per-sequence mean RPE (%)
        num_segments: Segments over all sequences
        num_sequences_with_gt: Sequences that were evaluated
        average_elapsed_ms: Average registration time over the whole run
        num_frames: Frames registered over the whole run
    """
    translation_pct: Optional[float] = None
    rotation_deg_per_m: Optional[float] = None
    mean_rpe: Optional[float] = None
    num_segments: int = 0
    num_sequences_with_gt: int = 0
    average_elapsed_ms: float = 0.0
    num_frames: int = 0

    @property
    def has_ground_truth(self) -> bool:
        return self.num_sequences_with_gt > 0


def finalize_summary(
    errors: Dict[str, SequenceErrors],
    totals: Optional[RunTotals] = None
) -> BenchmarkSummary:
    """
    Aggregate per-sequence errors into run-level metrics.

    Segment errors are pooled: every segment of every sequence weighs the
    same, so sequences with more segments weigh more. The mean RPE is the
    plain average over sequences.

    Args:
        errors: Sequence name -> errors of the sequences with ground truth
        totals: Whole-run registration time and frame count

    Returns:
        BenchmarkSummary (error metrics are None without ground truth)
    """
    totals = totals or RunTotals()
    summary = BenchmarkSummary(
        num_sequences_with_gt=len(errors),
        average_elapsed_ms=totals.average_elapsed_ms,
        num_frames=totals.num_frames
    )
    if not errors:
        return summary

    sum_t_err = 0.0
    sum_r_err = 0.0
    num_segments = 0
    for seq_errors in errors.values():
        for segment in seq_errors.tab_errors:
            sum_t_err += segment.t_err
            sum_r_err += segment.r_err
            num_segments += 1

    summary.num_segments = num_segments
    if num_segments > 0:
        summary.translation_pct = sum_t_err / num_segments * 100.0
        summary.rotation_deg_per_m = math.degrees(sum_r_err / num_segments)
    summary.mean_rpe = sum(e.mean_rpe for e in errors.values()) / len(errors)
    return summary


class MetricsAggregator:
    """
    Owns the growing sequence -> errors mapping of a benchmark run.

    Every recorded sequence rewrites the whole metrics file, so an interrupted
    run keeps the results of every sequence finished so far.
    """

    def __init__(self, metrics_path: Optional[Union[str, Path]] = None):
        """
        Args:
            metrics_path: YAML file rewritten on every record (None to skip)
        """
        self.metrics_path = Path(metrics_path) if metrics_path else None
        self.errors: Dict[str, SequenceErrors] = {}
        self.totals = RunTotals()
        self._lock = threading.Lock()

    def record_sequence(self, name: str, errors: SequenceErrors) -> bool:
        """
        Insert or overwrite the entry of a sequence and persist the mapping.

        Returns:
            False if the metrics file could not be written
        """
        with self._lock:
            if name in self.errors:
                logger.info(f"Overwriting metrics of sequence {name}")
            self.errors[name] = errors
            if self.metrics_path is None:
                return True
            return save_metrics(self.metrics_path, self.errors)

    def add_run_totals(self, elapsed_ms: float, num_frames: int):
        """Account registration time of a sequence, with or without ground truth."""
        with self._lock:
            self.totals.add(elapsed_ms, num_frames)

    def finalize_summary(self) -> BenchmarkSummary:
        with self._lock:
            return finalize_summary(dict(self.errors), self.totals)

    def to_dataframe(self) -> pd.DataFrame:
        """One row per evaluated sequence."""
        rows = []
        for name, e in self.errors.items():
            rows.append({
                "sequence": name,
                "mean_rpe": e.mean_rpe,
                "mean_ape": e.mean_ape,
                "max_ape": e.max_ape,
                "mean_local_err": e.mean_local_err,
                "max_local_err": e.max_local_err,
                "index_max_local_err": e.index_max_local_err,
                "average_elapsed_ms": e.average_elapsed_ms,
                "mean_num_attempts": e.mean_num_attempts,
                "num_segments": e.num_segments,
                "valid": e.valid
            })
        return pd.DataFrame(rows, columns=[
            "sequence", "mean_rpe", "mean_ape", "max_ape", "mean_local_err",
            "max_local_err", "index_max_local_err", "average_elapsed_ms",
            "mean_num_attempts", "num_segments", "valid"
        ])

    def save_csv(self, path: Union[str, Path]) -> bool:
        """Write the per-sequence table, returns False on I/O errors."""
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self.to_dataframe().to_csv(path, index=False)
        except OSError as e:
            logger.warning(f"Could not write {path}: {e}")
            return False
        logger.info(f"Performance table saved to {path}")
        return True
