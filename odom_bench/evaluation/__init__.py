"""
Trajectory error metrics and their aggregation.
"""

from .metrics import (
    compute_ape,
    compute_local_errors,
    compute_segment_errors,
    evaluate_trajectory,
    TrajectoryEvaluator
)
from .aggregator import (
    finalize_summary,
    BenchmarkSummary,
    MetricsAggregator
)

__all__ = [
    'compute_ape',
    'compute_local_errors',
    'compute_segment_errors',
    'evaluate_trajectory',
    'TrajectoryEvaluator',
    'finalize_summary',
    'BenchmarkSummary',
    'MetricsAggregator'
]
