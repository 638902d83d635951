"""
Live views of the running odometry.
"""

from .trajectory_plot import (
    plot_odometry_top_down,
    TrajectorySnapshotRenderer
)

__all__ = [
    'plot_odometry_top_down',
    'TrajectorySnapshotRenderer'
]
