"""
Live trajectory views using Plotly.
"""

import logging
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import plotly.graph_objects as go

from odom_bench.runtime.visualization import VisualizationSnapshot

logger = logging.getLogger(__name__)


def plot_odometry_top_down(
    poses: Sequence[np.ndarray],
    point_clouds: Optional[Sequence[np.ndarray]] = None,
    title: str = "Odometry",
    max_points_per_cloud: int = 5000,
    color: str = "blue"
) -> go.Figure:
    """
    Create a top-down (x-y) view of a trajectory and aggregated point clouds.

    Args:
        poses: 4x4 world poses
        point_clouds: Nx3 world point arrays drawn under the trajectory
        title: Plot title
        max_points_per_cloud: Points kept per cloud (uniform subsampling)
        color: Trajectory color

    Returns:
        Plotly figure object
    """
    fig = go.Figure()

    if point_clouds:
        clouds = []
        for points in point_clouds:
            points = np.asarray(points).reshape(-1, 3)
            if len(points) > max_points_per_cloud:
                step = int(np.ceil(len(points) / max_points_per_cloud))
                points = points[::step]
            clouds.append(points)
        points = np.vstack(clouds) if clouds else np.empty((0, 3))
        fig.add_trace(go.Scattergl(
            x=points[:, 0],
            y=points[:, 1],
            mode='markers',
            name='Points',
            marker=dict(size=1, color=points[:, 2] if len(points) else None,
                        colorscale='Viridis', opacity=0.5),
            hoverinfo='skip'
        ))

    if len(poses) > 0:
        positions = np.array([np.asarray(P)[:3, 3] for P in poses])
        fig.add_trace(go.Scatter(
            x=positions[:, 0],
            y=positions[:, 1],
            mode='lines',
            name='Trajectory',
            line=dict(color=color, width=3)
        ))
        fig.add_trace(go.Scatter(
            x=[positions[0, 0]],
            y=[positions[0, 1]],
            mode='markers',
            name='Start',
            marker=dict(size=10, color='green')
        ))
        fig.add_trace(go.Scatter(
            x=[positions[-1, 0]],
            y=[positions[-1, 1]],
            mode='markers',
            name='Current',
            marker=dict(size=10, color='red')
        ))

    fig.update_layout(
        title=f"{title} ({len(poses)} frames)",
        xaxis_title="X (m)",
        yaxis_title="Y (m)",
        yaxis=dict(scaleanchor="x", scaleratio=1),
        template="plotly_white"
    )
    return fig


class TrajectorySnapshotRenderer:
    """
    Render callback writing the live view to an HTML file.

    Args:
        output_path: HTML file rewritten on every snapshot
        max_points_per_cloud: Points kept per slot
    """

    def __init__(self, output_path: Path, max_points_per_cloud: int = 5000):
        self.output_path = Path(output_path)
        self.max_points_per_cloud = max_points_per_cloud
        self.num_renders = 0
        self._last_state = None

    def __call__(self, snapshot: VisualizationSnapshot):
        state = (len(snapshot.poses), len(snapshot.point_clouds), snapshot.paused)
        # Nothing new since the previous snapshot
        if state == self._last_state:
            return
        title = "Odometry [PAUSED]" if snapshot.paused else "Odometry"
        fig = plot_odometry_top_down(
            snapshot.poses,
            [snapshot.point_clouds[k] for k in sorted(snapshot.point_clouds)],
            title=title,
            max_points_per_cloud=self.max_points_per_cloud
        )
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.write_html(str(self.output_path), include_plotlyjs='cdn', auto_open=False)
        self._last_state = state
        self.num_renders += 1
        logger.debug(f"Live view written to {self.output_path}")
