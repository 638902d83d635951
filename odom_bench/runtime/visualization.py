"""
Bridge between the registration loop and an independently scheduled renderer.

The registration loop only writes: it uploads the trajectory and point clouds
and polls the pause gate. A render thread periodically takes a snapshot of the
uploads and hands it to a render callback.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class VisualizationSnapshot:
    """Copy of the uploaded state handed to the render callback."""
    poses: List[np.ndarray] = field(default_factory=list)
    point_clouds: Dict[int, np.ndarray] = field(default_factory=dict)
    paused: bool = False


class VisualizationCoordinator(ABC):
    """Upload and pause-query capability used by the sequence runner."""

    @abstractmethod
    def upload_trajectory(self, poses: Sequence[np.ndarray]):
        """Replace the displayed trajectory."""
        pass

    @abstractmethod
    def upload_point_cloud(self, slot: int, points: np.ndarray):
        """Store points in a slot, overwriting its previous content."""
        pass

    @abstractmethod
    def is_paused(self) -> bool:
        pass

    def wait_while_paused(self):
        """Block the caller until the coordinator is unpaused."""
        pass

    def start(self):
        pass

    def close(self):
        """Stop and join any thread owned by the coordinator."""
        pass

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class NullVisualization(VisualizationCoordinator):
    """Coordinator used when visualization is disabled."""

    def upload_trajectory(self, poses: Sequence[np.ndarray]):
        pass

    def upload_point_cloud(self, slot: int, points: np.ndarray):
        pass

    def is_paused(self) -> bool:
        return False


class ThreadedVisualization(VisualizationCoordinator):
    """
    Coordinator owning a render thread.

    Pausing is advisory: the producer spins on the pause flag with a fixed
    delay between polls. A frame already computed is never discarded, only
    its side effects are delayed.

    Args:
        render: Callback receiving a VisualizationSnapshot on the render thread
        num_slots: Number of point cloud slots (ring buffer size)
        render_interval: Delay between two snapshots (s)
        poll_interval: Delay between two pause-gate polls (s)
        pause_file: The run is paused while this file exists
    """

    def __init__(
        self,
        render: Callable[[VisualizationSnapshot], None],
        num_slots: int = 500,
        render_interval: float = 1.0,
        poll_interval: float = 0.01,
        pause_file: Optional[Path] = None
    ):
        self.render = render
        self.num_slots = num_slots
        self.render_interval = render_interval
        self.poll_interval = poll_interval
        self.pause_file = Path(pause_file) if pause_file else None

        self._poses: List[np.ndarray] = []
        self._point_clouds: Dict[int, np.ndarray] = {}
        self._lock = threading.Lock()
        self._paused = threading.Event()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # Producer side

    def upload_trajectory(self, poses: Sequence[np.ndarray]):
        poses = list(poses)
        with self._lock:
            self._poses = poses

    def upload_point_cloud(self, slot: int, points: np.ndarray):
        points = np.array(points, dtype=np.float64).reshape(-1, 3)
        with self._lock:
            self._point_clouds[slot % self.num_slots] = points

    def is_paused(self) -> bool:
        if self.pause_file is not None and self.pause_file.exists():
            return True
        return self._paused.is_set()

    def wait_while_paused(self):
        announced = False
        while self.is_paused() and not self._stop.is_set():
            if not announced:
                logger.info("Odometry paused")
                announced = True
            time.sleep(self.poll_interval)
        if announced:
            logger.info("Odometry resumed")

    # Control side

    def pause(self):
        self._paused.set()

    def resume(self):
        self._paused.clear()

    def snapshot(self) -> VisualizationSnapshot:
        with self._lock:
            return VisualizationSnapshot(
                poses=list(self._poses),
                point_clouds=dict(self._point_clouds),
                paused=self.is_paused()
            )

    # Lifecycle

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._render_loop, name="visualization", daemon=True)
        self._thread.start()
        logger.debug("Render thread started")

    def close(self):
        """Stop the render thread, render a last snapshot and join it."""
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join()
        self._thread = None
        logger.debug("Render thread joined")

    def _render_loop(self):
        while True:
            stopping = self._stop.wait(self.render_interval)
            try:
                self.render(self.snapshot())
            except Exception as e:
                # Renderer errors stay on the render thread
                logger.error(f"Render callback failed: {e}")
            if stopping:
                break


def build_visualization(
    enabled: bool,
    render: Optional[Callable[[VisualizationSnapshot], None]] = None,
    **kwargs
) -> VisualizationCoordinator:
    """Threaded coordinator when enabled and a renderer is given, no-op otherwise."""
    if not enabled or render is None:
        return NullVisualization()
    return ThreadedVisualization(render, **kwargs)
