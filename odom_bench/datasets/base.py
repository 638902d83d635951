"""
Abstract interfaces of the dataset collaborators.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List

import numpy as np

from odom_bench.common.data_structures import Frame, Trajectory


@dataclass(frozen=True)
class SequenceInfo:
    """A sequence available in a dataset."""
    sequence_id: int
    name: str
    num_frames: int = -1  # -1 when unknown


class FrameSource(ABC):
    """Iterator over the frames of one sequence."""

    @abstractmethod
    def has_next(self) -> bool:
        pass

    @abstractmethod
    def next_frame(self) -> Frame:
        pass

    @abstractmethod
    def set_init_frame(self, index: int):
        """Skip directly to frame `index`."""
        pass


class GroundTruthProvider(ABC):
    """Access to reference trajectories."""

    @abstractmethod
    def has_ground_truth(self, sequence_id: int) -> bool:
        pass

    @abstractmethod
    def load_ground_truth(self, sequence_id: int) -> List[np.ndarray]:
        """Absolute 4x4 poses ordered by frame index."""
        pass

    def to_absolute_poses(self, sequence_id: int, trajectory: Trajectory) -> List[np.ndarray]:
        """Express an estimated trajectory in the ground truth frame."""
        return trajectory.mid_poses()


class SequenceDataset(GroundTruthProvider):
    """A collection of sequences with optional ground truth."""

    @abstractmethod
    def get_sequences(self) -> List[SequenceInfo]:
        pass

    @abstractmethod
    def open_sequence(self, sequence_id: int) -> FrameSource:
        pass

    def sequence_name(self, sequence_id: int) -> str:
        for info in self.get_sequences():
            if info.sequence_id == sequence_id:
                return info.name
        raise KeyError(f"Unknown sequence id: {sequence_id}")


class ListFrameSource(FrameSource):
    """Frame source over frames already held in memory."""

    def __init__(self, frames: List[Frame]):
        self.frames = list(frames)
        self._next = 0

    def has_next(self) -> bool:
        return self._next < len(self.frames)

    def next_frame(self) -> Frame:
        if not self.has_next():
            raise IndexError("No more frames in the sequence")
        frame = self.frames[self._next]
        self._next += 1
        return frame

    def set_init_frame(self, index: int):
        self._next = max(0, int(index))
