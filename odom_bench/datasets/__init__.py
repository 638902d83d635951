"""
Dataset readers.
"""

from .base import FrameSource, GroundTruthProvider, ListFrameSource, SequenceDataset, SequenceInfo
from .kitti import KittiDataset

__all__ = [
    'FrameSource',
    'GroundTruthProvider',
    'ListFrameSource',
    'SequenceDataset',
    'SequenceInfo',
    'KittiDataset'
]
