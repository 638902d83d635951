"""
Configuration models using Pydantic for type safety and validation.
"""

from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union, Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from odom_bench.utils.config_loader import ConfigLoader


class VizMode(str, Enum):
    """What the visualization shows for every frame."""
    AGGREGATED = "AGGREGATED"  # Corrected point clouds of recent frames
    KEYPOINTS = "KEYPOINTS"  # Keypoints drawn by the registration engine itself


class LoggingConfig(BaseModel):
    """Diagnostics output."""
    level: str = Field("INFO", description="Logging level name")
    console: bool = Field(True, description="Log to stderr")
    file: Optional[str] = Field(None, description="Log file name, relative to output_dir")

    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown logging level: {v}")
        return v


class DatasetOptions(BaseModel):
    """Location and layout of the recorded sequences."""
    root_path: Path = Field(..., description="Dataset root directory")
    velodyne_dir: str = Field(
        "velodyne",
        description="Per-sequence sub-directory holding the .bin frames"
    )
    poses_dir: str = Field(
        "poses",
        description="Directory (relative to root) holding <sequence>.txt ground truth"
    )
    velo_to_cam: Optional[List[List[float]]] = Field(
        None,
        description="4x4 LiDAR to ground-truth frame calibration"
    )

    @field_validator('velo_to_cam')
    @classmethod
    def validate_calibration(cls, v: Optional[List[List[float]]]) -> Optional[List[List[float]]]:
        if v is None:
            return v
        if len(v) == 3 and all(len(row) == 4 for row in v):
            v = [list(row) for row in v] + [[0.0, 0.0, 0.0, 1.0]]
        if len(v) != 4 or any(len(row) != 4 for row in v):
            raise ValueError('velo_to_cam must be a 3x4 or 4x4 matrix')
        return v


class RegistrationOptions(BaseModel):
    """How to build the registration engine for each sequence."""
    factory: str = Field(
        ...,
        description="Import path of the engine factory, 'package.module:callable'"
    )
    params: Dict[str, Any] = Field(
        default_factory=dict,
        description="Keyword arguments passed to the factory"
    )

    @field_validator('factory')
    @classmethod
    def validate_factory(cls, v: str) -> str:
        module, sep, attr = v.partition(':')
        if not sep or not module or not attr:
            raise ValueError("factory must look like 'package.module:callable'")
        return v


class EvaluationOptions(BaseModel):
    """Relative pose error windows."""
    segment_lengths: List[float] = Field(
        default_factory=lambda: [100.0, 200.0, 300.0, 400.0, 500.0, 600.0, 700.0, 800.0],
        description="Target path lengths of the RPE segments (m)"
    )
    step_size: int = Field(10, ge=1, description="Frame stride between segment starts")

    @field_validator('segment_lengths')
    @classmethod
    def validate_lengths(cls, v: List[float]) -> List[float]:
        if not v:
            raise ValueError('At least one segment length is required')
        if any(x <= 0 for x in v):
            raise ValueError('Segment lengths must be positive')
        return v


class VisualizationOptions(BaseModel):
    """Live visualization of the running odometry."""
    enabled: bool = Field(False, description="Start the render thread")
    mode: VizMode = Field(default=VizMode.AGGREGATED, description="Point cloud display mode")
    num_slots: int = Field(500, ge=1, description="Point cloud ring buffer size")
    pause_poll_interval: float = Field(
        0.01,
        gt=0,
        le=1.0,
        description="Delay between pause-gate polls (s)"
    )
    render_interval: float = Field(1.0, gt=0, description="Delay between snapshots (s)")
    max_points_per_slot: int = Field(
        5000,
        ge=1,
        description="Points kept per slot in the rendered snapshot"
    )
    pause_file: Optional[str] = Field(
        "PAUSE",
        description="File name in output_dir whose presence pauses the run"
    )
    snapshot_file: str = Field("live_view.html", description="Snapshot file name in output_dir")


class BenchmarkConfig(BaseModel):
    """Complete benchmark configuration."""
    dataset: DatasetOptions
    registration: RegistrationOptions
    evaluation: EvaluationOptions = Field(default_factory=EvaluationOptions)
    visualization: VisualizationOptions = Field(default_factory=VisualizationOptions)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    suspend_on_failure: bool = Field(
        False,
        description="Abort the whole run on the first registration or save failure"
    )
    save_trajectory: bool = Field(True, description="Write estimated poses to output_dir")
    output_dir: Path = Field(Path("./outputs"), description="Output directory")
    all_sequences: bool = Field(True, description="Run every sequence found on disk")
    sequence: Optional[str] = Field(
        None,
        description="Sequence to run (only when all_sequences is false)"
    )
    start_index: int = Field(
        0,
        ge=0,
        description="First frame (only when all_sequences is false)"
    )
    max_frames: int = Field(-1, ge=-1, description="Frames per sequence, -1 for all")
    show_progress: bool = Field(False, description="Show a frame progress bar")

    @model_validator(mode='after')
    def validate_sequence_selection(self):
        """A single-sequence run needs a sequence name."""
        if not self.all_sequences and not self.sequence:
            raise ValueError('sequence must be set when all_sequences is false')
        return self

    @property
    def frame_limit(self) -> Optional[int]:
        return None if self.max_frames < 0 else self.max_frames


def load_benchmark_config(
    path: Union[str, Path],
    overrides: Optional[Dict[str, Any]] = None
) -> BenchmarkConfig:
    """
    Load benchmark configuration from YAML file.

    Args:
        path: Path to the YAML file (may use !include)
        overrides: Nested values merged over the file content

    Returns:
        Validated configuration
    """
    loader = ConfigLoader(base_path=Path(path).parent)
    data = loader.load_config(Path(path).resolve())
    if overrides:
        data = loader.merge_configs(data, overrides)
    return BenchmarkConfig(**data)


def save_config(config: BaseModel, path: Union[str, Path]) -> None:
    """Save configuration to YAML file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(mode='json')

    with open(path, 'w') as f:
        yaml.safe_dump(data, f, sort_keys=False)
