"""
Registration engine interface and factory resolution.
"""

import importlib
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict

from odom_bench.common.config import RegistrationOptions, VizMode
from odom_bench.common.data_structures import Frame, RegistrationSummary
from odom_bench.utils.config_loader import ConfigError


class RegistrationEngine(ABC):
    """
    Odometry algorithm registering frames one at a time.

    Retries, if any, happen inside register_frame and are only reported
    through RegistrationSummary.number_of_attempts.
    """

    @abstractmethod
    def register_frame(self, frame: Frame) -> RegistrationSummary:
        pass


EngineFactory = Callable[..., RegistrationEngine]


def resolve_factory(path: str) -> EngineFactory:
    """
    Import a factory given as 'package.module:callable'.

    Raises:
        ConfigError: If the module or attribute cannot be found
    """
    module_name, _, attr = path.partition(':')
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import registration module '{module_name}': {e}") from e

    factory = module
    for part in attr.split('.'):
        try:
            factory = getattr(factory, part)
        except AttributeError as e:
            raise ConfigError(f"'{module_name}' has no attribute '{attr}'") from e
    if not callable(factory):
        raise ConfigError(f"Registration factory '{path}' is not callable")
    return factory


def engine_builder(options: RegistrationOptions, viz_mode: VizMode = None,
                   with_viz: bool = False) -> Callable[[], RegistrationEngine]:
    """
    Build a zero-argument callable creating a fresh engine for each sequence.

    In KEYPOINTS mode the engine draws its own debug view, so `debug_viz` is
    added to its parameters.
    """
    factory = resolve_factory(options.factory)
    params: Dict[str, Any] = dict(options.params)
    if with_viz and viz_mode == VizMode.KEYPOINTS:
        params.setdefault("debug_viz", True)

    def build() -> RegistrationEngine:
        return factory(**params)

    return build
