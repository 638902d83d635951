"""
YAML configuration loader with file inclusion support.

A benchmark config can pull shared blocks (dataset layout, engine parameters)
from other files:

    dataset: !include datasets/kitti.yaml
    registration:
      factory: my_engine.odometry:build
      params: !include engines/default.yaml
"""

from pathlib import Path
from typing import Dict, Any, Union, List, Optional

import yaml


class ConfigError(Exception):
    """Raised when a configuration file cannot be loaded."""
    pass


class CircularIncludeError(ConfigError):
    """Raised when circular dependencies are detected in config includes."""
    pass


class ConfigLoader:
    """Configuration loader with support for !include tags."""

    def __init__(self, base_path: Optional[Path] = None):
        """
        Args:
            base_path: Base directory for resolving relative paths.
                      Defaults to current working directory.
        """
        self.base_path = Path(base_path) if base_path else Path.cwd()
        self._include_stack: List[Path] = []

        class IncludeLoader(yaml.SafeLoader):
            pass

        IncludeLoader.add_constructor('!include', self._include_constructor)
        self.yaml_loader = IncludeLoader

    def load_config(self, config_path: Union[str, Path]) -> Dict[str, Any]:
        """
        Load a configuration file with includes resolved.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            CircularIncludeError: If circular includes are detected.
            ConfigError: If the top level is not a mapping.
        """
        config_path = self._resolve_path(config_path, self.base_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        self._include_stack.clear()
        data = self._load_file(config_path)
        if not isinstance(data, dict):
            raise ConfigError(f"Top level of {config_path} must be a mapping")
        return data

    def _include_constructor(self, loader, node):
        file_path = loader.construct_scalar(node)
        current_dir = Path(loader.current_file).parent
        return self._load_file(self._resolve_path(file_path, current_dir))

    def _load_file(self, file_path: Path) -> Any:
        file_path = file_path.resolve()

        if file_path in self._include_stack:
            cycle = ' -> '.join(str(p) for p in self._include_stack + [file_path])
            raise CircularIncludeError(f"Circular include detected: {cycle}")
        if not file_path.exists():
            raise FileNotFoundError(f"Included file not found: {file_path}")

        self._include_stack.append(file_path)
        try:
            with open(file_path, 'r') as f:
                content = f.read()

            loader = self.yaml_loader(content)
            loader.current_file = file_path
            try:
                data = loader.get_single_data()
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {file_path}: {e}") from e
            finally:
                loader.dispose()

            return {} if data is None else data
        finally:
            self._include_stack.pop()

    def _resolve_path(self, path: Union[str, Path], relative_to: Path) -> Path:
        """Resolve relative paths against the including file, then the base path."""
        path = Path(path)
        if path.is_absolute():
            return path.resolve()

        resolved = (relative_to / path).resolve()
        if resolved.exists():
            return resolved

        fallback = (self.base_path / path).resolve()
        if fallback.exists():
            return fallback
        return resolved

    def merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """
        Deep merge two configuration dictionaries.

        Args:
            base: Base configuration.
            override: Configuration to override with.

        Returns:
            Merged configuration.
        """
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self.merge_configs(result[key], value)
            else:
                result[key] = value

        return result
