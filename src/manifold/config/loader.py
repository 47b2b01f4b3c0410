"""
Configuration file loading.

Loads ``manifold.yaml`` and an optional ``manifold.{env}.yaml`` overlay.
"""

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml

from manifold.config.resolver import resolve_config
from manifold.exceptions import ConfigurationError

CONFIG_FILENAME = "manifold.yaml"


class Config:
    """Manifold configuration container with dict-like access."""

    def __init__(self, data: dict[str, Any]):
        self.data = data
        # Convenience properties for common config sections
        self.connection = data.get("connection") or {}
        self.executor = data.get("executor") or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation."""
        value: Any = self.data
        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default
        return value

    def __getitem__(self, key: str) -> Any:
        """Dict-like access: config['key'] or config['nested.key']."""
        if "." in key:
            if key not in self:
                raise KeyError(f"Config key '{key}' not found")
            return self.get(key)
        if key in self.data:
            value = self.data[key]
            # Nested dicts come back as Config objects for chaining
            if isinstance(value, dict):
                return Config(value)
            return value
        raise KeyError(f"Config key '{key}' not found")

    def __contains__(self, key: str) -> bool:
        """Check if key (optionally dotted) exists in config."""
        value: Any = self.data
        for k in key.split("."):
            if not isinstance(value, dict) or k not in value:
                return False
            value = value[k]
        return True

    def __iter__(self) -> Iterator[str]:
        return iter(self.data)

    def keys(self):
        return self.data.keys()

    def items(self):
        return self.data.items()

    def validate(self) -> None:
        """Validate configuration structure and content."""
        errors = []

        for section in ("connection", "executor", "logging"):
            value = self.data.get(section)
            if value is not None and not isinstance(value, dict):
                errors.append(f"Configuration '{section}' must be a mapping, got {type(value).__name__}")

        max_workers = self.get("executor.max_workers")
        if max_workers is not None and max_workers != "auto":
            if not isinstance(max_workers, int) or isinstance(max_workers, bool) or max_workers < 1:
                errors.append(f"executor.max_workers must be a positive integer or 'auto', got {max_workers!r}")

        if errors:
            raise ConfigurationError("\n".join(errors))


def load_config(project_path: Path | str | None = None, env: str | None = None) -> Config:
    """
    Load Manifold configuration.

    Args:
        project_path: Path to project root (default: current directory)
        env: Environment name (dev, staging, prod); selects ``manifold.{env}.yaml``

    Returns:
        Validated Config instance with merged configuration

    Raises:
        ConfigurationError: If the file is missing or not valid YAML
    """
    project_path = Path.cwd() if project_path is None else Path(project_path)

    base_config_path = project_path / CONFIG_FILENAME
    if not base_config_path.is_file():
        raise ConfigurationError(
            f"Configuration file not found: {base_config_path}\n"
            f"  Suggestion: Create a {CONFIG_FILENAME} file in your project root"
        )

    config_data = _read_yaml(base_config_path)

    if env:
        env_config_path = project_path / f"manifold.{env}.yaml"
        if env_config_path.exists():
            # env overrides base
            _merge_dict(config_data, _read_yaml(env_config_path))

    config = Config(resolve_config(config_data, env or "dev"))
    config.validate()
    return config


def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            mark = getattr(e, "problem_mark", None)
            if mark is not None:
                raise ConfigurationError(
                    f"Error parsing {path.name} at line {mark.line + 1}, column {mark.column + 1}:\n"
                    f"  {e}\n"
                    f"  File: {path}"
                ) from e
            raise ConfigurationError(f"Error parsing {path.name}: {e}\n  File: {path}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration must be a mapping, got {type(data).__name__}\n  File: {path}")
    return data


def _merge_dict(base: dict, override: dict) -> None:
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _merge_dict(base[key], value)
        else:
            base[key] = value
