"""Configuration manager module."""

import importlib
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from pydantic import ValidationError

from query_health_checks.error_classifier import ErrorPattern, build_patterns
from query_health_checks.errors import ConfigurationError
from query_health_checks.models.data_source_config import DataSourceConfig
from query_health_checks.models.engine_settings import EngineSettings


def expand_env(value: Any, where: str = "") -> Any:
    """Resolve ${ENV_VAR} values, recursing into mappings and lists.

    Raises:
        ValueError: If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: expand_env(v, f"{where}.{k}" if where else str(k)) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env(v, where) for v in value]
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        env_var = value[2:-1]
        resolved = os.environ.get(env_var, "")
        if not resolved:
            raise ValueError(f"Environment variable {env_var} not set for {where}")
        return resolved
    return value


class ConfigManager:
    """Manager for loading and accessing engine settings from YAML."""

    def __init__(self, yaml_path: Optional[str] = None) -> None:
        """Initialize the configuration manager.

        Args:
             yaml_path: The path to the query_checks.yaml file. If None, uses the default location.
        """
        if yaml_path is None:
            yaml_path = Path(__file__).parent / "query_checks.example.yaml"
        else:
            yaml_path = Path(yaml_path)

        self.yaml_path = yaml_path
        self.settings = self._load_yaml()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConfigManager":
        """Build a manager from an already parsed configuration."""
        manager = cls.__new__(cls)
        manager.yaml_path = None
        manager.settings = manager._parse(data)
        return manager

    def _load_yaml(self) -> EngineSettings:
        """Load and parse the settings YAML file.

        Returns:
            EngineSettings: The validated settings.
        """
        if not self.yaml_path.exists():
            raise FileNotFoundError(f"Settings file not found: {self.yaml_path}")

        try:
            with open(self.yaml_path, "r") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {self.yaml_path}: {e}") from e

        return self._parse(data)

    def _parse(self, data: Optional[Dict[str, Any]]) -> EngineSettings:
        if not data or "data_sources" not in data:
            raise ValueError(
                f"Invalid settings file: missing 'data_sources' key in {self.yaml_path}"
            )

        data = expand_env(data)
        data_sources = data.get("data_sources") or {}
        if not data_sources:
            raise ValueError(f"No data sources configured in {self.yaml_path}")

        # The mapping key is the data source identifier
        data["data_sources"] = {
            ds_id: {**(ds_config or {}), "id": ds_id}
            for ds_id, ds_config in data_sources.items()
        }

        try:
            return EngineSettings(**data)
        except ValidationError as e:
            raise ValueError(f"Invalid settings in {self.yaml_path}: {e}") from e

    def get_data_sources(self) -> Dict[str, DataSourceConfig]:
        """Get data source configurations in configured order."""
        return dict(self.settings.data_sources)

    def get_check_schedules(self) -> List[str]:
        return list(self.settings.check_schedules)

    def get_error_patterns(self) -> List[ErrorPattern]:
        """Get the configured additional error patterns."""
        patterns = self.settings.error_patterns
        return build_patterns(timeout=patterns.timeout, connection=patterns.connection)

    def get_transform_hook(self) -> Optional[Callable[[Any, str], str]]:
        """Resolve the statement transform hook.

        Returns:
            Callable: The hook function, or None if not configured.

        Raises:
            ConfigurationError: If the hook cannot be imported.
        """
        target = self.settings.transform_statement
        if not target:
            return None

        module_name, _, attr = target.partition(":")
        if not module_name or not attr:
            raise ConfigurationError(
                f"transform_statement must look like 'package.module:function', got {target!r}"
            )
        try:
            hook = getattr(importlib.import_module(module_name), attr)
        except (ImportError, AttributeError) as e:
            raise ConfigurationError(f"Cannot load transform_statement {target!r}: {e}") from e

        if not callable(hook):
            raise ConfigurationError(f"transform_statement {target!r} is not callable")
        return hook
