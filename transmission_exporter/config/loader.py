"""Configuration loader with YAML parsing and environment variable substitution."""

import yaml
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .models import ExporterConfig


class ConfigError(Exception):
    """Raised when configuration cannot be parsed or validated."""
    pass


class ConfigLoader:
    """Load and validate exporter configuration."""

    @staticmethod
    def load(
        config_path: Optional[str] = None,
        overrides: Optional[Dict[str, Dict[str, Any]]] = None,
        defaults: Optional[Dict[str, Dict[str, Any]]] = None
    ) -> ExporterConfig:
        """
        Build configuration from an optional YAML file and overrides.

        Args:
            config_path: Path to YAML configuration file, None for defaults only
            overrides: Per-section values taking precedence over the file,
                e.g. {"web": {"listen_address": ":9000"}}; None values are ignored
            defaults: Per-section values the file takes precedence over,
                same shape as overrides

        Returns:
            ExporterConfig: Validated configuration object

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigError: If YAML parsing or validation fails
        """
        raw_config: Dict[str, Any] = {}
        ConfigLoader._merge(raw_config, defaults)
        if config_path:
            ConfigLoader._merge(raw_config, ConfigLoader._read_file(config_path))
        ConfigLoader._merge(raw_config, overrides)

        try:
            return ExporterConfig(**raw_config)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @staticmethod
    def _merge(target: Dict[str, Any], layer: Optional[Dict[str, Any]]) -> None:
        """Merge one configuration layer into target, section by section."""
        for section, values in (layer or {}).items():
            if values is None:
                # Empty section in YAML
                continue
            if not isinstance(values, dict):
                # Let validation report the malformed section
                target[section] = values
                continue
            present = {k: v for k, v in values.items() if v is not None}
            merged = dict(target.get(section) or {})
            merged.update(present)
            target[section] = merged

    @staticmethod
    def _read_file(config_path: str) -> Dict[str, Any]:
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file, 'r') as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse {config_path}: {e}") from e

        if raw_config is None:
            return {}
        if not isinstance(raw_config, dict):
            raise ConfigError(f"Top level of {config_path} must be a mapping")

        # Substitute environment variables
        return ConfigLoader._substitute_env_vars(raw_config)

    @staticmethod
    def _substitute_env_vars(obj: Any) -> Any:
        """
        Recursively substitute ${ENV_VAR} placeholders with environment values.

        Args:
            obj: Object to process (str, dict, list, or primitive)

        Returns:
            Object with environment variables substituted
        """
        if isinstance(obj, str):
            # Replace ${VAR_NAME} with os.getenv('VAR_NAME')
            pattern = r'\$\{(\w+)\}'
            return re.sub(pattern, lambda m: os.getenv(m.group(1), ''), obj)

        elif isinstance(obj, dict):
            return {k: ConfigLoader._substitute_env_vars(v) for k, v in obj.items()}

        elif isinstance(obj, list):
            return [ConfigLoader._substitute_env_vars(item) for item in obj]

        return obj
