"""
Configuration Module for the Invoice Extraction Pipeline.

This module provides configuration management using YAML files. Defaults
live in config/settings.yaml; callers may layer a user file and a dict of
overrides on top. Every pipeline owns its own ConfigurationManager, so two
pipelines in one process never see each other's settings.
"""

import copy
import yaml
from pathlib import Path
from typing import Any, Dict, Optional, Union

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = copy.deepcopy(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


class ConfigurationManager:
    """
    Configuration access for one pipeline instance.

    Attributes:
        config_path (Path): Optional user configuration file layered over
            the packaged defaults.
        overrides (Dict): In-memory overrides applied last.

    Example:
        >>> config = ConfigurationManager(overrides={"ocr": {"dpi": 300}})
        >>> config.get("ocr.dpi")
        300
        >>> config.get("parsing.top_n")
        3
    """

    def __init__(
        self,
        config_path: Optional[Union[str, Path]] = None,
        overrides: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Initialize the configuration manager.

        Args:
            config_path: Optional YAML file merged over config/settings.yaml.
            overrides: Optional nested dict merged over everything else.
        """
        self.config_path = Path(config_path) if config_path else None
        self.overrides = overrides or {}
        self._config: Dict[str, Any] = {}
        self._load_config()

    @staticmethod
    def _read_yaml(path: Path) -> Dict[str, Any]:
        """
        Read one YAML mapping from disk.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            yaml.YAMLError: If the file is invalid.
        """
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        return data or {}

    def _load_config(self) -> None:
        config = self._read_yaml(DEFAULT_SETTINGS_PATH)
        if self.config_path is not None:
            config = _deep_merge(config, self._read_yaml(self.config_path))
        if self.overrides:
            config = _deep_merge(config, self.overrides)
        self._config = config

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., "ocr.dpi").
            default: Default value if key doesn't exist.

        Returns:
            Configuration value or default.

        Example:
            >>> config.get("ocr.lang")
            "eng"
            >>> config.get("nonexistent.key", "default_value")
            "default_value"
        """
        value: Any = self._config

        try:
            for k in key.split('.'):
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def get_all(self) -> Dict[str, Any]:
        """
        Get a copy of the complete configuration dictionary.
        """
        return copy.deepcopy(self._config)

    def reload(self) -> None:
        """
        Reload configuration from file.
        """
        self._load_config()


# Export public API
__all__ = ['ConfigurationManager', 'DEFAULT_SETTINGS_PATH']
