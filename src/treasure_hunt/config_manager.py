"""
Configuration management for loading and saving application configuration.

Supports YAML, TOML and JSON formats.
"""

import json
import logging
import os
import yaml
import toml
from pathlib import Path
from typing import Mapping, Optional

from .config import HuntConfig

logger = logging.getLogger(__name__)


class ConfigManager:
    """Manages loading and saving of application configuration."""

    DEFAULT_CONFIG_NAME = "treasure_hunt_config.yaml"

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file. If None, uses default.
        """
        if config_path is None:
            config_path = Path("config") / self.DEFAULT_CONFIG_NAME

        self.config_path = Path(config_path)
        self.config: Optional[HuntConfig] = None

    def load(self) -> HuntConfig:
        """
        Load configuration from file.

        Returns:
            HuntConfig object

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file format is invalid
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        suffix = self.config_path.suffix.lower()

        with open(self.config_path, 'r') as f:
            if suffix in ['.yaml', '.yml']:
                data = yaml.safe_load(f)
            elif suffix == '.toml':
                data = toml.load(f)
            elif suffix == '.json':
                data = json.load(f)
            else:
                raise ValueError(f"Unsupported config format: {suffix}")

        self.config = HuntConfig(**(data or {}))
        return self.config

    def load_or_default(self) -> HuntConfig:
        """Load the configuration file, falling back to defaults if it is missing."""
        try:
            return self.load()
        except FileNotFoundError:
            logger.info(f"No configuration at {self.config_path}, using defaults")
            self.config = HuntConfig()
            return self.config

    def save(self, config: Optional[HuntConfig] = None) -> None:
        """
        Save configuration to file.

        Args:
            config: HuntConfig object to save. If None, uses current config.
        """
        if config is None:
            config = self.config

        if config is None:
            raise ValueError("No configuration to save")

        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        suffix = self.config_path.suffix.lower()

        # Paths and enums become plain strings; TOML has no null
        data = config.model_dump(mode='json', exclude_none=(suffix == '.toml'))

        with open(self.config_path, 'w') as f:
            if suffix in ['.yaml', '.yml']:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
            elif suffix == '.toml':
                toml.dump(data, f)
            elif suffix == '.json':
                json.dump(data, f, indent=2)
            else:
                raise ValueError(f"Unsupported config format: {suffix}")

        self.config = config

    def apply_env_overrides(self, environ: Optional[Mapping[str, str]] = None) -> HuntConfig:
        """
        Overlay environment variables on the loaded configuration.

        Recognised variables: ``TREASURE_SERVER_URL``,
        ``TREASURE_SERVER_HEADERS`` (a JSON object), ``MIN_VALIDATION_SCORE``
        and ``DEBUG_LOGGING``.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Returns:
            The updated HuntConfig
        """
        if self.config is None:
            raise ValueError("No configuration loaded")
        env = os.environ if environ is None else environ

        data = self.config.model_dump()
        if env.get('TREASURE_SERVER_URL'):
            data['server']['base_url'] = env['TREASURE_SERVER_URL']
        if env.get('TREASURE_SERVER_HEADERS'):
            headers = json.loads(env['TREASURE_SERVER_HEADERS'])
            if not isinstance(headers, dict):
                raise ValueError("TREASURE_SERVER_HEADERS must be a JSON object")
            data['server']['headers'] = headers
        if env.get('MIN_VALIDATION_SCORE'):
            data['validator']['min_validation_score'] = int(env['MIN_VALIDATION_SCORE'])
        if env.get('DEBUG_LOGGING'):
            data['debug_logging'] = env['DEBUG_LOGGING'].strip().lower() in ('1', 'true', 'yes', 'on')

        self.config = HuntConfig(**data)
        return self.config

    def create_default(self, server_url: Optional[str] = None) -> HuntConfig:
        """
        Create a default configuration.

        Args:
            server_url: Optional base URL of the treasure server

        Returns:
            HuntConfig object with default settings
        """
        config = HuntConfig()
        if server_url:
            config = HuntConfig(server={'base_url': server_url})

        self.config = config
        return config

    @classmethod
    def initialize_project(cls, project_dir: Path, server_url: Optional[str] = None) -> 'ConfigManager':
        """
        Initialize a new project with default configuration and directory structure.

        Args:
            project_dir: Root directory for the project
            server_url: Optional base URL of the treasure server

        Returns:
            ConfigManager instance with default configuration
        """
        project_dir = Path(project_dir)

        (project_dir / "config").mkdir(parents=True, exist_ok=True)
        (project_dir / "public").mkdir(parents=True, exist_ok=True)

        config_path = project_dir / "config" / cls.DEFAULT_CONFIG_NAME
        manager = cls(config_path)

        config = manager.create_default(server_url)
        manager.save(config)

        return manager
