"""Configuration loading and saving."""

import logging
import shutil
from typing import Any

import yaml
from pydantic import ValidationError

from inkmic.config.models import MicConfig
from inkmic.system.path_resolver import PathResolver

logger = logging.getLogger(__name__)


class ConfigManager:
    """Manages configuration loading and saving."""

    def __init__(self, path_resolver: PathResolver | None = None):
        """Initialize ConfigManager.

        Args:
            path_resolver: Optional PathResolver instance. If None, creates a new one.
        """
        self.path_resolver = path_resolver or PathResolver()
        self.config_path = self.path_resolver.get_config_path()

    def load(self) -> MicConfig:
        """Load and validate the configuration, creating it from defaults if missing.

        Returns:
            MicConfig: Loaded and validated configuration

        Raises:
            ValueError: If the file contains invalid values
        """
        self._ensure_config_exists()
        raw_config = self._read_yaml()

        expected_fields = set(MicConfig.model_fields.keys())
        unexpected_fields = set(raw_config.keys()) - expected_fields
        if unexpected_fields:
            logger.warning("Ignoring unknown config fields: %s", sorted(unexpected_fields))
        filtered_config = {k: v for k, v in raw_config.items() if k in expected_fields}

        try:
            return MicConfig(**filtered_config)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise ValueError(f"Configuration validation failed: {fields}") from e

    def save(self, config: MicConfig) -> None:
        """Save configuration to file with backup.

        Args:
            config: Configuration to save

        Raises:
            PermissionError: If config file cannot be written
        """
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        if self.config_path.exists():
            backup_path = self.config_path.with_suffix(".yaml.backup")
            try:
                shutil.copy2(self.config_path, backup_path)
            except PermissionError:
                logger.warning("Could not create backup at %s", backup_path)

        config_yaml = yaml.dump(
            self._config_to_dict(config), default_flow_style=False, sort_keys=False
        )
        self.config_path.write_text(config_yaml)
        logger.info("Configuration saved successfully to %s", self.config_path)

    def _ensure_config_exists(self) -> None:
        """Ensure config file exists, create from defaults if needed."""
        if not self.config_path.exists():
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            config_yaml = yaml.dump(
                self._config_to_dict(MicConfig()), default_flow_style=False, sort_keys=False
            )
            self.config_path.write_text(config_yaml)
            logger.info("Created default configuration at %s", self.config_path)

    def _read_yaml(self) -> dict[str, Any]:
        """Read YAML config file.

        Returns:
            dict: Raw configuration dictionary
        """
        config_text = self.config_path.read_text()
        return yaml.safe_load(config_text) or {}

    def _config_to_dict(self, config: MicConfig) -> dict[str, Any]:
        # JSON mode turns enums into plain strings so safe_load can read them back
        return config.model_dump(mode="json")
