"""
Deployment configuration file loading.

Configuration files are YAML (JSON documents parse as YAML too). Relative
template and artifact paths inside the document are resolved against the
directory holding the configuration file.
"""

from __future__ import annotations

from pathlib import Path

import structlog
import yaml

from lakedeploy.config.models import DeploymentConfig
from lakedeploy.core.errors import ConfigurationError

logger = structlog.get_logger()


class ConfigLoader:
    """Loads a deployment configuration from disk."""

    def __init__(self, config_path: str | Path):
        self.config_path = Path(config_path)

    def load(self) -> DeploymentConfig:
        """Load and validate the configuration file."""
        if not self.config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self.config_path}",
                {"path": str(self.config_path)},
            )

        try:
            with open(self.config_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Configuration file is not valid YAML: {e}", {"path": str(self.config_path)}
            ) from e

        config = DeploymentConfig.from_dict(
            data,
            name=self.config_path.stem,
            base_dir=self.config_path.resolve().parent,
        )
        logger.debug(
            "loaded_config",
            path=str(self.config_path),
            resources=len(config.resources),
            post_steps=len(config.post_steps),
        )
        return config


def load_config(path: str | Path) -> DeploymentConfig:
    """
    Convenience function to load a deployment configuration.

    Args:
        path: Path to the configuration file

    Returns:
        DeploymentConfig instance

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    return ConfigLoader(path).load()
