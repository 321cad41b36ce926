"""
lakedeploy configuration system.

Provides:
- Pydantic-based settings (environment variables, .env files)
- Deployment configuration documents (resources and post-deployment steps)
"""

from lakedeploy.config.loader import ConfigLoader, load_config
from lakedeploy.config.models import CheckSpec, DeploymentConfig, ResourceSpec, StepSpec
from lakedeploy.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "ConfigLoader",
    "load_config",
    "DeploymentConfig",
    "ResourceSpec",
    "StepSpec",
    "CheckSpec",
]
