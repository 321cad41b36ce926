"""
CLI commands for lakedeploy.
"""

from lakedeploy.cli.deploy import deploy_command
from lakedeploy.cli.plan import plan_command

__all__ = [
    "deploy_command",
    "plan_command",
]
