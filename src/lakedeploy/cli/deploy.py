"""
CLI command for deploying an environment: resources, then post-deployment steps.
"""

import json
from pathlib import Path
from typing import Optional

from rich.markup import escape

from lakedeploy.cli.ux import console, header, print_key_value, spinner, state_line
from lakedeploy.clients.azure import AzureControlPlaneClient, AzureDataPlaneClient
from lakedeploy.clients.base import ControlPlaneClient, DataPlaneClient
from lakedeploy.config.settings import get_settings
from lakedeploy.core.errors import main_with_error_handling
from lakedeploy.deployer import Deployer
from lakedeploy.logging import configure_logging
from lakedeploy.orchestration.results import DeployResult


def print_deploy_summary(result: DeployResult, verbose: bool = False) -> None:
    """Print deployment summary with rich formatting."""
    header(f"Deployment: {escape(result.deployment_name)}")

    console.print("[bold]Resources[/bold]")
    for node_id, state in result.resources.items():
        note = f"{state}, already deployed" if node_id in result.reused else state
        state_line(state, escape(node_id), note)

    if result.steps:
        console.print()
        console.print("[bold]Post-deployment steps[/bold]")
        for name, state in result.steps.items():
            state_line(state, escape(name), state)

    if verbose and result.outputs:
        print_key_value({k: str(v) for k, v in sorted(result.outputs.items())}, title="Outputs")

    console.print()
    duration = f" in {result.duration_seconds:.1f}s" if result.duration_seconds > 0 else ""
    if result.success:
        console.print(
            f"[bold green]Deployment complete: {result.applied_count} resources{duration}[/bold green]"
        )
    else:
        stopped_at = escape(str(result.failed_at))
        console.print(f"[bold yellow]Deployment stopped at {stopped_at}{duration}[/bold yellow]")
    console.print()


def print_deploy_json(result: DeployResult) -> None:
    """Print deploy result in JSON format."""
    print(json.dumps(result.to_dict(), indent=2, default=str))


@main_with_error_handling()
def deploy_command(
    config_path: str,
    skip_if_applied: bool = False,
    log_file: Optional[str] = None,
    output_format: str = "text",
    verbose: bool = False,
    control: Optional[ControlPlaneClient] = None,
    data_plane: Optional[DataPlaneClient] = None,
) -> int:
    """
    Deploy all resources and run post-deployment steps.

    Args:
        config_path: Path to the deployment configuration file
        skip_if_applied: Reuse deployments that already succeeded
        log_file: Append-only log file (defaults to LAKEDEPLOY_LOG_FILE)
        output_format: Output format (text, json)
        verbose: Show detailed progress and outputs
        control: Control-plane client (defaults to Azure Resource Manager)
        data_plane: Data-plane client (defaults to the Azure REST/SQL client)

    Returns:
        Exit code (0 for success, 1 for any fatal error)
    """
    settings = get_settings()
    configure_logging(settings.log_level, log_file or settings.log_file, verbose=verbose)

    deployer = Deployer(Path(config_path))
    config = deployer.load()
    deployer.control = control or AzureControlPlaneClient.from_settings(
        settings, base_dir=config.base_dir
    )
    deployer.data_plane = data_plane or AzureDataPlaneClient.from_settings(settings)

    with spinner(f"Deploying {config.name}..."):
        result = deployer.deploy(skip_if_applied=skip_if_applied)

    if output_format == "json":
        print_deploy_json(result)
    else:  # text (default)
        print_deploy_summary(result, verbose=verbose)

    if result.error is not None:
        raise result.error

    return 0
