"""
CLI command for planning (dry-run) a deployment.
"""

import json
from pathlib import Path

from rich.markup import escape

from lakedeploy.cli.ux import console, error, header, warning
from lakedeploy.deployer import Deployer
from lakedeploy.orchestration.results import PlanResult


def print_plan_summary(plan: PlanResult) -> None:
    """Print plan summary."""
    header(f"Plan: {plan.deployment_name}")

    if plan.errors:
        for err in plan.errors:
            error(escape(err))
        console.print()
        return

    if not plan.resources and not plan.steps:
        warning("No resources or post-deployment steps declared")
        console.print()
        return

    console.print("[bold]Resources will be applied in this order:[/bold]")
    for position, resource in enumerate(plan.resources, 1):
        deps = ", ".join(resource["depends_on"]) or "-"
        console.print(
            f"  {position}. [success]{resource['id']}[/success] "
            f"[muted]({resource['kind']}, after: {deps})[/muted]"
        )
        for name in resource["inputs"]:
            console.print(f"     [muted]└ uses ${{{name}}}[/muted]")

    for node_id in plan.disabled:
        console.print(f"  [warning]- {node_id}[/warning] [muted](disabled)[/muted]")

    if plan.steps:
        console.print()
        console.print("[bold]Then these post-deployment steps:[/bold]")
        for step in plan.steps:
            check = f", skipped if {step['check']} check passes" if step["check"] else ""
            console.print(f"  {step['position']}. {step['name']} [muted]({step['action']}{check})[/muted]")

    console.print()
    console.print("[muted]To deploy, run:[/muted]")
    console.print(f"  [info]lakedeploy deploy {plan.config_path}[/info]")
    console.print()


def print_plan_json(plan: PlanResult) -> None:
    """Print plan in JSON format."""
    print(json.dumps(plan.to_dict(), indent=2))


def plan_command(config_path: str, output_format: str = "text") -> int:
    """
    Preview the resource order and post-deployment steps without deploying.

    Args:
        config_path: Path to the deployment configuration file
        output_format: Output format (text, json)

    Returns:
        Exit code (0 for success, 1 for error)
    """
    result = Deployer(Path(config_path)).plan()

    if output_format == "json":
        print_plan_json(result)
    else:  # text (default)
        print_plan_summary(result)

    return 0 if result.success else 1
