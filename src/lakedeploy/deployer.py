"""
Deployment facade.

Coordinates the two phases of a deployment from a single configuration
file: resource deployment through the control plane, then post-deployment
configuration through the data plane.
"""

import time
from pathlib import Path
from typing import List, Mapping, Optional

from lakedeploy.clients.base import ControlPlaneClient, DataPlaneClient
from lakedeploy.config.loader import load_config
from lakedeploy.config.models import DeploymentConfig
from lakedeploy.core.errors import LakeDeployError
from lakedeploy.graph.builder import GraphBuilder
from lakedeploy.graph.models import DeploymentGraph
from lakedeploy.orchestration.context import RunContext
from lakedeploy.orchestration.executor import DeploymentExecutor
from lakedeploy.orchestration.results import DeployResult, PlanResult, ResultCollector
from lakedeploy.orchestration.steps import PostDeployStep, StepRunner, build_steps
from lakedeploy.templating import find_placeholders


class Deployer:
    """Runs a deployment configuration end to end."""

    def __init__(
        self,
        config_path: Path,
        control: Optional[ControlPlaneClient] = None,
        data_plane: Optional[DataPlaneClient] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.config_path = Path(config_path)
        self.control = control
        self.data_plane = data_plane
        self.environ = environ
        self.config: Optional[DeploymentConfig] = None
        self.graph: Optional[DeploymentGraph] = None
        self.steps: List[PostDeployStep] = []

    def load(self) -> DeploymentConfig:
        """Load the configuration and build the validated resource graph."""
        if self.config is None:
            self.config = load_config(self.config_path)
            self.graph = GraphBuilder().build(self.config)
            self.steps = build_steps(self.config.post_steps, self.config.base_dir)
        return self.config

    def plan(self) -> PlanResult:
        """Preview the resource order and post-deployment steps (dry-run)."""
        try:
            config = self.load()
        except LakeDeployError as e:
            return PlanResult(
                deployment_name=self.config_path.stem,
                config_path=self.config_path,
                errors=[e.message],
            )

        assert self.graph is not None

        result = PlanResult(
            deployment_name=config.name,
            config_path=self.config_path,
            disabled=list(self.graph.disabled),
        )
        for node in self.graph.linearize():
            entry = node.to_dict()
            entry["inputs"] = find_placeholders(dict(node.params))
            result.resources.append(entry)
        for step in self.steps:
            result.steps.append(
                {
                    "position": step.position,
                    "name": step.name,
                    "action": step.action,
                    "requires": step.requires,
                    "check": step.check.type if step.check else None,
                }
            )
        return result

    def deploy(self, skip_if_applied: bool = False) -> DeployResult:
        """Apply all resources, then run post-deployment steps.

        Configuration and graph errors are raised. Errors during the run
        end the run and are reported on the returned result.
        """
        if self.control is None or self.data_plane is None:
            raise ValueError("Deployer.deploy() needs both a control-plane and a data-plane client")

        config = self.load()
        assert self.graph is not None

        start = time.monotonic()
        ctx = RunContext(deployment_name=config.name, parameters=dict(config.parameters))
        collector = ResultCollector(ctx)
        ctx.log.info(
            "deployment_started",
            config=str(self.config_path),
            resources=len(self.graph),
            post_steps=len(self.steps),
            skip_if_applied=skip_if_applied,
        )

        try:
            DeploymentExecutor(self.control, skip_if_applied, environ=self.environ).execute(
                self.graph, ctx
            )
            StepRunner(self.data_plane, environ=self.environ).run(self.steps, ctx)
        except LakeDeployError as e:
            collector.record_error(e, _failed_at(e, ctx, self.steps))
        else:
            ctx.log.info("deployment_completed")

        return collector.finalize(time.monotonic() - start)


def _failed_at(error: LakeDeployError, ctx: RunContext, steps: List[PostDeployStep]) -> Optional[str]:
    for attr in ("node", "step"):
        value = getattr(error, attr, None)
        if value:
            return str(value)
    if 0 <= ctx.step_index < len(steps):
        return steps[ctx.step_index].name
    failed = [node_id for node_id, run in ctx.nodes.items() if run.error]
    return failed[0] if failed else None
