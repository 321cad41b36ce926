"""Resource deployment and post-deployment step orchestration."""

from lakedeploy.orchestration.context import NodeRun, NodeState, RunContext, StepState
from lakedeploy.orchestration.executor import DeploymentExecutor
from lakedeploy.orchestration.results import DeployResult, PlanResult, ResultCollector
from lakedeploy.orchestration.steps import PostDeployStep, StepRunner, build_steps

__all__ = [
    "DeployResult",
    "DeploymentExecutor",
    "NodeRun",
    "NodeState",
    "PlanResult",
    "PostDeployStep",
    "ResultCollector",
    "RunContext",
    "StepRunner",
    "StepState",
    "build_steps",
]
