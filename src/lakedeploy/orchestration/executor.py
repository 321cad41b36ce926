"""Dependency-ordered resource deployment."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from lakedeploy.clients.base import ClientError, ControlPlaneClient, DeploymentState
from lakedeploy.core.errors import ResourceApplyFailed, TemplatingError
from lakedeploy.graph.models import DeploymentGraph, ResourceNode
from lakedeploy.orchestration.context import NodeState, RunContext
from lakedeploy.templating import build_context, render


class DeploymentExecutor:
    """Applies resource nodes in an order consistent with the graph.

    The walk stops at the first failure: the failing node and every node
    not yet applied are marked not-applied and the error is raised. With
    ``skip_if_applied`` a deployment that already succeeded is reused (its
    outputs are still published); one that failed or was canceled is
    fatal and is never retried automatically.
    """

    def __init__(
        self,
        client: ControlPlaneClient,
        skip_if_applied: bool = False,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._client = client
        self._skip_if_applied = skip_if_applied
        self._environ = environ

    def execute(self, graph: DeploymentGraph, ctx: RunContext) -> RunContext:
        order = graph.linearize()
        for node in order:
            ctx.node(node.id)

        ctx.log.info("resource_walk_started", order=[n.id for n in order])
        total = len(order)

        for position, node in enumerate(order, 1):
            try:
                self._apply(node, ctx, position, total)
            except (ResourceApplyFailed, TemplatingError) as exc:
                if isinstance(exc, TemplatingError):
                    exc.attribute("resources", node=node.id)
                ctx.mark_not_applied(node.id, exc.message)
                for other in order:
                    if ctx.node(other.id).state is NodeState.PENDING:
                        ctx.mark_not_applied(other.id)
                ctx.log.error(
                    "resource_walk_aborted",
                    node=node.id,
                    error=exc.message,
                    blocked=sorted(graph.dependents_of(node.id)),
                )
                raise

        ctx.log.info("resource_walk_completed", applied=total)
        return ctx

    def _apply(self, node: ResourceNode, ctx: RunContext, position: int, total: int) -> None:
        log = ctx.log.bind(node=node.id, kind=node.kind, step=f"{position}/{total}")

        if self._skip_if_applied:
            status = self._query(node)
            if status.state is DeploymentState.SUCCEEDED:
                log.info("resource_already_applied", deployment=node.deployment_name)
                ctx.mark_applied(node.id, status.outputs, reused=True)
                return
            if status.state in (DeploymentState.FAILED, DeploymentState.CANCELED):
                log.error("resource_previously_failed", state=str(status.state), error=status.error)
                raise ResourceApplyFailed(
                    node.id,
                    f"previous deployment '{node.deployment_name}' ended in state "
                    f"{status.state}; fix it manually before re-running",
                )
            if status.state is DeploymentState.RUNNING:
                raise ResourceApplyFailed(
                    node.id,
                    f"deployment '{node.deployment_name}' is still in progress; "
                    "wait for it to finish and re-run",
                )

        params = self._render_params(node, ctx)
        log.info("resource_apply_started", deployment=node.deployment_name)
        try:
            outputs = self._client.create(node.kind, params, name=node.deployment_name)
        except ClientError as exc:
            log.error("resource_apply_failed", error=exc.message, failure=str(exc.kind))
            raise ResourceApplyFailed(node.id, exc.message) from exc

        ctx.mark_applied(node.id, outputs or {})
        log.info("resource_applied", outputs=sorted((outputs or {}).keys()))

    def _query(self, node: ResourceNode):
        try:
            return self._client.query_status(node.deployment_name)
        except ClientError as exc:
            raise ResourceApplyFailed(node.id, f"status query failed: {exc.message}") from exc

    def _render_params(self, node: ResourceNode, ctx: RunContext) -> Dict[str, Any]:
        context = build_context(ctx.outputs, ctx.parameters, environ=self._environ)
        return render(dict(node.params), context, where=f"resource '{node.id}' params")
