"""Post-deployment step runner.

Steps run strictly in order against the data plane. Each step moves from
pending to exactly one of skipped, applied or failed; nothing is retried
within a run. Re-running the whole deployment relies on each step's
idempotency check to avoid repeating side effects.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from lakedeploy.clients.base import ClientError, DataPlaneClient, FailureKind
from lakedeploy.config.models import CheckSpec, StepSpec
from lakedeploy.core.errors import (
    ConfigurationError,
    LakeDeployError,
    MissingOutput,
    PreconditionNotMet,
    StepActionFailed,
    StepError,
    TemplatingError,
    TransientConnectivity,
)
from lakedeploy.orchestration.context import RunContext, StepState
from lakedeploy.templating import build_context, render, render_file

FAILURE_TYPES = {
    FailureKind.PRECONDITION: PreconditionNotMet,
    FailureKind.TRANSIENT: TransientConnectivity,
}


@dataclass
class PostDeployStep:
    """A data-plane action performed after infrastructure exists."""

    position: int
    name: str
    action: str
    requires: List[str] = field(default_factory=list)
    template: Optional[Path] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    check: Optional[CheckSpec] = None
    produces: Dict[str, str] = field(default_factory=dict)
    artifact: Optional[Path] = None

    @classmethod
    def from_spec(cls, position: int, spec: StepSpec, base_dir: Path) -> PostDeployStep:
        def resolve(ref: Optional[str]) -> Optional[Path]:
            if ref is None:
                return None
            path = Path(ref)
            return path if path.is_absolute() else base_dir / path

        return cls(
            position=position,
            name=spec.name,
            action=spec.action,
            requires=list(spec.requires),
            template=resolve(spec.template),
            payload=dict(spec.payload),
            check=spec.check,
            produces=dict(spec.produces),
            artifact=resolve(spec.artifact),
        )


def build_steps(specs: List[StepSpec], base_dir: Path) -> List[PostDeployStep]:
    return [PostDeployStep.from_spec(i, spec, base_dir) for i, spec in enumerate(specs, 1)]


class StepRunner:
    """Runs post-deployment steps using outputs gathered by the executor."""

    def __init__(
        self,
        client: DataPlaneClient,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._client = client
        self._environ = environ

    def run(self, steps: List[PostDeployStep], ctx: RunContext) -> RunContext:
        for step in steps:
            ctx.steps.setdefault(step.name, StepState.PENDING)

        for index, step in enumerate(steps):
            ctx.step_index = index
            try:
                ctx.steps[step.name] = self._run_step(step, ctx, len(steps))
            except LakeDeployError as exc:
                if isinstance(exc, TemplatingError):
                    exc.attribute("post-deploy", step=step.name)
                ctx.steps[step.name] = StepState.FAILED
                ctx.log.error(
                    "post_deploy_aborted",
                    step=step.name,
                    error=exc.message,
                    error_type=type(exc).__name__,
                    remaining=[s.name for s in steps[index + 1:]],
                )
                raise

        ctx.log.info("post_deploy_completed", steps=len(steps))
        return ctx

    def _run_step(self, step: PostDeployStep, ctx: RunContext, total: int) -> StepState:
        log = ctx.log.bind(step=step.name, position=f"{step.position}/{total}", action=step.action)

        for key in step.requires:
            if key not in ctx.outputs:
                raise MissingOutput(key, step.name)

        template_context = self._context(step, ctx)

        if step.check is not None:
            check_params = render(step.check.params, template_context, where=f"step '{step.name}' check")
            try:
                result = self._client.check(step.check.type, check_params)
            except ClientError as exc:
                raise self._classify(step, exc) from exc
            if result.done:
                self._capture(step, result.outputs, ctx, strict=False)
                log.info("step_skipped", reason="already_done", check=step.check.type)
                return StepState.SKIPPED

        payload = self._render_payload(step, template_context)

        log.info("step_started")
        try:
            response = self._client.execute(step.action, payload)
        except ClientError as exc:
            log.error("step_failed", error=exc.message, failure=str(exc.kind))
            raise self._classify(step, exc) from exc

        self._capture(step, response, ctx, strict=True)
        log.info("step_applied", produced=sorted(step.produces))
        return StepState.APPLIED

    def _context(self, step: PostDeployStep, ctx: RunContext) -> Dict[str, Any]:
        extra: Dict[str, Any] = {"deployment.name": ctx.deployment_name}
        if step.artifact is not None:
            if not step.artifact.is_file():
                raise ConfigurationError(
                    f"Artifact not found for step '{step.name}': {step.artifact}",
                    {"step": step.name},
                )
            extra["artifact"] = base64.b64encode(step.artifact.read_bytes()).decode("ascii")
            extra["artifact.name"] = step.artifact.stem
        return build_context(ctx.outputs, ctx.parameters, extra, environ=self._environ)

    def _render_payload(self, step: PostDeployStep, context: Dict[str, Any]) -> Dict[str, Any]:
        payload = render(step.payload, context, where=f"step '{step.name}' payload")
        if step.template is None:
            return payload

        try:
            rendered = render_file(step.template, context)
        except (OSError, ValueError) as exc:
            raise ConfigurationError(
                f"Cannot read template for step '{step.name}': {exc}", {"step": step.name}
            ) from exc
        if isinstance(rendered, dict) and step.action == "http" and "url" not in rendered:
            # A JSON template for an http action is the request body
            return {**payload, "body": rendered}
        if isinstance(rendered, dict):
            return {**payload, **rendered}
        return {**payload, "content": rendered}

    @staticmethod
    def _capture(
        step: PostDeployStep, response: Dict[str, Any], ctx: RunContext, strict: bool
    ) -> None:
        for key, field_name in step.produces.items():
            value = _dig(response, field_name)
            if value is None:
                if strict:
                    raise MissingOutput(key, step.name)
                continue
            ctx.outputs[key] = value

    @staticmethod
    def _classify(step: PostDeployStep, exc: ClientError) -> StepError:
        error_type = FAILURE_TYPES.get(exc.kind, StepActionFailed)
        return error_type(step.name, exc.message, {"action": step.action})


def _dig(data: Any, dotted: str) -> Any:
    """Look up ``a.b.0.c`` style paths in nested dicts and lists."""
    current = data
    for part in dotted.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return None
        if current is None:
            return None
    return current
