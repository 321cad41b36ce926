"""
Deployment configuration documents.

A configuration declares the resource modules to deploy and the ordered
post-deployment steps to run against the data plane once they exist:

    name: analytics-environment
    parameters:
      azureRegion: eastus
    resources:
      - id: storage
        kind: Microsoft.Storage
        params: {template: modules/storage.json}
      - id: synapse
        kind: Microsoft.Synapse
        dependsOn: [storage]
    postSteps:
      - name: Enable result set caching
        action: sql
        requires: [synapse.workspaceName]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from lakedeploy.core.errors import ConfigurationError

TOP_LEVEL_KEYS = {"name", "parameters", "resources", "postSteps", "post_steps"}


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first key present (camelCase and snake_case are both accepted)."""
    for key in keys:
        if key in data:
            return data[key]
    return default


def _string_list(value: Any, what: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigurationError(f"{what} must be a list of strings")
    return list(value)


@dataclass
class ResourceSpec:
    """One declared resource module."""

    id: str
    kind: str
    params: dict[str, Any] = field(default_factory=dict)
    depends_on: list[str] = field(default_factory=list)
    enabled: bool = True
    deployment_name: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResourceSpec:
        if not isinstance(data, dict):
            raise ConfigurationError("Each resource must be a mapping")
        if not data.get("id"):
            raise ConfigurationError("Resource is missing required field 'id'")
        if not data.get("kind"):
            raise ConfigurationError(
                f"Resource '{data['id']}' is missing required field 'kind'",
                {"node": data["id"]},
            )

        params = data.get("params") or data.get("parameters") or {}
        if not isinstance(params, dict):
            raise ConfigurationError(
                f"Resource '{data['id']}' params must be a mapping", {"node": data["id"]}
            )

        enabled = data.get("enabled", True)
        if not isinstance(enabled, bool):
            raise ConfigurationError(
                f"Resource '{data['id']}' enabled must be true or false", {"node": data["id"]}
            )

        return cls(
            id=str(data["id"]),
            kind=str(data["kind"]),
            params=dict(params),
            depends_on=_string_list(
                _pick(data, "dependsOn", "depends_on"), f"Resource '{data['id']}' dependsOn"
            ),
            enabled=enabled,
            deployment_name=_pick(data, "deploymentName", "deployment_name"),
        )


@dataclass
class CheckSpec:
    """Idempotency check descriptor for a post-deployment step."""

    type: str
    params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any, step: str) -> CheckSpec | None:
        if data is None or data == "none":
            return None
        if isinstance(data, str):
            return cls(type=data)
        if not isinstance(data, dict) or "type" not in data:
            raise ConfigurationError(
                f"Step '{step}' check must be a mapping with a 'type'", {"step": step}
            )
        params = {k: v for k, v in data.items() if k != "type"}
        return cls(type=str(data["type"]), params=params)


@dataclass
class StepSpec:
    """One post-deployment step as written in the configuration."""

    name: str
    action: str
    template: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    requires: list[str] = field(default_factory=list)
    check: CheckSpec | None = None
    produces: dict[str, str] = field(default_factory=dict)
    artifact: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StepSpec:
        if not isinstance(data, dict):
            raise ConfigurationError("Each post-deployment step must be a mapping")
        name = data.get("name")
        if not name:
            raise ConfigurationError("Post-deployment step is missing required field 'name'")
        if not data.get("action"):
            raise ConfigurationError(
                f"Step '{name}' is missing required field 'action'", {"step": name}
            )

        payload = data.get("payload") or {}
        produces = data.get("produces") or {}
        if not isinstance(payload, dict) or not isinstance(produces, dict):
            raise ConfigurationError(
                f"Step '{name}' payload and produces must be mappings", {"step": name}
            )

        return cls(
            name=str(name),
            action=str(data["action"]),
            template=data.get("template"),
            payload=dict(payload),
            requires=_string_list(data.get("requires"), f"Step '{name}' requires"),
            check=CheckSpec.from_dict(data.get("check"), str(name)),
            produces={str(k): str(v) for k, v in produces.items()},
            artifact=data.get("artifact"),
        )


@dataclass
class DeploymentConfig:
    """Parsed deployment configuration."""

    name: str
    resources: list[ResourceSpec] = field(default_factory=list)
    post_steps: list[StepSpec] = field(default_factory=list)
    parameters: dict[str, Any] = field(default_factory=dict)
    base_dir: Path = Path(".")

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], name: str = "deployment", base_dir: Path | None = None
    ) -> DeploymentConfig:
        if not isinstance(data, dict):
            raise ConfigurationError("Deployment configuration must be a mapping")

        unknown = sorted(set(data) - TOP_LEVEL_KEYS)
        if unknown:
            raise ConfigurationError(
                f"Unknown top-level option(s): {', '.join(unknown)}",
                {"allowed": "resources, postSteps, name, parameters"},
            )

        resources = data.get("resources") or []
        steps = _pick(data, "postSteps", "post_steps", default=None) or []
        if not isinstance(resources, list) or not isinstance(steps, list):
            raise ConfigurationError("'resources' and 'postSteps' must be lists")

        parameters = data.get("parameters") or {}
        if not isinstance(parameters, dict):
            raise ConfigurationError("'parameters' must be a mapping")

        post_steps = [StepSpec.from_dict(s) for s in steps]
        seen: set[str] = set()
        for step in post_steps:
            if step.name in seen:
                raise ConfigurationError(
                    f"Duplicate post-deployment step name '{step.name}'", {"step": step.name}
                )
            seen.add(step.name)

        return cls(
            name=str(data.get("name") or name),
            resources=[ResourceSpec.from_dict(r) for r in resources],
            post_steps=post_steps,
            parameters=dict(parameters),
            base_dir=base_dir or Path("."),
        )
