"""
Template placeholder substitution.

Supports placeholders like ${storage.datalakeName}, ${params.azureRegion},
${env.DATABRICKS_TOKEN} and ${artifact}. Resolution is strict: a
placeholder with no value raises TemplatingError instead of being left in
the rendered output.
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Mapping

from lakedeploy.core.errors import TemplatingError

# Pattern matches ${name} and ${dotted.name}
PLACEHOLDER_PATTERN = re.compile(r"\$\{([\w.\-]+)\}")


def build_context(
    outputs: Mapping[str, Any],
    parameters: Mapping[str, Any] | None = None,
    extra: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Flatten outputs, ``params.*``, ``env.*`` and extras into one lookup table."""
    context: dict[str, Any] = {}
    env = os.environ if environ is None else environ
    for key, value in env.items():
        context[f"env.{key}"] = value
    for key, value in (parameters or {}).items():
        context[f"params.{key}"] = value
    context.update(outputs)
    context.update(extra or {})
    return context


def render(value: Any, context: Mapping[str, Any], where: str = "template") -> Any:
    """
    Recursively substitute placeholders in a value.

    A string consisting of exactly one placeholder is replaced by the
    value itself, so non-string outputs (numbers, lists) keep their type.

    Example:
        >>> render({"url": "https://${ws.name}.dev"}, {"ws.name": "syn01"})
        {'url': 'https://syn01.dev'}
    """
    if isinstance(value, str):
        whole = PLACEHOLDER_PATTERN.fullmatch(value)
        if whole:
            return _lookup(whole.group(1), context, where)
        return render_text(value, context, where)
    elif isinstance(value, Mapping):
        return {k: render(v, context, where) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [render(item, context, where) for item in value]
    else:
        return value


def render_text(text: str, context: Mapping[str, Any], where: str = "template") -> str:
    """Substitute placeholders inside a string."""

    def replacer(match: re.Match) -> str:
        return str(_lookup(match.group(1), context, where))

    return PLACEHOLDER_PATTERN.sub(replacer, text)


def render_file(path: Path, context: Mapping[str, Any]) -> Any:
    """Render a template file.

    JSON files are parsed and rendered structurally; anything else (SQL,
    CSV) is rendered as text.
    """
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        return render(json.loads(text), context, where=str(path))
    return render_text(text, context, where=str(path))


def find_placeholders(value: Any) -> list[str]:
    """
    List placeholder names referenced in a value.

    Example:
        >>> find_placeholders("${storage.name} - ${params.region}")
        ['params.region', 'storage.name']
    """
    found: set[str] = set()

    if isinstance(value, str):
        found.update(m.group(1) for m in PLACEHOLDER_PATTERN.finditer(value))
    elif isinstance(value, Mapping):
        for v in value.values():
            found.update(find_placeholders(v))
    elif isinstance(value, (list, tuple)):
        for item in value:
            found.update(find_placeholders(item))

    return sorted(found)


def _lookup(name: str, context: Mapping[str, Any], where: str) -> Any:
    if name not in context or context[name] is None:
        raise TemplatingError(name, where)
    return context[name]
