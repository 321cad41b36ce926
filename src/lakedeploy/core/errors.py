"""
Unified error handling for lakedeploy.

Every fatal condition raised while building the resource graph, applying
resources, or running post-deployment steps is a ``LakeDeployError``
subclass. The CLI maps them all to exit code 1 and prints a one-line
diagnosis naming the failing node or step.

Exit Codes:
- 0: Success
- 1: Any fatal error (configuration, graph, resource or step failure)
- 130: Interrupted
"""

from __future__ import annotations

import functools
import os
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, Sequence, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Exit codes for CLI commands."""

    SUCCESS = 0
    FAILURE = 1
    INTERRUPTED = 130


class LakeDeployError(Exception):
    """Base exception for lakedeploy errors with exit code support."""

    exit_code: ExitCode = ExitCode.FAILURE
    phase: str = "run"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(LakeDeployError):
    """Raised for malformed or unreadable deployment configuration."""

    phase = "config"


# === Graph build errors ===


class CycleDetected(LakeDeployError):
    """Raised when resource dependencies form a cycle."""

    phase = "graph"

    def __init__(self, node: str, path: Sequence[str]):
        self.node = node
        self.path = list(path)
        super().__init__(
            f"Dependency cycle detected at '{node}': {' -> '.join(self.path)}",
            {"node": node},
        )


class UnresolvedDependency(LakeDeployError):
    """Raised when a resource depends on an undeclared or disabled resource."""

    phase = "graph"

    def __init__(self, node: str, dependency: str, reason: str = "undeclared"):
        self.node = node
        self.dependency = dependency
        self.reason = reason
        super().__init__(
            f"Resource '{node}' depends on {reason} resource '{dependency}'",
            {"node": node, "dependency": dependency},
        )


# === Run time errors ===


class ResourceApplyFailed(LakeDeployError):
    """Raised when a resource cannot be created (or a prior attempt failed)."""

    phase = "resources"

    def __init__(self, node: str, cause: str | BaseException):
        self.node = node
        self.cause = cause
        super().__init__(f"Resource '{node}' failed to apply: {cause}", {"node": node})


class StepError(LakeDeployError):
    """Base for failures attributed to a post-deployment step."""

    phase = "post-deploy"
    hint: str = ""

    def __init__(self, step: str, cause: str | BaseException, details: dict[str, Any] | None = None):
        self.step = step
        self.cause = cause
        merged = {"step": step}
        merged.update(details or {})
        super().__init__(f"Step '{step}' failed: {cause}", merged)


class PreconditionNotMet(StepError):
    """The target environment is not ready (e.g. a paused SQL pool)."""

    hint = "Remedy the environment (e.g. resume the target) and run deploy again."


class TransientConnectivity(StepError):
    """The target endpoint could not be reached (e.g. a login timeout)."""

    hint = "The endpoint was unreachable; re-running deploy is likely to succeed."


class StepActionFailed(StepError):
    """The step's action failed for a reason the client did not classify."""


class TemplatingError(LakeDeployError):
    """Raised when a template placeholder cannot be resolved."""

    def __init__(self, placeholder: str, where: str):
        self.placeholder = placeholder
        self.where = where
        self.node: str | None = None
        self.step: str | None = None
        super().__init__(
            f"Unresolved placeholder '${{{placeholder}}}' in {where}",
            {"placeholder": placeholder},
        )

    def attribute(
        self, phase: str, *, node: str | None = None, step: str | None = None
    ) -> TemplatingError:
        """Record the phase and the resource or step whose rendering failed."""
        self.phase = phase
        self.node = node
        self.step = step
        return self


class MissingOutput(LakeDeployError):
    """Raised when a step needs an output key no earlier action produced."""

    phase = "post-deploy"

    def __init__(self, key: str, step: str):
        self.key = key
        self.step = step
        super().__init__(
            f"Step '{step}' requires output '{key}' which was never produced",
            {"key": key, "step": step},
        )


CommandFunc = TypeVar("CommandFunc", bound=Callable[..., int])


def main_with_error_handling(
    *, traceback_env: str = "LAKEDEPLOY_TRACEBACK"
) -> Callable[[CommandFunc], CommandFunc]:
    """
    Wrap a CLI command so every failure becomes an exit code and a diagnosis.

    ``LakeDeployError`` subclasses are logged with their phase and details
    and reported as ``[phase] message`` on stderr. Anything else is treated
    as a bug: it is logged with its traceback and still exits 1. Setting the
    ``traceback_env`` variable prints tracebacks for every failure.

    Usage:
        @main_with_error_handling()
        def deploy_command(config_path: str) -> int:
            ...
    """

    def decorator(func: CommandFunc) -> CommandFunc:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            want_traceback = bool(os.environ.get(traceback_env))
            try:
                return func(*args, **kwargs)
            except KeyboardInterrupt:
                logger.warning("command_interrupted", command=func.__name__)
                return ExitCode.INTERRUPTED
            except LakeDeployError as exc:
                logger.error(
                    "command_failed",
                    command=func.__name__,
                    phase=exc.phase,
                    error_type=type(exc).__name__,
                    error=exc.message,
                    **exc.details,
                )
                report_error(exc)
                if want_traceback:
                    traceback.print_exc(file=sys.stderr)
                return exc.exit_code
            except Exception as exc:
                logger.exception(
                    "command_crashed", command=func.__name__, error_type=type(exc).__name__
                )
                report_error(exc)
                if want_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.FAILURE

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: LakeDeployError) -> str:
    """Render ``message (key=value, ...)``, skipping details the message already quotes."""
    extra = [
        f"{key}={value}"
        for key, value in error.details.items()
        if f"'{value}'" not in error.message
    ]
    if not extra:
        return error.message
    return f"{error.message} ({', '.join(extra)})"


def report_error(error: BaseException) -> None:
    """Print a one-line diagnosis (plus an operator hint) to stderr."""
    from rich.markup import escape

    from lakedeploy.cli.ux import error as print_error
    from lakedeploy.cli.ux import info

    # Messages quote user input and carry a [phase] prefix; neither is markup
    if isinstance(error, LakeDeployError):
        print_error(escape(f"[{error.phase}] {format_error_message(error)}"))
        hint = getattr(error, "hint", "")
        if hint:
            info(hint)
    else:
        print_error(escape(f"{type(error).__name__}: {error}"))
