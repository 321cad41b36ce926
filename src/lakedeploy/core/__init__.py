"""Core modules for lakedeploy - centralized error definitions."""

from lakedeploy.core.errors import (
    ConfigurationError,
    CycleDetected,
    ExitCode,
    LakeDeployError,
    MissingOutput,
    PreconditionNotMet,
    ResourceApplyFailed,
    StepActionFailed,
    StepError,
    TemplatingError,
    TransientConnectivity,
    UnresolvedDependency,
    format_error_message,
    main_with_error_handling,
)

__all__ = [
    "ExitCode",
    "LakeDeployError",
    "ConfigurationError",
    # Graph build
    "CycleDetected",
    "UnresolvedDependency",
    # Run time
    "ResourceApplyFailed",
    "StepError",
    "PreconditionNotMet",
    "TransientConnectivity",
    "StepActionFailed",
    "TemplatingError",
    "MissingOutput",
    "main_with_error_handling",
    "format_error_message",
]
