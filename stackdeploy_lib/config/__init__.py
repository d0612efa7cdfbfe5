"""Configuration schemas and loaders for stackdeploy-lib."""

from stackdeploy_lib.config.loaders import build_parameter_map, load_settings, parameters_for_stack
from stackdeploy_lib.config.schemas import (
    DEFAULT_REGION,
    CredentialsOptions,
    DeploymentMethod,
    DeploymentMethodKind,
    DeployOptions,
    DestroyOptions,
    GraphConcurrency,
    RollbackOptions,
    ToolkitSettings,
)

__all__ = [
    "DEFAULT_REGION",
    "CredentialsOptions",
    "DeployOptions",
    "DeploymentMethod",
    "DeploymentMethodKind",
    "DestroyOptions",
    "GraphConcurrency",
    "RollbackOptions",
    "ToolkitSettings",
    "build_parameter_map",
    "load_settings",
    "parameters_for_stack",
]
