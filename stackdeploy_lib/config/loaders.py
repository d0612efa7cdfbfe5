"""
Configuration loaders.

Reads toolkit settings files and turns deploy parameters into per-stack maps.
"""

from pathlib import Path

import yaml
from loguru import logger
from pydantic import ValidationError

from stackdeploy_lib.config.schemas import ToolkitSettings
from stackdeploy_lib.exceptions import StackDeployConfigurationError

LOGGER = logger.bind(name="stackdeploy_lib.config.loaders")

SETTINGS_FILE_NAME = "stackdeploy.yaml"
ALL_STACKS = "*"


def load_settings(path: Path | None = None) -> ToolkitSettings:
    """
    Load toolkit settings from a YAML file.

    Args:
    ----
        path: Settings file; defaults to ./stackdeploy.yaml

    Returns:
    -------
        ToolkitSettings; defaults when the file does not exist

    Raises:
    ------
        StackDeployConfigurationError: If the file is not valid YAML or fails validation

    Example:
    -------
        ```python
        settings = load_settings(Path("stackdeploy.yaml"))
        print(settings.deploy.concurrency)
        ```

    """
    path = path or Path.cwd() / SETTINGS_FILE_NAME
    if not path.exists():
        LOGGER.debug(f"No settings file at {path}, using defaults")
        return ToolkitSettings()

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise StackDeployConfigurationError(f"Invalid YAML in settings file {path}: {e}") from e

    if not isinstance(data, dict):
        raise StackDeployConfigurationError(f"Settings file {path} must contain a mapping, got {type(data).__name__}")

    try:
        settings = ToolkitSettings(**data)
    except ValidationError as e:
        raise StackDeployConfigurationError(f"Invalid settings file {path}: {e}") from e

    LOGGER.debug(f"Loaded settings from {path}")
    return settings


def build_parameter_map(parameters: dict[str, str | None] | None) -> dict[str, dict[str, str | None]]:
    """
    Split ``Stack:Param`` keys into a per-stack parameter map.

    Unscoped keys land in the ``"*"`` bucket, which applies to every stack.

    Example:
    -------
        >>> build_parameter_map({"Env": "dev", "Api:Port": "8080"})
        {'*': {'Env': 'dev'}, 'Api': {'Port': '8080'}}

    """
    parameter_map: dict[str, dict[str, str | None]] = {ALL_STACKS: {}}
    for key, value in (parameters or {}).items():
        stack, _, parameter = key.partition(":")
        if not parameter:
            parameter_map[ALL_STACKS][stack] = value
        else:
            parameter_map.setdefault(stack, {})[parameter] = value
    return parameter_map


def parameters_for_stack(
    parameter_map: dict[str, dict[str, str | None]],
    stack_name: str,
) -> dict[str, str | None]:
    """Parameters for one stack; stack-scoped values win over unscoped ones."""
    return {**parameter_map.get(ALL_STACKS, {}), **parameter_map.get(stack_name, {})}
