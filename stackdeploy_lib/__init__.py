"""
StackDeploy Library - credential resolution and deploy orchestration for CloudFormation stacks.

This library provides:
- Credential resolution: ambient credentials, credential plugins and role assumption per account
- Deploy engine: dependency-ordered, concurrency-limited deployment of stacks and their assets
- Bounded deploy/rollback retry loop per stack
- IoC Container: boto3-backed defaults that tests can override
"""

# ============================================================================
# CORE EXPORTS
# ============================================================================

from stackdeploy_lib.exceptions import (
    StackDeployAuthenticationError,
    StackDeployConfigurationError,
    StackDeployContractViolationError,
    StackDeployError,
    StackDeployExpiredTokenError,
    StackDeployToolkitError,
    is_expired_token_error,
)
from stackdeploy_lib.types import Environment, Mode, StackArtifact
from stackdeploy_lib.utils.commands import run_command

try:
    from stackdeploy_lib._version import __version__
except ImportError:
    __version__ = "0.0.0.dev0"

__all__ = [
    # Exceptions
    "StackDeployError",
    "StackDeployConfigurationError",
    "StackDeployAuthenticationError",
    "StackDeployToolkitError",
    "StackDeployContractViolationError",
    "StackDeployExpiredTokenError",
    "is_expired_token_error",
    # Types
    "Environment",
    "Mode",
    "StackArtifact",
    # Utils
    "run_command",
    # Version
    "__version__",
]
