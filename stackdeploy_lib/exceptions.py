"""
StackDeploy exception classes.

This module defines custom exceptions for stackdeploy-lib so that callers can tell
deployment failures apart from built-in Python errors, and so that expired
credentials can be recognised anywhere in the credential and deploy path.

All library exceptions follow the naming convention StackDeploy*Error.
"""

from typing import Any

from botocore.exceptions import ClientError

EXPIRED_TOKEN_CODES = frozenset({"ExpiredToken", "ExpiredTokenException"})

BUG_REPORT_HINT = "If you are seeing this error, please report it at the stackdeploy-lib issue tracker."


class StackDeployError(Exception):
    """
    Base exception for all StackDeploy errors.

    All StackDeploy exceptions inherit from this, allowing users to catch every
    library-specific error with a single except clause while not catching unrelated
    Python errors.
    """

    pass


class StackDeployConfigurationError(StackDeployError):
    """
    Raised when options, settings files or collaborator wiring are invalid.

    Example:
    -------
        >>> load_settings(Path("broken.yaml"))
        StackDeployConfigurationError: Invalid settings file broken.yaml: ...

    """

    pass


class StackDeployAuthenticationError(StackDeployError):
    """
    Raised when no usable credentials can be obtained for a target account.

    This covers missing credentials, default credentials for the wrong account,
    a failed role assumption without a viable fallback, and credential plugins
    returning values that do not look like AWS credentials.

    Example:
    -------
        >>> sdk_provider.for_environment(env, Mode.FOR_WRITING)
        StackDeployAuthenticationError: Need to perform AWS calls for account 111111111111,
        but no credentials have been configured, and none of these plugins found any: sso

    """

    pass


class StackDeployToolkitError(StackDeployError):
    """Raised for user-facing fatal deploy, rollback and destroy failures."""

    pass


class StackDeployContractViolationError(StackDeployToolkitError):
    """
    Raised when a collaborator breaks its contract with the deploy engine.

    These errors are meant to be unreachable: a deploy loop that does not settle in
    two iterations, or a provisioning call returning an unrecognised outcome.
    """

    def __init__(self, message: str) -> None:
        super().__init__(f"{message}. {BUG_REPORT_HINT}")


class StackDeployExpiredTokenError(StackDeployError):
    """
    Raised by non-botocore collaborators to signal an expired session token.

    The library never catches, wraps or retries this error; it always reaches the
    caller unchanged so the user knows to re-authenticate.
    """

    name = "ExpiredToken"


def error_code(exc: BaseException) -> str | None:
    """Return the AWS error code carried by an exception, if any."""
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code")
    name: Any = getattr(exc, "name", None)
    return name if isinstance(name, str) else None


def is_expired_token_error(exc: BaseException) -> bool:
    """
    Check whether an exception means the caller's credentials have expired.

    Args:
    ----
        exc: Any exception raised by boto3, a credential plugin or a collaborator

    Returns:
    -------
        True for botocore ClientErrors with an expired-token code,
        StackDeployExpiredTokenError, or any exception named "ExpiredToken"

    """
    if isinstance(exc, StackDeployExpiredTokenError):
        return True
    return error_code(exc) in EXPIRED_TOKEN_CODES
