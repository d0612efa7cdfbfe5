"""
Base credential outcomes.

Resolving base credentials for an account never raises for "wrong account" or
"no plugin"; it returns one of four variants instead. Only CorrectDefaultCredentials
and PluginCredentials carry credentials that are usable for the target account.
The other two explain why there are none and are turned into user-facing errors by
the caller.
"""

from pydantic import BaseModel, ConfigDict

from stackdeploy_lib.auth.credentials import CredentialProvider


class CorrectDefaultCredentials(BaseModel):
    """The ambient credentials belong to the target account."""

    model_config = ConfigDict(frozen=True)

    credentials: CredentialProvider


class PluginCredentials(BaseModel):
    """A credential plugin supplied credentials for the target account."""

    model_config = ConfigDict(frozen=True)

    credentials: CredentialProvider
    plugin_name: str


class IncorrectDefaultCredentials(BaseModel):
    """Only ambient credentials for another account are available."""

    model_config = ConfigDict(frozen=True)

    credentials: CredentialProvider
    account_id: str
    unused_plugins: tuple[str, ...] = ()


class NoCredentials(BaseModel):
    """Neither ambient credentials nor a plugin are available."""

    model_config = ConfigDict(frozen=True)

    unused_plugins: tuple[str, ...] = ()


CredentialOutcome = CorrectDefaultCredentials | PluginCredentials | IncorrectDefaultCredentials | NoCredentials


def usable_credentials(outcome: CredentialOutcome) -> CredentialProvider | None:
    """Credentials that are valid for the target account, if the outcome has any."""
    if isinstance(outcome, (CorrectDefaultCredentials, PluginCredentials)):
        return outcome.credentials
    return None


def describe_credentials_source(outcome: CredentialOutcome) -> str:
    """
    Describe where base credentials came from, for assume-role messages.

    Returns
    -------
        "current credentials", "credentials returned by plugin 'x'", a note that the
        current credentials belong to another account, or "" when there are none

    """
    if isinstance(outcome, CorrectDefaultCredentials):
        return "current credentials"
    elif isinstance(outcome, PluginCredentials):
        return f"credentials returned by plugin '{outcome.plugin_name}'"
    elif isinstance(outcome, IncorrectDefaultCredentials):
        msg = f"current credentials (which are for account {outcome.account_id}"
        if outcome.unused_plugins:
            msg += f", and none of the following plugins provided credentials: {', '.join(outcome.unused_plugins)}"
        return msg + ")"
    elif isinstance(outcome, NoCredentials):
        return ""
    else:
        raise TypeError(f"Unknown credential outcome: {outcome!r}")


def format_obtain_credentials_error(target_account_id: str, outcome: CredentialOutcome) -> str:
    """
    Explain why no usable credentials exist for an account.

    Example:
    -------
        >>> format_obtain_credentials_error("111111111111", NoCredentials(unused_plugins=("sso",)))
        'Need to perform AWS calls for account 111111111111, but no credentials have been configured,
        and none of these plugins found any: sso'

    """
    msg = [f"Need to perform AWS calls for account {target_account_id}"]
    if isinstance(outcome, IncorrectDefaultCredentials):
        msg.append(f"but the current credentials are for {outcome.account_id}")
    elif isinstance(outcome, NoCredentials):
        msg.append("but no credentials have been configured")

    unused = getattr(outcome, "unused_plugins", ())
    if unused:
        msg.append(f"and none of these plugins found any: {', '.join(unused)}")
    return ", ".join(msg)
