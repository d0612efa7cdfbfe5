"""
Credential resolution for stackdeploy-lib.

Resolves which AWS credentials to use per target account, region and mode, and
layers role assumption on top of them.
"""

from stackdeploy_lib.auth.assume_role import RoleAssumptionEngine, SdkForEnvironment, safe_username
from stackdeploy_lib.auth.credentials import (
    AwsCredentials,
    CachingProvider,
    CredentialProvider,
    provider_from_plugin,
    static_provider,
)
from stackdeploy_lib.auth.outcomes import (
    CorrectDefaultCredentials,
    CredentialOutcome,
    IncorrectDefaultCredentials,
    NoCredentials,
    PluginCredentials,
)
from stackdeploy_lib.auth.plugins import CredentialPlugins, PluginHost
from stackdeploy_lib.auth.resolver import BaseCredentialResolver, CredentialCache, EnvironmentResolver
from stackdeploy_lib.auth.sdk import SDK, AccountInfo
from stackdeploy_lib.auth.sdk_provider import SdkProvider

__all__ = [
    "SDK",
    "AccountInfo",
    "AwsCredentials",
    "BaseCredentialResolver",
    "CachingProvider",
    "CorrectDefaultCredentials",
    "CredentialCache",
    "CredentialOutcome",
    "CredentialPlugins",
    "CredentialProvider",
    "EnvironmentResolver",
    "IncorrectDefaultCredentials",
    "NoCredentials",
    "PluginCredentials",
    "PluginHost",
    "RoleAssumptionEngine",
    "SdkForEnvironment",
    "SdkProvider",
    "provider_from_plugin",
    "safe_username",
    "static_provider",
]
