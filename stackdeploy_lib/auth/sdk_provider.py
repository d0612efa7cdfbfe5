"""
SdkProvider: credentialed clients for a target environment.

Behavior is as follows:

- First, a set of "base" credentials is established:
  - If the default (ambient) credentials are for the target account, use those;
  - otherwise ask the credential plugins, in registration order;
  - otherwise note that only credentials for another account (or none) exist.
- Second, a role may need to be assumed, using the base credentials. If that fails
  and the base credentials are known to be for the right account, they are used
  instead (see RoleAssumptionEngine).
"""

from collections.abc import Callable
from typing import Any

import boto3
from loguru import logger

from stackdeploy_lib.auth.assume_role import RoleAssumptionEngine, SdkForEnvironment
from stackdeploy_lib.auth.credentials import CredentialProvider, refreshable_provider
from stackdeploy_lib.auth.outcomes import (
    CredentialOutcome,
    IncorrectDefaultCredentials,
    NoCredentials,
    format_obtain_credentials_error,
)
from stackdeploy_lib.auth.plugins import CredentialPlugins
from stackdeploy_lib.auth.resolver import (
    BaseCredentialResolver,
    CredentialCache,
    EnvironmentResolver,
    SdkFactory,
)
from stackdeploy_lib.auth.sdk import SDK, AccountInfo
from stackdeploy_lib.config.schemas import DEFAULT_REGION, CredentialsOptions
from stackdeploy_lib.exceptions import StackDeployAuthenticationError
from stackdeploy_lib.types.environments import Environment
from stackdeploy_lib.types.modes import Mode

LOGGER = logger.bind(name="stackdeploy_lib.auth.sdk_provider")


def _sdk_factory(verify_ssl: bool) -> SdkFactory:
    def create(credentials: CredentialProvider | None, region: str) -> SDK:
        return SDK(credentials, region, verify_ssl=verify_ssl)

    return create


class SdkProvider:
    """
    Create SDKs appropriate for a given account and region.

    Example:
    -------
        ```python
        provider = SdkProvider.with_default_session(profile="deploy")
        env = provider.resolve_environment(stack.environment)
        result = provider.for_environment(env, Mode.FOR_WRITING)
        cfn = result.sdk.cloudformation()
        ```

    """

    def __init__(
        self,
        default_credentials: CredentialProvider,
        default_region: str = DEFAULT_REGION,
        plugins: CredentialPlugins | None = None,
        fallback_to_base_credentials: bool = True,
        verify_ssl: bool = True,
        sdk_factory: SdkFactory | None = None,
    ) -> None:
        """
        Initialize the provider.

        Args:
        ----
            default_credentials: Ambient credential provider
            default_region: Region used when an environment does not name one
            plugins: Credential plugins; defaults to the process-wide plugin host
            fallback_to_base_credentials: Use base credentials when a role cannot be assumed
            verify_ssl: Verify SSL certificates on every client
            sdk_factory: Builds an SDK from (credentials, region); injectable for tests

        """
        self.default_region = default_region
        self._default_credentials = default_credentials
        self._plugins = plugins or CredentialPlugins()
        self._sdk_factory = sdk_factory or _sdk_factory(verify_ssl)
        self._base = BaseCredentialResolver(
            default_credentials,
            default_region,
            self._plugins,
            self._sdk_factory,
            CredentialCache(),
        )
        self._environments = EnvironmentResolver(self._base, default_region)
        self._roles = RoleAssumptionEngine(self._sdk_factory, fallback_to_base_credentials)

    @classmethod
    def with_default_session(
        cls,
        profile: str | None = None,
        region: str | None = None,
        plugins: CredentialPlugins | None = None,
        fallback_to_base_credentials: bool = True,
        verify_ssl: bool = True,
        session_factory: Callable[..., Any] = boto3.Session,
    ) -> "SdkProvider":
        """
        Create a provider whose defaults come from a boto3 session.

        The session resolves credentials and region the way the AWS CLI does
        (environment variables, shared config and credentials files, SSO, instance
        metadata), optionally for a named profile.
        """
        session = session_factory(profile_name=profile) if profile else session_factory()
        default_region = region or session.region_name or DEFAULT_REGION
        LOGGER.debug(f"Default session: profile={profile or 'default'}, region={default_region}")
        return cls(
            refreshable_provider(session.get_credentials()),
            default_region,
            plugins=plugins,
            fallback_to_base_credentials=fallback_to_base_credentials,
            verify_ssl=verify_ssl,
        )

    @property
    def credential_cache(self) -> CredentialCache:
        return self._base.cache

    def default_account(self) -> AccountInfo | None:
        """The account the ambient credentials belong to, if any."""
        return self._base.default_account()

    def resolve_environment(self, environment: Environment) -> Environment:
        """Replace unknown account/region markers with the ambient defaults."""
        return self._environments.resolve(environment)

    def obtain_base_credentials(self, account_id: str, mode: Mode) -> CredentialOutcome:
        """Base credential outcome for an account, cached per (account, mode)."""
        return self._base.fetch_base(account_id, mode)

    def for_environment(
        self,
        environment: Environment,
        mode: Mode,
        options: CredentialsOptions | None = None,
        quiet: bool = False,
    ) -> SdkForEnvironment:
        """
        Return an SDK which can do operations in the given environment.

        Args:
        ----
            environment: Target environment; sentinels are resolved first
            mode: Reading or writing
            options: Role to assume, if any
            quiet: Log an assume-role fallback at debug level

        Returns:
        -------
            SdkForEnvironment with the SDK and whether a role was assumed

        Raises:
        ------
            StackDeployAuthenticationError: If there are no usable credentials

        """
        env = self.resolve_environment(environment)
        base = self.obtain_base_credentials(env.account, mode)

        if isinstance(base, NoCredentials):
            raise StackDeployAuthenticationError(format_obtain_credentials_error(env.account, base))

        if options is None or options.assume_role_arn is None:
            if isinstance(base, IncorrectDefaultCredentials):
                raise StackDeployAuthenticationError(format_obtain_credentials_error(env.account, base))

            sdk = self._sdk_factory(base.credentials, env.region)
            sdk.validate_credentials()
            return SdkForEnvironment(sdk=sdk, did_assume_role=False)

        return self._roles.assume_role(
            base,
            options.assume_role_arn,
            env.region,
            external_id=options.assume_role_external_id,
            additional_options=options.assume_role_additional_options,
            quiet=quiet,
        )

    def base_credentials_partition(self, environment: Environment, mode: Mode) -> str | None:
        """Partition the base credentials are for; None when there are none."""
        env = self.resolve_environment(environment)
        base = self.obtain_base_credentials(env.account, mode)
        if isinstance(base, NoCredentials):
            return None
        return self._sdk_factory(base.credentials, env.region).current_account().partition

    def __repr__(self) -> str:
        return f"SdkProvider(region={self.default_region}, plugins={list(self._plugins.available_plugin_names)})"
