"""
Base credential resolution and environment resolution.

BaseCredentialResolver decides, per target account and mode, which credentials are
authoritative: the ambient (default) credentials when they belong to that account,
otherwise the first credential plugin that can supply them. Outcomes are cached per
(account, mode), failure outcomes included, so plugins are queried once per key.
"""

from collections.abc import Callable

from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from stackdeploy_lib.auth.credentials import CredentialProvider
from stackdeploy_lib.auth.outcomes import (
    CorrectDefaultCredentials,
    CredentialOutcome,
    IncorrectDefaultCredentials,
    NoCredentials,
)
from stackdeploy_lib.auth.plugins import CredentialPlugins
from stackdeploy_lib.auth.sdk import SDK, AccountInfo
from stackdeploy_lib.exceptions import (
    StackDeployAuthenticationError,
    StackDeployExpiredTokenError,
    is_expired_token_error,
)
from stackdeploy_lib.types.environments import UNKNOWN_ACCOUNT, UNKNOWN_REGION, Environment
from stackdeploy_lib.types.modes import Mode
from stackdeploy_lib.utils.cache import KeyedCache, SingleEntryCache

LOGGER = logger.bind(name="stackdeploy_lib.auth.resolver")

SdkFactory = Callable[[CredentialProvider | None, str], SDK]


class CredentialCache:
    """Resolved credential outcomes keyed by ``account|mode``."""

    def __init__(self) -> None:
        self._entries: KeyedCache[CredentialOutcome] = KeyedCache()

    @staticmethod
    def key(account_id: str, mode: Mode) -> str:
        return f"{account_id}|{mode.value}"

    def get(self, account_id: str, mode: Mode, resolve: Callable[[], CredentialOutcome]) -> CredentialOutcome:
        """Return the cached outcome for the key, resolving it on first use."""
        return self._entries.get(self.key(account_id, mode), resolve)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class BaseCredentialResolver:
    """
    Resolve the base credentials for a target account.

    Example:
    -------
        ```python
        resolver = BaseCredentialResolver(default_credentials, "eu-west-1", CredentialPlugins())
        outcome = resolver.fetch_base("123456789012", Mode.FOR_WRITING)
        if isinstance(outcome, PluginCredentials):
            print(f"Using credentials from {outcome.plugin_name}")
        ```

    """

    def __init__(
        self,
        default_credentials: CredentialProvider,
        default_region: str,
        plugins: CredentialPlugins,
        sdk_factory: SdkFactory,
        cache: CredentialCache | None = None,
    ) -> None:
        self._default_credentials = default_credentials
        self._default_region = default_region
        self._plugins = plugins
        self._sdk_factory = sdk_factory
        self._cache = cache or CredentialCache()
        self._default_account: SingleEntryCache[AccountInfo | None] = SingleEntryCache()

    @property
    def cache(self) -> CredentialCache:
        return self._cache

    def default_account(self) -> AccountInfo | None:
        """
        The account the ambient credentials belong to.

        Looked up with one STS call per process. Returns None when there are no
        ambient credentials, or when they have expired.
        """
        try:
            return self._default_account.get(self._lookup_default_account)
        except Exception as e:
            if is_expired_token_error(e):
                return None
            raise

    def raise_if_default_expired(self) -> None:
        """Re-raise the expired-token error the default account lookup hit, if any."""
        failure = self._default_account.failure
        if failure is not None and is_expired_token_error(failure):
            raise failure

    def _lookup_default_account(self) -> AccountInfo | None:
        try:
            return self._sdk_factory(self._default_credentials, self._default_region).current_account()
        except (ClientError, BotoCoreError, StackDeployExpiredTokenError) as e:
            if is_expired_token_error(e):
                LOGGER.warning(
                    "There are expired AWS credentials in your environment. "
                    "Continuing without current account information."
                )
                raise
            LOGGER.debug(f"Unable to determine the default AWS account ({type(e).__name__}): {e}")
            return None

    def fetch_base(self, account_id: str, mode: Mode) -> CredentialOutcome:
        """
        Return the base credential outcome for an account.

        Args:
        ----
            account_id: Target AWS account id
            mode: Reading or writing

        Returns:
        -------
            CorrectDefaultCredentials, PluginCredentials, IncorrectDefaultCredentials
            or NoCredentials

        Raises:
        ------
            Expired-token errors from the ambient credentials, unchanged, when no plugin
            can stand in for them

        """
        return self._cache.get(account_id, mode, lambda: self._resolve(account_id, mode))

    def _resolve(self, account_id: str, mode: Mode) -> CredentialOutcome:
        default = self.default_account()
        if default is not None and default.account_id == account_id:
            LOGGER.debug(f"Default credentials are for account {account_id}")
            return CorrectDefaultCredentials(credentials=self._default_credentials)

        plugin_credentials = self._plugins.fetch_credentials_for(account_id, mode)
        if plugin_credentials is not None:
            return plugin_credentials

        if default is not None:
            return IncorrectDefaultCredentials(
                credentials=self._default_credentials,
                account_id=default.account_id,
                unused_plugins=self._plugins.available_plugin_names,
            )

        self.raise_if_default_expired()
        return NoCredentials(unused_plugins=self._plugins.available_plugin_names)


class EnvironmentResolver:
    """Replace the unknown-account and unknown-region sentinels with concrete values."""

    def __init__(self, accounts: BaseCredentialResolver, default_region: str) -> None:
        self._accounts = accounts
        self._default_region = default_region

    def resolve(self, env: Environment) -> Environment:
        """
        Resolve an environment against the ambient configuration.

        Raises
        ------
            StackDeployAuthenticationError: If the account is unknown and there are no
                ambient credentials to infer it from

        """
        region = env.region if env.region != UNKNOWN_REGION else self._default_region

        account: str | None = env.account
        if account == UNKNOWN_ACCOUNT:
            default = self._accounts.default_account()
            if default is None:
                self._accounts.raise_if_default_expired()
            account = default.account_id if default is not None else None

        if not account:
            raise StackDeployAuthenticationError(
                "Unable to resolve AWS account to use. It must be either configured when you define "
                "your stack, or through the environment"
            )
        return Environment.make(account, region)
