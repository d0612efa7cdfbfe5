"""
AWS credentials and refreshing credential providers.

A credential provider is a zero-argument callable returning the current
AwsCredentials, refreshing them when the previous value is expired or about to
expire. Everything that produces credentials (the default boto3 chain, plugins,
assumed roles) is normalised into this one capability so callers never need to
know where credentials came from.
"""

import threading
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any

from botocore.exceptions import NoCredentialsError
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from stackdeploy_lib.exceptions import StackDeployAuthenticationError

REFRESH_WINDOW = timedelta(minutes=5)


class AwsCredentials(BaseModel):
    """
    A set of AWS credentials.

    Secrets are excluded from ``repr`` so credentials can appear in log lines and
    error messages without leaking.
    """

    model_config = ConfigDict(frozen=True)

    access_key_id: str = Field(min_length=1)
    secret_access_key: str = Field(min_length=1, repr=False)
    session_token: str | None = Field(default=None, repr=False)
    expiration: datetime | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AwsCredentials":
        """
        Build credentials from a dict.

        Accepts the boto3 keyword shape (``aws_access_key_id``...) and the STS
        response shape (``AccessKeyId``...).

        Raises
        ------
            StackDeployAuthenticationError: If the mapping holds no access key pair

        """
        if "aws_access_key_id" in data:
            fields = {
                "access_key_id": data["aws_access_key_id"],
                "secret_access_key": data.get("aws_secret_access_key", ""),
                "session_token": data.get("aws_session_token"),
                "expiration": data.get("expiration"),
            }
        elif "AccessKeyId" in data:
            fields = {
                "access_key_id": data["AccessKeyId"],
                "secret_access_key": data.get("SecretAccessKey", ""),
                "session_token": data.get("SessionToken"),
                "expiration": data.get("Expiration"),
            }
        else:
            raise StackDeployAuthenticationError(f"Mapping does not contain AWS credentials: keys {sorted(data)}")

        try:
            return cls(**fields)
        except ValidationError as e:
            raise StackDeployAuthenticationError(f"Incomplete AWS credentials: {e.error_count()} invalid field(s)") from e

    def to_client_kwargs(self) -> dict[str, str]:
        """Keyword arguments for ``boto3.client`` / ``boto3.Session``."""
        kwargs = {
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
        }
        if self.session_token:
            kwargs["aws_session_token"] = self.session_token
        return kwargs

    def about_to_expire(self, window: timedelta = REFRESH_WINDOW, now: datetime | None = None) -> bool:
        """True when the credentials expire within ``window``; never for non-expiring credentials."""
        if self.expiration is None:
            return False
        expiration = self.expiration
        if expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=timezone.utc)
        now = now or datetime.now(timezone.utc)
        return expiration - now < window


CredentialProvider = Callable[[], AwsCredentials]


def static_provider(credentials: AwsCredentials) -> CredentialProvider:
    """Provider for credentials that never need refreshing."""

    def provide() -> AwsCredentials:
        return credentials

    return provide


class CachingProvider:
    """
    Reuse the last credentials a provider returned until they are about to expire.

    Non-expiring credentials are fetched once and kept forever.
    """

    def __init__(self, source: Callable[[], Any], refresh_window: timedelta = REFRESH_WINDOW) -> None:
        self._source = source
        self._refresh_window = refresh_window
        self._lock = threading.Lock()
        self._current: AwsCredentials | None = None

    def __call__(self) -> AwsCredentials:
        with self._lock:
            if self._current is None or self._current.about_to_expire(self._refresh_window):
                self._current = coerce_credentials(self._source())
            return self._current

    def __repr__(self) -> str:
        return f"CachingProvider(source={self._source!r})"


class RefreshFromPluginProvider:
    """
    Static expiring credentials that go back to the plugin when they run out.

    The plugin must keep returning static credentials; switching to another shape
    on refresh is an authentication error.
    """

    def __init__(self, initial: AwsCredentials, producer: Callable[[], Any]) -> None:
        self._current = initial
        self._producer = producer
        self._lock = threading.Lock()

    def __call__(self) -> AwsCredentials:
        with self._lock:
            if self._current.about_to_expire():
                refreshed = self._producer()
                if not is_static_credentials(refreshed):
                    raise StackDeployAuthenticationError(
                        f"Plugin initially returned static credentials but now returned something else: {refreshed!r}"
                    )
                self._current = coerce_credentials(refreshed)
            return self._current


def refreshable_provider(botocore_credentials: Any) -> CredentialProvider:
    """
    Adapt a self-refreshing botocore-style credentials object.

    The object refreshes itself inside ``get_frozen_credentials()``; each call reads
    a consistent snapshot after that refresh.
    """

    def provide() -> AwsCredentials:
        if botocore_credentials is None:
            raise NoCredentialsError()
        frozen = botocore_credentials.get_frozen_credentials()
        return AwsCredentials(
            access_key_id=frozen.access_key,
            secret_access_key=frozen.secret_key,
            session_token=frozen.token,
        )

    return provide


def is_static_credentials(value: Any) -> bool:
    """True for AwsCredentials instances and credential-shaped mappings."""
    if isinstance(value, AwsCredentials):
        return True
    return isinstance(value, Mapping) and ("aws_access_key_id" in value or "AccessKeyId" in value)


def is_refreshable_credentials(value: Any) -> bool:
    """True for objects exposing botocore's ``get_frozen_credentials()``."""
    return callable(getattr(value, "get_frozen_credentials", None))


def coerce_credentials(value: Any) -> AwsCredentials:
    """Turn a provider's return value into AwsCredentials."""
    if isinstance(value, AwsCredentials):
        return value
    if isinstance(value, Mapping):
        return AwsCredentials.from_mapping(value)
    raise StackDeployAuthenticationError(f"Credential provider returned a value that is not AWS credentials: {value!r}")


def provider_from_plugin(producer: Callable[[], Any]) -> CredentialProvider:
    """
    Query a plugin once and normalise its result into a credential provider.

    - A callable is treated as a provider and made caching, since we cannot know
      whether it caches by itself.
    - Static credentials without expiration are returned as they are.
    - Static credentials with an expiration go back to the plugin when they expire.
    - Self-refreshing (botocore-style) credentials refresh and cache themselves.

    Args:
    ----
        producer: Zero-argument function calling the plugin's ``get_provider``

    Returns:
    -------
        Credential provider

    Raises:
    ------
        StackDeployAuthenticationError: If the plugin returned anything else

    """
    initial = producer()

    if is_static_credentials(initial):
        credentials = coerce_credentials(initial)
        if credentials.expiration is None:
            return static_provider(credentials)
        return RefreshFromPluginProvider(credentials, producer)
    elif is_refreshable_credentials(initial):
        return refreshable_provider(initial)
    elif callable(initial):
        return CachingProvider(initial)
    else:
        raise StackDeployAuthenticationError(f"Plugin returned a value that doesn't resemble AWS credentials: {initial!r}")
