"""
Credential plugins.

Credential plugins are untrusted collaborators. Their availability and capability
checks run behind a boundary that logs and downgrades any exception to "no", so one
misbehaving plugin never stops resolution through a later, well-behaved one.
"""

import threading
from collections.abc import Callable
from typing import Any

from loguru import logger

from stackdeploy_lib.auth.credentials import provider_from_plugin
from stackdeploy_lib.auth.outcomes import PluginCredentials
from stackdeploy_lib.exceptions import is_expired_token_error
from stackdeploy_lib.protocols import CredentialProviderSource
from stackdeploy_lib.types.modes import Mode

LOGGER = logger.bind(name="stackdeploy_lib.auth.plugins")


class PluginHost:
    """
    Registry of credential provider sources.

    Sources are consulted in registration order. A process-wide default host is
    available through ``PluginHost.instance()``; tests and embedders can pass their
    own host to ``CredentialPlugins`` instead.
    """

    _instance: "PluginHost | None" = None
    _instance_lock = threading.Lock()

    def __init__(self) -> None:
        self._sources: list[CredentialProviderSource] = []

    @classmethod
    def instance(cls) -> "PluginHost":
        """Return the process-wide plugin host."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @property
    def credential_sources(self) -> list[CredentialProviderSource]:
        return list(self._sources)

    def register_credential_source(self, source: CredentialProviderSource) -> None:
        """Add a credential source after the ones already registered."""
        LOGGER.debug(f"Registering credential source: {source.name}")
        self._sources.append(source)


def _ask_plugin(source: CredentialProviderSource, what: str, call: Callable[[], Any]) -> bool:
    """Call a plugin check, treating any exception as a "no"."""
    try:
        return bool(call())
    except Exception as e:
        if is_expired_token_error(e):
            raise
        LOGGER.warning(f"Uncaught exception in {source.name}: {e}")
        LOGGER.debug(f"{source.name}.{what} failed with {type(e).__name__}")
        return False


class CredentialPlugins:
    """
    Look up credentials for an account through the registered plugins.

    Example:
    -------
        ```python
        plugins = CredentialPlugins(host)
        found = plugins.fetch_credentials_for("123456789012", Mode.FOR_WRITING)
        if found is not None:
            creds = found.credentials()
        ```

    """

    def __init__(self, host: PluginHost | None = None) -> None:
        self._host = host or PluginHost.instance()

    @property
    def available_plugin_names(self) -> tuple[str, ...]:
        return tuple(source.name for source in self._host.credential_sources)

    def fetch_credentials_for(self, account_id: str, mode: Mode) -> PluginCredentials | None:
        """
        Return credentials from the first plugin that can provide them.

        Args:
        ----
            account_id: Target AWS account id
            mode: Reading or writing

        Returns:
        -------
            PluginCredentials, or None when no plugin can provide credentials

        Raises:
        ------
            StackDeployAuthenticationError: If the chosen plugin returns something that
                is not a credential shape

        """
        for source in self._host.credential_sources:
            if not _ask_plugin(source, "is_available", source.is_available):
                LOGGER.debug(f"Credentials source {source.name} is not available, ignoring it.")
                continue

            if not _ask_plugin(source, "can_provide_credentials", lambda: source.can_provide_credentials(account_id)):
                continue

            LOGGER.debug(f"Using {source.name} credentials for account {account_id}")
            provider = provider_from_plugin(
                lambda: source.get_provider(account_id, mode, {"supports_providers": True}),
            )
            return PluginCredentials(credentials=provider, plugin_name=source.name)

        return None
