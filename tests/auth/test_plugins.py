"""Tests for the credential plugin host and plugin lookups."""

from typing import Any

import pytest

from stackdeploy_lib.auth.plugins import CredentialPlugins, PluginHost
from stackdeploy_lib.exceptions import StackDeployAuthenticationError, StackDeployExpiredTokenError
from stackdeploy_lib.protocols import CredentialProviderSource
from stackdeploy_lib.types.modes import Mode

ACCOUNT = "111111111111"


class FakePlugin:
    """Credential source with scripted answers."""

    def __init__(
        self,
        name: str,
        available: Any = True,
        can_provide: Any = True,
        provider: Any = None,
    ) -> None:
        self.name = name
        self._available = available
        self._can_provide = can_provide
        self._provider = provider or {"aws_access_key_id": f"AKIA-{name}", "aws_secret_access_key": "secret"}
        self.provider_calls: list[tuple[str, Mode, dict[str, Any]]] = []

    def is_available(self) -> bool:
        if isinstance(self._available, BaseException):
            raise self._available
        return self._available

    def can_provide_credentials(self, account_id: str) -> bool:
        if isinstance(self._can_provide, BaseException):
            raise self._can_provide
        return self._can_provide

    def get_provider(self, account_id: str, mode: Mode, options: dict[str, Any]) -> Any:
        self.provider_calls.append((account_id, mode, options))
        if isinstance(self._provider, BaseException):
            raise self._provider
        return self._provider


@pytest.fixture
def host():
    return PluginHost()


class TestPluginHost:
    """Tests for PluginHost."""

    def test_registration_order(self, host):
        """Test that sources are kept in registration order."""
        host.register_credential_source(FakePlugin("first"))
        host.register_credential_source(FakePlugin("second"))
        assert [source.name for source in host.credential_sources] == ["first", "second"]

    def test_credential_sources_is_a_copy(self, host):
        """Test that callers cannot mutate the registry through the property."""
        host.credential_sources.append(FakePlugin("sneaky"))
        assert host.credential_sources == []

    def test_instance_is_shared(self):
        """Test that instance() returns the process-wide host."""
        assert PluginHost.instance() is PluginHost.instance()

    def test_fake_plugin_satisfies_protocol(self):
        """Test that the protocol is structural."""
        assert isinstance(FakePlugin("p"), CredentialProviderSource)


class TestCredentialPlugins:
    """Tests for CredentialPlugins lookups."""

    def test_no_plugins(self, host):
        """Test that no plugins means no credentials."""
        plugins = CredentialPlugins(host)
        assert plugins.fetch_credentials_for(ACCOUNT, Mode.FOR_READING) is None
        assert plugins.available_plugin_names == ()

    def test_first_capable_plugin_wins(self, host):
        """Test registration order precedence."""
        first, second = FakePlugin("first"), FakePlugin("second")
        host.register_credential_source(first)
        host.register_credential_source(second)

        found = CredentialPlugins(host).fetch_credentials_for(ACCOUNT, Mode.FOR_WRITING)

        assert found.plugin_name == "first"
        assert found.credentials().access_key_id == "AKIA-first"
        assert second.provider_calls == []

    def test_unavailable_and_incapable_plugins_are_skipped(self, host):
        """Test that a plugin is used only when available and capable."""
        host.register_credential_source(FakePlugin("unavailable", available=False))
        host.register_credential_source(FakePlugin("incapable", can_provide=False))
        host.register_credential_source(FakePlugin("capable"))

        found = CredentialPlugins(host).fetch_credentials_for(ACCOUNT, Mode.FOR_READING)
        assert found.plugin_name == "capable"

    def test_passes_account_mode_and_options(self, host):
        """Test the get_provider call arguments."""
        plugin = FakePlugin("p")
        host.register_credential_source(plugin)

        CredentialPlugins(host).fetch_credentials_for(ACCOUNT, Mode.FOR_WRITING)

        assert plugin.provider_calls == [(ACCOUNT, Mode.FOR_WRITING, {"supports_providers": True})]

    @pytest.mark.parametrize("failing", ["available", "can_provide"])
    def test_plugin_exception_is_isolated(self, host, log_records, failing):
        """Test that a throwing plugin is treated as "no" and a later plugin is used."""
        kwargs = {failing: RuntimeError("plugin exploded")}
        host.register_credential_source(FakePlugin("broken", **kwargs))
        host.register_credential_source(FakePlugin("good"))

        found = CredentialPlugins(host).fetch_credentials_for(ACCOUNT, Mode.FOR_READING)

        assert found.plugin_name == "good"
        assert ("WARNING", "Uncaught exception in broken: plugin exploded") in log_records

    def test_expired_token_from_plugin_check_propagates(self, host):
        """Test that expired-token errors are never downgraded."""
        error = StackDeployExpiredTokenError("expired")
        host.register_credential_source(FakePlugin("expired", can_provide=error))
        host.register_credential_source(FakePlugin("good"))

        with pytest.raises(StackDeployExpiredTokenError) as exc_info:
            CredentialPlugins(host).fetch_credentials_for(ACCOUNT, Mode.FOR_READING)
        assert exc_info.value is error

    def test_expired_token_from_get_provider_propagates(self, host, client_error):
        """Test that get_provider errors propagate unchanged."""
        error = client_error("ExpiredToken")
        host.register_credential_source(FakePlugin("expired", provider=error))

        with pytest.raises(type(error)) as exc_info:
            CredentialPlugins(host).fetch_credentials_for(ACCOUNT, Mode.FOR_READING)
        assert exc_info.value is error

    def test_unrecognised_result(self, host):
        """Test that a non-credential result is an authentication error."""
        host.register_credential_source(FakePlugin("weird", provider=42))
        with pytest.raises(StackDeployAuthenticationError, match="doesn't resemble AWS credentials"):
            CredentialPlugins(host).fetch_credentials_for(ACCOUNT, Mode.FOR_READING)
