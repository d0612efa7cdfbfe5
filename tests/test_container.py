"""Tests for the DI container wiring."""

from unittest.mock import MagicMock, patch

import pytest

from stackdeploy_lib.adapters.assets import AwsAssetPublisher
from stackdeploy_lib.adapters.cloudformation import CloudFormationDeployments
from stackdeploy_lib.auth.plugins import PluginHost
from stackdeploy_lib.config.schemas import DeployOptions, ToolkitSettings
from stackdeploy_lib.container import StackDeployIoCContainer
from stackdeploy_lib.deploy.diff import SecurityChangeDetector
from stackdeploy_lib.deploy.toolkit import Toolkit


@pytest.fixture
def container():
    container = StackDeployIoCContainer()
    yield container
    container.reset_singletons()


class TestContainerWiring:
    """Test the default collaborators."""

    def test_adapters_share_sdk_provider(self, container):
        """Test that both adapters get the singleton SdkProvider."""
        sdk_provider = MagicMock(name="sdk_provider")
        container.sdk_provider.override(sdk_provider)

        deployments = container.deployments()
        publisher = container.asset_publisher()

        assert isinstance(deployments, CloudFormationDeployments)
        assert isinstance(publisher, AwsAssetPublisher)
        assert deployments._sdk_provider is sdk_provider
        assert publisher._sdk_provider is sdk_provider

    def test_toolkit_is_a_factory(self, container):
        """Test that every call builds a new Toolkit over the same collaborators."""
        container.sdk_provider.override(MagicMock())
        container.settings.override(ToolkitSettings())

        first, second = container.toolkit(), container.toolkit()

        assert isinstance(first, Toolkit)
        assert first is not second
        assert first._deployments is second._deployments
        assert isinstance(first._differ, SecurityChangeDetector)

    def test_toolkit_uses_deploy_settings(self, container):
        """Test that the settings file's deploy section becomes the Toolkit's default options."""
        container.sdk_provider.override(MagicMock())
        container.settings.override(ToolkitSettings(deploy=DeployOptions(concurrency=3)))

        toolkit = container.toolkit()

        assert toolkit._default_options.concurrency == 3

    def test_plugin_host_is_process_wide(self, container):
        """Test that the container hands out the process-wide plugin host."""
        assert container.plugin_host() is PluginHost.instance()

    @patch("stackdeploy_lib.container.SdkProvider.with_default_session")
    def test_sdk_provider_from_settings(self, mock_with_default_session, container):
        """Test that settings flow into the default session."""
        container.settings.override(
            ToolkitSettings(profile="deploy", region="eu-west-1", fallback_to_base_credentials=False, verify_ssl=False)
        )

        assert container.sdk_provider() is mock_with_default_session.return_value
        assert container.sdk_provider() is mock_with_default_session.return_value

        mock_with_default_session.assert_called_once()
        kwargs = mock_with_default_session.call_args.kwargs
        assert kwargs["profile"] == "deploy"
        assert kwargs["region"] == "eu-west-1"
        assert kwargs["fallback_to_base_credentials"] is False
        assert kwargs["verify_ssl"] is False

    def test_settings_loaded_from_working_directory(self, container, tmp_path, monkeypatch):
        """Test that the settings provider reads ./stackdeploy.yaml."""
        (tmp_path / "stackdeploy.yaml").write_text("profile: ci\n")
        monkeypatch.chdir(tmp_path)
        assert container.settings().profile == "ci"
