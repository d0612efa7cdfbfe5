"""
Dependency injection container for stackdeploy-lib.

Wires the boto3-backed defaults: settings from stackdeploy.yaml, the process-wide
credential plugin host, an SdkProvider on the default boto3 session, and the
CloudFormation and asset adapters behind the Toolkit.
Uses dependency-injector for clean DI with singletons.
"""

from dependency_injector import containers, providers

from stackdeploy_lib.adapters.assets import AwsAssetPublisher
from stackdeploy_lib.adapters.cloudformation import CloudFormationDeployments
from stackdeploy_lib.auth.plugins import CredentialPlugins, PluginHost
from stackdeploy_lib.auth.sdk_provider import SdkProvider
from stackdeploy_lib.config.loaders import load_settings
from stackdeploy_lib.config.schemas import ToolkitSettings
from stackdeploy_lib.deploy.confirmation import UserConfirmation
from stackdeploy_lib.deploy.diff import SecurityChangeDetector
from stackdeploy_lib.deploy.toolkit import Toolkit


def _build_sdk_provider(settings: ToolkitSettings, host: PluginHost) -> SdkProvider:
    return SdkProvider.with_default_session(
        profile=settings.profile,
        region=settings.region,
        plugins=CredentialPlugins(host),
        fallback_to_base_credentials=settings.fallback_to_base_credentials,
        verify_ssl=settings.verify_ssl,
    )


class StackDeployIoCContainer(containers.DeclarativeContainer):
    """
    Inversion of Control (IoC) container for stackdeploy-lib.

    Every provider can be overridden, which is how tests swap in fakes.

    Example:
    -------
        ```python
        from stackdeploy_lib.container import StackDeployIoCContainer

        container = StackDeployIoCContainer()

        # Toolkit wired to CloudFormation (new instance per call)
        toolkit = container.toolkit()
        toolkit.deploy(stacks)

        # Override in tests
        container.sdk_provider.override(mock_provider)
        ```

    """

    # Singleton: settings file (stackdeploy.yaml in the working directory)
    settings = providers.Singleton(load_settings)

    # Singleton: process-wide credential plugin registry
    plugin_host = providers.Singleton(PluginHost.instance)

    # Singleton: credentialed SDKs for any environment
    sdk_provider = providers.Singleton(_build_sdk_provider, settings=settings, host=plugin_host)

    deployments = providers.Singleton(CloudFormationDeployments, sdk_provider=sdk_provider)

    asset_publisher = providers.Singleton(AwsAssetPublisher, sdk_provider=sdk_provider)

    template_differ = providers.Singleton(SecurityChangeDetector)

    confirmation = providers.Singleton(UserConfirmation)

    # Factory: a new Toolkit per call, sharing the singleton collaborators
    toolkit = providers.Factory(
        Toolkit,
        deployments=deployments,
        asset_publisher=asset_publisher,
        template_differ=template_differ,
        confirmation=confirmation,
        default_options=settings.provided.deploy,
    )


# Global singleton container instance
container = StackDeployIoCContainer()


def get_sdk_provider() -> SdkProvider:
    """
    Get the SdkProvider (singleton).

    Example:
    -------
        ```python
        from stackdeploy_lib.container import get_sdk_provider

        provider = get_sdk_provider()
        sdk = provider.for_environment(stack.environment, Mode.FOR_READING).sdk
        ```

    """
    return container.sdk_provider()


def get_plugin_host() -> PluginHost:
    """
    Get the credential plugin host (singleton).

    Example:
    -------
        ```python
        from stackdeploy_lib.container import get_plugin_host

        get_plugin_host().register_credential_source(MyPlugin())
        ```

    """
    return container.plugin_host()


def get_toolkit() -> Toolkit:
    """Get a Toolkit wired to the container's collaborators."""
    return container.toolkit()
