"""
Protocol definitions for stackdeploy-lib.

These protocols define the contracts of the collaborators the credential and deploy
engine orchestrates: credential plugins, the provisioning API, asset publishing and
template diffing. The engine only ever calls these; default boto3-backed
implementations live in ``stackdeploy_lib.adapters``.

All protocols follow PEP 544 (Structural Subtyping / Protocol).
"""

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from stackdeploy_lib.deploy.outcomes import DeployOutcome, DeployStackRequest, RollbackResult
    from stackdeploy_lib.types.artifacts import AssetEntry, StackArtifact
    from stackdeploy_lib.types.modes import Mode, RequireApproval


@runtime_checkable
class CredentialProviderSource(Protocol):
    """
    Protocol for credential plugins.

    ``get_provider`` may return any of:
    - a zero-argument callable returning credentials (a provider)
    - static credentials (``AwsCredentials`` or a dict with ``aws_access_key_id``,
      ``aws_secret_access_key`` and optional ``aws_session_token`` / ``expiration``)
    - a botocore-style self-refreshing credentials object (``get_frozen_credentials()``)
    """

    name: str

    def is_available(self) -> bool:
        """Whether the plugin can be used at all in this process."""
        ...

    def can_provide_credentials(self, account_id: str) -> bool:
        """Whether the plugin has credentials for the given account."""
        ...

    def get_provider(self, account_id: str, mode: "Mode", options: dict[str, Any]) -> Any:
        """Return credentials, or something that produces them, for the account."""
        ...


@runtime_checkable
class Deployments(Protocol):
    """
    Protocol for the provisioning API.

    Implementations:
    - adapters/cloudformation.py - AWS CloudFormation through boto3
    """

    def stack_exists(self, stack: "StackArtifact", role_arn: str | None = None) -> bool:
        """Whether the stack is currently provisioned."""
        ...

    def read_current_template(self, stack: "StackArtifact") -> dict[str, Any]:
        """Return the deployed template, or an empty dict when the stack does not exist."""
        ...

    def deploy_stack(self, request: "DeployStackRequest") -> "DeployOutcome":
        """
        Perform one provisioning attempt.

        Returns
        -------
            DidDeployStack, NeedRollbackFirst or ReplacementRequiresRollback

        """
        ...

    def rollback_stack(
        self,
        stack: "StackArtifact",
        role_arn: str | None = None,
        toolkit_stack_name: str | None = None,
        force: bool = False,
        orphan_logical_ids: list[str] | None = None,
        validate_bootstrap_stack_version: bool = True,
    ) -> "RollbackResult":
        """Roll back a stack stuck in a failed state."""
        ...

    def destroy_stack(self, stack: "StackArtifact", role_arn: str | None = None) -> None:
        """Delete the stack; a missing stack is a no-op."""
        ...


@runtime_checkable
class AssetPublisher(Protocol):
    """
    Protocol for building and publishing stack assets.

    Credentials come from the asset's publishing role, else the stack's deploy role.
    The CloudFormation execution role never applies to assets.

    Implementations:
    - adapters/assets.py - S3 uploads and Docker/ECR pushes
    """

    def build_single_asset(self, asset: "AssetEntry", stack: "StackArtifact") -> None:
        """Build (package) an asset locally."""
        ...

    def publish_single_asset(self, asset: "AssetEntry", stack: "StackArtifact") -> None:
        """Upload a built asset to its destination."""
        ...

    def is_single_asset_published(self, asset: "AssetEntry", stack: "StackArtifact") -> bool:
        """Whether the asset already exists at its destination."""
        ...


@runtime_checkable
class TemplateDiffer(Protocol):
    """Protocol for the template diff engine, reduced to the approval question."""

    def requires_approval(
        self,
        current_template: dict[str, Any],
        stack: "StackArtifact",
        require_approval: "RequireApproval",
    ) -> bool:
        """Whether the change from the current template needs a human to approve it."""
        ...
