"""
Configuration schemas for stackdeploy-lib.

This module defines Pydantic models for:
- Deploy, rollback and destroy options
- Role assumption options for credentialed clients
- Per-category concurrency ceilings of the work graph
- Toolkit settings files (stackdeploy.yaml)
"""

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from stackdeploy_lib.types.modes import (
    AssetBuildTime,
    HotswapMode,
    RequireApproval,
    StackActivityProgress,
)

DEFAULT_REGION = "us-east-1"
DEFAULT_TOOLKIT_STACK_NAME = "StackDeployToolkit"
DEFAULT_CHANGE_SET_NAME = "stackdeploy-deploy-change-set"


class DeploymentMethodKind(str, Enum):
    """How a stack update is submitted."""

    CHANGE_SET = "change-set"
    DIRECT = "direct"


class DeploymentMethod(BaseModel):
    """
    Deployment method.

    Examples
    --------
        Change set (default):
            kind: change-set
            change_set_name: stackdeploy-deploy-change-set
            execute: true

        Direct:
            kind: direct

    """

    model_config = ConfigDict(frozen=True)

    kind: DeploymentMethodKind = DeploymentMethodKind.CHANGE_SET
    change_set_name: str = DEFAULT_CHANGE_SET_NAME
    execute: Annotated[bool, Field(default=True, description="Execute the change set after creating it")]


class CredentialsOptions(BaseModel):
    """Role to assume when creating a credentialed client for an environment."""

    model_config = ConfigDict(frozen=True)

    assume_role_arn: str | None = None
    assume_role_external_id: str | None = None
    assume_role_additional_options: dict[str, Any] | None = Field(
        default=None,
        description="Extra sts:AssumeRole parameters such as Tags or DurationSeconds",
    )


class DeployOptions(BaseModel):
    """Options for deploying a set of stacks."""

    role_arn: str | None = Field(default=None, description="Role passed to CloudFormation for provisioning")
    tags: dict[str, str] = Field(default_factory=dict, description="Tags for every stack; stack tags when empty")
    parameters: dict[str, str | None] = Field(
        default_factory=dict,
        description="Template parameters; 'Stack:Param' keys apply to one stack, 'Param' keys to all",
    )
    notification_arns: list[str] | None = None

    require_approval: RequireApproval = RequireApproval.BROADENING
    concurrency: Annotated[int, Field(default=1, ge=1, description="Stacks deployed in parallel")]
    asset_parallelism: bool = True
    asset_build_time: AssetBuildTime = AssetBuildTime.ALL_BEFORE_DEPLOY
    rollback: bool = True
    hotswap: HotswapMode = HotswapMode.FULL_DEPLOYMENT
    deployment_method: DeploymentMethod = Field(default_factory=DeploymentMethod)

    force: bool = False
    progress: StackActivityProgress | None = None
    outputs_file: str | None = None
    toolkit_stack_name: str = DEFAULT_TOOLKIT_STACK_NAME
    reuse_assets: list[str] = Field(default_factory=list)
    use_previous_parameters: bool = True
    ci: bool = False

    @property
    def effective_progress(self) -> StackActivityProgress | None:
        """Progress mode actually used; parallel deploys only support event output."""
        if self.concurrency > 1:
            return StackActivityProgress.EVENTS
        return self.progress


class RollbackOptions(BaseModel):
    """Options for rolling back stacks."""

    role_arn: str | None = None
    toolkit_stack_name: str = DEFAULT_TOOLKIT_STACK_NAME
    force: bool = False
    orphan_logical_ids: list[str] = Field(default_factory=list)
    validate_bootstrap_stack_version: bool = True


class DestroyOptions(BaseModel):
    """Options for destroying stacks."""

    role_arn: str | None = None
    force: bool = False
    from_deploy: Annotated[bool, Field(default=False, description="Destroy runs as part of a deploy")]
    ci: bool = False


class GraphConcurrency(BaseModel):
    """Concurrency ceiling per work-graph node category."""

    model_config = ConfigDict(frozen=True)

    stack: Annotated[int, Field(default=1, ge=1)]
    asset_build: Annotated[int, Field(default=1, ge=1, description="CPU/Docker bound")]
    asset_publish: Annotated[int, Field(default=8, ge=1, description="Network I/O bound")]

    @classmethod
    def from_deploy_options(cls, options: DeployOptions) -> "GraphConcurrency":
        return cls(
            stack=options.concurrency,
            asset_build=1,
            asset_publish=8 if options.asset_parallelism else 1,
        )


class ToolkitSettings(BaseModel):
    """
    Toolkit settings file (stackdeploy.yaml).

    Examples
    --------
        profile: deploy
        region: eu-west-1
        fallback_to_base_credentials: true
        verify_ssl: true
        deploy:
          concurrency: 2
          require_approval: any-change

    """

    model_config = ConfigDict(extra="forbid")

    profile: str | None = Field(default=None, description="AWS CLI profile for the default credentials")
    region: str | None = Field(default=None, description="Default region override")
    fallback_to_base_credentials: Annotated[
        bool,
        Field(default=True, description="Use base credentials when the deploy role cannot be assumed"),
    ]
    verify_ssl: bool = True
    deploy: DeployOptions = Field(default_factory=DeployOptions)

    @model_validator(mode="after")
    def validate_region(self) -> "ToolkitSettings":
        """Reject blank region overrides."""
        if self.region is not None and not self.region.strip():
            raise ValueError("region must not be blank")
        return self
