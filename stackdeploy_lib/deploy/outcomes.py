"""
Provisioning requests and outcomes.

One provisioning attempt returns exactly one DeployOutcome variant. NeedRollbackFirst
and ReplacementRequiresRollback are not errors: they drive the bounded retry loop of
the deploy state machine.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from stackdeploy_lib.config.schemas import DeploymentMethod
from stackdeploy_lib.types.artifacts import StackArtifact
from stackdeploy_lib.types.modes import HotswapMode, StackActivityProgress


class RollbackReason(str, Enum):
    """Why a paused failed stack must be rolled back before deploying."""

    REPLACEMENT = "replacement"
    NOT_NOROLLBACK = "not-norollback"


class DidDeployStack(BaseModel):
    """The stack reached its desired state (possibly without changes)."""

    model_config = ConfigDict(frozen=True)

    outputs: dict[str, str] = Field(default_factory=dict)
    stack_arn: str = ""
    no_op: bool = False


class NeedRollbackFirst(BaseModel):
    """The stack is in a paused failed state that blocks this deployment."""

    model_config = ConfigDict(frozen=True)

    reason: RollbackReason
    status: str


class ReplacementRequiresRollback(BaseModel):
    """The change replaces a resource, which is impossible with rollback disabled."""

    model_config = ConfigDict(frozen=True)


DeployOutcome = DidDeployStack | NeedRollbackFirst | ReplacementRequiresRollback


class RollbackResult(BaseModel):
    """Result of rolling back one stack."""

    model_config = ConfigDict(frozen=True)

    not_in_rollbackable_state: bool = False


class DeployStackRequest(BaseModel):
    """Arguments of one provisioning attempt."""

    model_config = ConfigDict(frozen=True)

    stack: StackArtifact
    deploy_name: str
    role_arn: str | None = None
    toolkit_stack_name: str | None = None
    reuse_assets: list[str] = Field(default_factory=list)
    notification_arns: list[str] | None = None
    tags: list[dict[str, str]] = Field(default_factory=list)
    deployment_method: DeploymentMethod = Field(default_factory=DeploymentMethod)
    force: bool = False
    parameters: dict[str, Any] = Field(default_factory=dict)
    use_previous_parameters: bool = True
    progress: StackActivityProgress | None = None
    ci: bool = False
    rollback: bool = True
    hotswap: HotswapMode = HotswapMode.FULL_DEPLOYMENT


class StackDeployRecord(BaseModel):
    """What happened to one stack during a deploy run."""

    stack_name: str
    result: DidDeployStack | None = Field(default=None, description="None when the stack was skipped or destroyed")
    attempts: int = 0
    rolled_back: bool = False
    skipped: bool = False
    elapsed_seconds: float = 0.0


class DeployReport(BaseModel):
    """Per-stack records of a deploy run plus the accumulated outputs."""

    records: dict[str, StackDeployRecord] = Field(default_factory=dict)
    outputs: dict[str, dict[str, str]] = Field(default_factory=dict)
