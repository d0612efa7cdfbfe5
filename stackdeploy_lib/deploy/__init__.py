"""
Deployment execution engine.

Work graph construction, per-category concurrency scheduling, the per-stack deploy
state machine, rollback coordination and the Toolkit commands built on them.
"""

from stackdeploy_lib.deploy.confirmation import UserConfirmation
from stackdeploy_lib.deploy.diff import SecurityChangeDetector
from stackdeploy_lib.deploy.outcomes import (
    DeployOutcome,
    DeployReport,
    DeployStackRequest,
    DidDeployStack,
    NeedRollbackFirst,
    ReplacementRequiresRollback,
    RollbackReason,
    RollbackResult,
    StackDeployRecord,
)
from stackdeploy_lib.deploy.rollback import RollbackCoordinator
from stackdeploy_lib.deploy.scheduler import ConcurrencyScheduler
from stackdeploy_lib.deploy.state_machine import MAX_DEPLOY_ATTEMPTS, DeployRun, DeployState, DeployStateMachine
from stackdeploy_lib.deploy.toolkit import Toolkit
from stackdeploy_lib.deploy.work_graph import (
    AssetBuildNode,
    AssetPublishNode,
    NodeKind,
    NodeState,
    StackNode,
    WorkGraph,
    WorkGraphBuilder,
)

__all__ = [
    "MAX_DEPLOY_ATTEMPTS",
    "AssetBuildNode",
    "AssetPublishNode",
    "ConcurrencyScheduler",
    "DeployOutcome",
    "DeployReport",
    "DeployRun",
    "DeployStackRequest",
    "DeployState",
    "DeployStateMachine",
    "DidDeployStack",
    "NeedRollbackFirst",
    "NodeKind",
    "NodeState",
    "ReplacementRequiresRollback",
    "RollbackCoordinator",
    "RollbackReason",
    "RollbackResult",
    "SecurityChangeDetector",
    "StackDeployRecord",
    "StackNode",
    "Toolkit",
    "UserConfirmation",
    "WorkGraph",
    "WorkGraphBuilder",
]
