"""
Security-change detection for approval gates.

A resource-level comparison of the deployed and the desired template. It answers
only "does this change need approval", and is not a template diff engine: any
added or modified resource of a security-sensitive type counts as broadening.
"""

from typing import Any

from loguru import logger

from stackdeploy_lib.types.artifacts import StackArtifact
from stackdeploy_lib.types.modes import RequireApproval

LOGGER = logger.bind(name="stackdeploy_lib.deploy.diff")

SECURITY_SENSITIVE_TYPES = frozenset(
    {
        "AWS::IAM::Role",
        "AWS::IAM::Policy",
        "AWS::IAM::ManagedPolicy",
        "AWS::IAM::User",
        "AWS::IAM::Group",
        "AWS::EC2::SecurityGroup",
        "AWS::EC2::SecurityGroupIngress",
        "AWS::EC2::SecurityGroupEgress",
        "AWS::Lambda::Permission",
        "AWS::S3::BucketPolicy",
        "AWS::SQS::QueuePolicy",
        "AWS::SNS::TopicPolicy",
        "AWS::KMS::Key",
    }
)


def resource_changes(current: dict[str, Any], desired: dict[str, Any]) -> dict[str, str]:
    """
    Compare the Resources sections of two templates.

    Returns
    -------
        Mapping of logical id to "added", "modified" or "removed"

    """
    old = current.get("Resources") or {}
    new = desired.get("Resources") or {}
    changes: dict[str, str] = {}
    for logical_id, resource in new.items():
        if logical_id not in old:
            changes[logical_id] = "added"
        elif old[logical_id] != resource:
            changes[logical_id] = "modified"
    for logical_id in old:
        if logical_id not in new:
            changes[logical_id] = "removed"
    return changes


class SecurityChangeDetector:
    """Default TemplateDiffer: flags security-sensitive additions and modifications."""

    def requires_approval(
        self,
        current_template: dict[str, Any],
        stack: StackArtifact,
        require_approval: RequireApproval,
    ) -> bool:
        if require_approval == RequireApproval.NEVER:
            return False

        changes = resource_changes(current_template, stack.template)
        if require_approval == RequireApproval.ANY_CHANGE:
            return bool(changes)

        sensitive = [
            logical_id
            for logical_id, change in changes.items()
            if change != "removed" and stack.resources[logical_id].get("Type") in SECURITY_SENSITIVE_TYPES
        ]
        if sensitive:
            LOGGER.info(f"{stack.display_name}: security-sensitive changes in {', '.join(sorted(sensitive))}")
        return bool(sensitive)
