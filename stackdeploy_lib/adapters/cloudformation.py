"""
AWS CloudFormation Deployments adapter.

Implements the Deployments protocol with boto3 CloudFormation clients obtained from
an SdkProvider. One ``deploy_stack`` call is one provisioning attempt: it either
brings the stack to its desired state, or reports that the stack must be rolled
back first, or that the change cannot be applied with rollback disabled. The
retry loop around it lives in the deploy state machine.
"""

import json
import time
import uuid
from collections.abc import Callable
from typing import Any

from botocore.exceptions import ClientError
from loguru import logger

from stackdeploy_lib.auth.sdk_provider import SdkProvider
from stackdeploy_lib.config.schemas import CredentialsOptions, DeploymentMethodKind
from stackdeploy_lib.deploy.outcomes import (
    DeployOutcome,
    DeployStackRequest,
    DidDeployStack,
    NeedRollbackFirst,
    ReplacementRequiresRollback,
    RollbackReason,
    RollbackResult,
)
from stackdeploy_lib.exceptions import StackDeployToolkitError, error_code
from stackdeploy_lib.types.artifacts import StackArtifact
from stackdeploy_lib.types.modes import HotswapMode, Mode

LOGGER = logger.bind(name="stackdeploy_lib.adapters.cloudformation")

# Statuses of a stack whose last operation stopped half-way with rollback disabled
PAUSED_FAIL_STATUSES = frozenset({"CREATE_FAILED", "UPDATE_FAILED", "UPDATE_ROLLBACK_FAILED", "ROLLBACK_FAILED"})
CREATION_FAILURE_STATUSES = frozenset({"ROLLBACK_COMPLETE", "ROLLBACK_FAILED"})
ROLLBACK_SUCCESS_STATUSES = frozenset({"ROLLBACK_COMPLETE", "UPDATE_ROLLBACK_COMPLETE"})
REPLACEMENT_POLICY_ACTIONS = frozenset({"ReplaceAndDelete", "ReplaceAndRetain", "ReplaceAndSnapshot"})

NO_UPDATES_MESSAGE = "No updates are to be performed."
MIN_ROLLBACK_BOOTSTRAP_VERSION = 23
POLL_INTERVAL_SECONDS = 5.0


def is_in_progress(status: str) -> bool:
    return status.endswith("_IN_PROGRESS") and status != "REVIEW_IN_PROGRESS"


def has_replacement(change_set: dict[str, Any]) -> bool:
    """Whether any change in a described change set replaces a resource."""
    for change in change_set.get("Changes", []):
        resource_change = change.get("ResourceChange", {})
        if resource_change.get("PolicyAction") in REPLACEMENT_POLICY_ACTIONS:
            return True
        if resource_change.get("Replacement") == "True":
            return True
    return False


def change_set_has_no_changes(change_set: dict[str, Any]) -> bool:
    reason = change_set.get("StatusReason") or ""
    no_changes_reason = "didn't contain changes" in reason or "No updates are to be performed" in reason
    if change_set.get("Status") == "FAILED":
        return no_changes_reason
    return change_set.get("Status") == "CREATE_COMPLETE" and not change_set.get("Changes")


def stack_outputs(description: dict[str, Any] | None) -> dict[str, str]:
    if not description:
        return {}
    return {output["OutputKey"]: output["OutputValue"] for output in description.get("Outputs", [])}


def parse_template_body(body: Any) -> dict[str, Any] | None:
    """
    Normalise a GetTemplate body.

    botocore already decodes JSON bodies; YAML bodies arrive as strings and are not
    comparable, so None is returned for them.
    """
    if isinstance(body, dict):
        return body
    try:
        parsed = json.loads(body)
    except (TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def build_stack_parameters(
    stack: StackArtifact,
    values: dict[str, Any],
    previous: dict[str, str] | None,
    use_previous_parameters: bool,
) -> list[dict[str, Any]]:
    """
    CloudFormation Parameters for the stack's declared template parameters.

    A supplied value wins; otherwise the deployed value is kept when
    ``use_previous_parameters`` is set; otherwise the template default applies.

    Raises
    ------
        StackDeployToolkitError: If a parameter without a default has no value

    """
    parameters: list[dict[str, Any]] = []
    missing: list[str] = []
    for name, declaration in stack.parameter_defaults.items():
        value = values.get(name)
        if value is not None:
            parameters.append({"ParameterKey": name, "ParameterValue": str(value)})
        elif use_previous_parameters and previous is not None and name in previous:
            parameters.append({"ParameterKey": name, "UsePreviousValue": True})
        elif "Default" not in (declaration or {}):
            missing.append(name)
    if missing:
        raise StackDeployToolkitError(f"The following CloudFormation Parameters are missing a value: {', '.join(missing)}")
    return parameters


def parameters_changed(parameters: list[dict[str, Any]], previous: dict[str, str] | None) -> bool:
    if previous is None:
        return bool(parameters)
    for parameter in parameters:
        if parameter.get("UsePreviousValue"):
            continue
        if previous.get(parameter["ParameterKey"]) != parameter["ParameterValue"]:
            return True
    return False


def tags_equal(current: list[dict[str, str]], desired: list[dict[str, str]]) -> bool:
    return {tag["Key"]: tag["Value"] for tag in current} == {tag["Key"]: tag["Value"] for tag in desired}


class CloudFormationDeployments:
    """
    Deployments backed by AWS CloudFormation.

    Example:
    -------
        ```python
        deployments = CloudFormationDeployments(SdkProvider.with_default_session())
        outcome = deployments.deploy_stack(DeployStackRequest(stack=stack, deploy_name=stack.stack_name))
        ```

    """

    def __init__(
        self,
        sdk_provider: SdkProvider,
        sleep: Callable[[float], None] = time.sleep,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ) -> None:
        """
        Initialize the adapter.

        Args:
        ----
            sdk_provider: Source of credentialed clients per stack environment
            sleep: Sleep function used between status polls
            poll_interval: Seconds between status polls

        """
        self._sdk_provider = sdk_provider
        self._sleep = sleep
        self._poll_interval = poll_interval

    def _cfn(self, stack: StackArtifact, mode: Mode = Mode.FOR_WRITING) -> Any:
        options = CredentialsOptions(
            assume_role_arn=stack.assume_role_arn,
            assume_role_external_id=stack.assume_role_external_id,
        )
        return self._sdk_provider.for_environment(stack.environment, mode, options).sdk.cloudformation()

    @staticmethod
    def _describe(cfn: Any, stack_name: str) -> dict[str, Any] | None:
        try:
            response = cfn.describe_stacks(StackName=stack_name)
        except ClientError as e:
            if error_code(e) == "ValidationError" and "does not exist" in str(e):
                return None
            raise
        stacks = response.get("Stacks", [])
        if not stacks or stacks[0].get("StackStatus") == "DELETE_COMPLETE":
            return None
        return stacks[0]

    def _wait_for_stack(self, cfn: Any, stack_name: str) -> dict[str, Any] | None:
        """Poll until the stack leaves every *_IN_PROGRESS status; None once it is gone."""
        while True:
            description = self._describe(cfn, stack_name)
            if description is None or not is_in_progress(description["StackStatus"]):
                return description
            LOGGER.debug(f"{stack_name}: {description['StackStatus']}")
            self._sleep(self._poll_interval)

    def _wait_for_change_set(self, cfn: Any, stack_name: str, change_set_name: str) -> dict[str, Any]:
        while True:
            change_set = cfn.describe_change_set(StackName=stack_name, ChangeSetName=change_set_name)
            if change_set["Status"] not in ("CREATE_PENDING", "CREATE_IN_PROGRESS"):
                return change_set
            self._sleep(self._poll_interval)

    def stack_exists(self, stack: StackArtifact, role_arn: str | None = None) -> bool:
        return self._describe(self._cfn(stack, Mode.FOR_READING), stack.stack_name) is not None

    def read_current_template(self, stack: StackArtifact) -> dict[str, Any]:
        cfn = self._cfn(stack, Mode.FOR_READING)
        if self._describe(cfn, stack.stack_name) is None:
            return {}
        response = cfn.get_template(StackName=stack.stack_name, TemplateStage="Original")
        return parse_template_body(response.get("TemplateBody")) or {}

    def deploy_stack(self, request: DeployStackRequest) -> DeployOutcome:
        """
        Perform one provisioning attempt.

        Returns
        -------
            DidDeployStack, NeedRollbackFirst or ReplacementRequiresRollback

        Raises
        ------
            StackDeployToolkitError: If the stack ends in a failed state, or a
                previously failed creation cannot be cleaned up

        """
        stack = request.stack
        stack_name = request.deploy_name or stack.stack_name
        cfn = self._cfn(stack)

        current = self._describe(cfn, stack_name)
        if current is not None and current["StackStatus"] in CREATION_FAILURE_STATUSES:
            LOGGER.debug(
                f"Found existing stack {stack_name} that had previously failed creation. "
                "Deleting it before attempting to re-create it."
            )
            cfn.delete_stack(StackName=stack_name)
            deleted = self._wait_for_stack(cfn, stack_name)
            if deleted is not None:
                raise StackDeployToolkitError(
                    f"Failed deleting stack {stack_name} that had previously failed creation "
                    f"(current state: {deleted['StackStatus']})"
                )
            current = None

        previous = None
        if current is not None:
            previous = {p["ParameterKey"]: p.get("ParameterValue", "") for p in current.get("Parameters", [])}
        parameters = build_stack_parameters(stack, request.parameters, previous, request.use_previous_parameters)

        if self._can_skip_deploy(cfn, request, stack_name, current, parameters_changed(parameters, previous)):
            LOGGER.debug(f"{stack_name}: skipping deployment (use --force to override)")
            return DidDeployStack(outputs=stack_outputs(current), stack_arn=current["StackId"], no_op=True)

        if request.hotswap == HotswapMode.HOTSWAP_ONLY:
            LOGGER.info(f"{stack_name}: hotswap deployment is not supported, nothing was deployed")
            return DidDeployStack(
                outputs=stack_outputs(current),
                stack_arn=current["StackId"] if current else "",
                no_op=True,
            )

        common = self._common_options(request, parameters)
        if request.deployment_method.kind == DeploymentMethodKind.DIRECT:
            return self._direct_deployment(cfn, request, stack_name, current, common)
        return self._change_set_deployment(cfn, request, stack_name, current, common)

    def _common_options(self, request: DeployStackRequest, parameters: list[dict[str, Any]]) -> dict[str, Any]:
        options: dict[str, Any] = {
            "TemplateBody": json.dumps(request.stack.template),
            "Parameters": parameters,
            "Capabilities": ["CAPABILITY_IAM", "CAPABILITY_NAMED_IAM", "CAPABILITY_AUTO_EXPAND"],
            "Tags": request.tags,
        }
        role_arn = request.role_arn or request.stack.cloudformation_execution_role_arn
        if role_arn:
            options["RoleARN"] = role_arn
        if request.notification_arns is not None:
            options["NotificationARNs"] = request.notification_arns
        return options

    def _can_skip_deploy(
        self,
        cfn: Any,
        request: DeployStackRequest,
        name: str,
        current: dict[str, Any] | None,
        has_parameter_changes: bool,
    ) -> bool:
        if request.force:
            LOGGER.debug(f"{name}: forced deployment")
            return False
        method = request.deployment_method
        if method.kind == DeploymentMethodKind.CHANGE_SET and not method.execute:
            LOGGER.debug(f"{name}: --no-execute, always creating change set")
            return False
        if current is None:
            LOGGER.debug(f"{name}: no existing stack")
            return False

        deployed = cfn.get_template(StackName=name, TemplateStage="Original").get("TemplateBody")
        if parse_template_body(deployed) != request.stack.template:
            LOGGER.debug(f"{name}: template has changed")
            return False
        if not tags_equal(current.get("Tags", []), request.tags):
            LOGGER.debug(f"{name}: tags have changed")
            return False
        if sorted(current.get("NotificationARNs", [])) != sorted(request.notification_arns or []):
            LOGGER.debug(f"{name}: notification arns have changed")
            return False
        if bool(current.get("EnableTerminationProtection")) != request.stack.termination_protection:
            LOGGER.debug(f"{name}: termination protection has been updated")
            return False
        if has_parameter_changes:
            LOGGER.debug(f"{name}: parameters have changed")
            return False
        if current["StackStatus"].endswith("FAILED"):
            LOGGER.debug(f"{name}: stack is in a failure state")
            return False
        return True

    def _update_termination_protection(self, cfn: Any, stack: StackArtifact, current: dict[str, Any] | None) -> None:
        if current is None:
            return
        if bool(current.get("EnableTerminationProtection")) != stack.termination_protection:
            LOGGER.debug(f"Updating termination protection to {stack.termination_protection} for {current['StackName']}")
            cfn.update_termination_protection(
                StackName=current["StackName"],
                EnableTerminationProtection=stack.termination_protection,
            )

    def _change_set_deployment(
        self,
        cfn: Any,
        request: DeployStackRequest,
        stack_name: str,
        current: dict[str, Any] | None,
        common: dict[str, Any],
    ) -> DeployOutcome:
        method = request.deployment_method
        update = current is not None and current["StackStatus"] != "REVIEW_IN_PROGRESS"
        token = uuid.uuid4().hex

        if current is not None:
            cfn.delete_change_set(StackName=stack_name, ChangeSetName=method.change_set_name)

        LOGGER.info(f"{stack_name}: creating CloudFormation changeset...")
        cfn.create_change_set(
            StackName=stack_name,
            ChangeSetName=method.change_set_name,
            ChangeSetType="UPDATE" if update else "CREATE",
            Description=f"stackdeploy changeset for execution {token}",
            ClientToken=f"create{token}",
            **common,
        )
        change_set = self._wait_for_change_set(cfn, stack_name, method.change_set_name)
        self._update_termination_protection(cfn, request.stack, current)

        if change_set_has_no_changes(change_set):
            LOGGER.debug(f"No changes are to be performed on {stack_name}.")
            if method.execute:
                cfn.delete_change_set(StackName=stack_name, ChangeSetName=method.change_set_name)
            if request.force:
                LOGGER.warning(
                    "You used the --force flag, but CloudFormation reported that the deployment would not make "
                    "any changes. Use CloudFormation drift detection to find changes made outside of deployments."
                )
            return DidDeployStack(outputs=stack_outputs(current), stack_arn=change_set.get("StackId", ""), no_op=True)

        if change_set["Status"] == "FAILED":
            raise StackDeployToolkitError(
                f"Failed to create ChangeSet {method.change_set_name} on {stack_name}: "
                f"{change_set['Status']}, {change_set.get('StatusReason', '')}"
            )

        if not method.execute:
            LOGGER.info(
                f"Changeset {change_set['ChangeSetId']} created and waiting in review for manual execution (--no-execute)"
            )
            return DidDeployStack(outputs=stack_outputs(current), stack_arn=change_set.get("StackId", ""), no_op=False)

        replacement = has_replacement(change_set)
        paused = current is not None and current["StackStatus"] in PAUSED_FAIL_STATUSES
        if paused and replacement:
            return NeedRollbackFirst(reason=RollbackReason.REPLACEMENT, status=current["StackStatus"])
        if paused and request.rollback:
            return NeedRollbackFirst(reason=RollbackReason.NOT_NOROLLBACK, status=current["StackStatus"])
        if not request.rollback and replacement:
            return ReplacementRequiresRollback()

        LOGGER.debug(f"Initiating execution of changeset {change_set['ChangeSetId']} on stack {stack_name}")
        cfn.execute_change_set(
            StackName=stack_name,
            ChangeSetName=method.change_set_name,
            ClientRequestToken=f"exec{token}",
            DisableRollback=not request.rollback,
        )
        return self._finish_deployment(cfn, stack_name)

    def _direct_deployment(
        self,
        cfn: Any,
        request: DeployStackRequest,
        stack_name: str,
        current: dict[str, Any] | None,
        common: dict[str, Any],
    ) -> DeployOutcome:
        token = uuid.uuid4().hex
        LOGGER.info(f"{stack_name}: {'updating' if current else 'creating'} stack...")

        if current is None:
            kwargs: dict[str, Any] = {}
            if request.stack.termination_protection:
                kwargs["EnableTerminationProtection"] = True
            cfn.create_stack(
                StackName=stack_name,
                ClientRequestToken=f"create{token}",
                DisableRollback=not request.rollback,
                **kwargs,
                **common,
            )
            return self._finish_deployment(cfn, stack_name)

        self._update_termination_protection(cfn, request.stack, current)
        try:
            cfn.update_stack(
                StackName=stack_name,
                ClientRequestToken=f"update{token}",
                DisableRollback=not request.rollback,
                **common,
            )
        except ClientError as e:
            if NO_UPDATES_MESSAGE in str(e):
                LOGGER.debug(f"No updates are to be performed for stack {stack_name}")
                return DidDeployStack(outputs=stack_outputs(current), stack_arn=current["StackId"], no_op=True)
            raise
        return self._finish_deployment(cfn, stack_name)

    def _finish_deployment(self, cfn: Any, stack_name: str) -> DidDeployStack:
        final = self._wait_for_stack(cfn, stack_name)
        if final is None:
            raise StackDeployToolkitError(f"Stack {stack_name} disappeared during deployment")
        status = final["StackStatus"]
        if status not in ("CREATE_COMPLETE", "UPDATE_COMPLETE"):
            reason = final.get("StackStatusReason", "")
            raise StackDeployToolkitError(f"The stack named {stack_name} failed to deploy: {status} {reason}".rstrip())
        return DidDeployStack(outputs=stack_outputs(final), stack_arn=final["StackId"], no_op=False)

    def rollback_stack(
        self,
        stack: StackArtifact,
        role_arn: str | None = None,
        toolkit_stack_name: str | None = None,
        force: bool = False,
        orphan_logical_ids: list[str] | None = None,
        validate_bootstrap_stack_version: bool = True,
    ) -> RollbackResult:
        """
        Roll back a stack that is stuck in a failed state.

        Raises
        ------
            StackDeployToolkitError: If the rollback does not end in a rolled-back state,
                or the bootstrap stack is too old to support rollbacks

        """
        cfn = self._cfn(stack)
        stack_name = stack.stack_name
        execution_role = role_arn or stack.cloudformation_execution_role_arn

        if validate_bootstrap_stack_version and toolkit_stack_name:
            self._validate_bootstrap_version(cfn, toolkit_stack_name)

        current = self._describe(cfn, stack_name)
        status = current["StackStatus"] if current else "NOT_FOUND"
        role_kwargs = {"RoleARN": execution_role} if execution_role else {}

        if status in ("CREATE_FAILED", "UPDATE_FAILED"):
            LOGGER.debug(f"Initiating rollback of stack {stack_name}")
            cfn.rollback_stack(
                StackName=stack_name,
                ClientRequestToken=uuid.uuid4().hex,
                RetainExceptOnCreate=True,
                **role_kwargs,
            )
        elif status == "UPDATE_ROLLBACK_FAILED":
            to_skip = list(orphan_logical_ids or [])
            if force:
                to_skip.extend(r for r in self._failed_resources(cfn, stack_name) if r not in to_skip)
            if to_skip:
                LOGGER.info(f"{stack_name}: orphaning {', '.join(to_skip)}")
            cfn.continue_update_rollback(
                StackName=stack_name,
                ClientRequestToken=uuid.uuid4().hex,
                ResourcesToSkip=to_skip,
                **role_kwargs,
            )
        elif status == "ROLLBACK_FAILED":
            LOGGER.warning(
                f"Stack {stack_name} failed creation and rollback. This state cannot be rolled back. "
                "You can recreate this stack by deploying it again."
            )
            return RollbackResult(not_in_rollbackable_state=True)
        else:
            LOGGER.warning(f"Stack {stack_name} does not need a rollback: {status}")
            return RollbackResult(not_in_rollbackable_state=True)

        final = self._wait_for_stack(cfn, stack_name)
        final_status = final["StackStatus"] if final else "NOT_FOUND"
        if final_status not in ROLLBACK_SUCCESS_STATUSES:
            raise StackDeployToolkitError(f"Rollback of {stack_name} did not succeed: {final_status}")
        return RollbackResult()

    @staticmethod
    def _failed_resources(cfn: Any, stack_name: str) -> list[str]:
        resources = cfn.describe_stack_resources(StackName=stack_name).get("StackResources", [])
        return [r["LogicalResourceId"] for r in resources if r.get("ResourceStatus", "").endswith("_FAILED")]

    def _validate_bootstrap_version(self, cfn: Any, toolkit_stack_name: str) -> None:
        toolkit = self._describe(cfn, toolkit_stack_name)
        if toolkit is None:
            LOGGER.debug(f"Toolkit stack {toolkit_stack_name} not found, skipping bootstrap version check")
            return
        version = stack_outputs(toolkit).get("BootstrapVersion")
        if version is not None and int(version) < MIN_ROLLBACK_BOOTSTRAP_VERSION:
            raise StackDeployToolkitError(
                f"Rollback requires bootstrap stack version {MIN_ROLLBACK_BOOTSTRAP_VERSION}, "
                f"but {toolkit_stack_name} has version {version}. Bootstrap the environment again."
            )

    def destroy_stack(self, stack: StackArtifact, role_arn: str | None = None) -> None:
        """
        Delete a stack and wait for the deletion to finish.

        Raises
        ------
            StackDeployToolkitError: If the stack is not gone afterwards

        """
        cfn = self._cfn(stack)
        current = self._describe(cfn, stack.stack_name)
        if current is None:
            LOGGER.debug(f"{stack.stack_name}: stack does not exist, nothing to destroy")
            return

        execution_role = role_arn or stack.cloudformation_execution_role_arn
        kwargs = {"RoleARN": execution_role} if execution_role else {}
        cfn.delete_stack(StackName=current["StackId"], **kwargs)

        final = self._wait_for_stack(cfn, current["StackId"])
        if final is not None:
            raise StackDeployToolkitError(
                f"Failed to destroy {stack.stack_name}: {final['StackStatus']} {final.get('StackStatusReason', '')}".rstrip()
            )
