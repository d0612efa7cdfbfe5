"""
Toolkit: deploy, rollback and destroy commands.

Deploy builds the work graph for the selected stacks, prunes assets that are
already published, and runs the graph with one handler per node category. Each
stack node runs its own DeployStateMachine. Stack outputs accumulate in one map
keyed by stack name, which is written to the outputs file once the run ends, so a
failing stack does not lose the outputs of stacks that already succeeded.
"""

import json
import re
import threading
import time
from pathlib import Path

from loguru import logger

from stackdeploy_lib.config.loaders import build_parameter_map, parameters_for_stack
from stackdeploy_lib.config.schemas import (
    DeployOptions,
    DestroyOptions,
    GraphConcurrency,
    RollbackOptions,
)
from stackdeploy_lib.deploy.confirmation import UserConfirmation
from stackdeploy_lib.deploy.outcomes import DeployReport, DeployStackRequest, StackDeployRecord
from stackdeploy_lib.deploy.rollback import RollbackCoordinator
from stackdeploy_lib.deploy.scheduler import ConcurrencyScheduler
from stackdeploy_lib.deploy.state_machine import DeployStateMachine
from stackdeploy_lib.deploy.work_graph import (
    AssetBuildNode,
    AssetPublishNode,
    NodeKind,
    StackNode,
    WorkGraphBuilder,
)
from stackdeploy_lib.exceptions import StackDeployError, StackDeployToolkitError, is_expired_token_error
from stackdeploy_lib.protocols import AssetPublisher, Deployments, TemplateDiffer
from stackdeploy_lib.types.artifacts import StackArtifact
from stackdeploy_lib.types.modes import AssetBuildTime, HotswapMode, RequireApproval, StackActivityProgress
from stackdeploy_lib.utils.timing import elapsed_since

LOGGER = logger.bind(name="stackdeploy_lib.deploy.toolkit")

_SNS_TOPIC_ARN = re.compile(r"^arn:aws:sns:[a-z0-9\-]+:[0-9]+:[a-z0-9\-_]+$", re.IGNORECASE)


def validate_sns_topic_arn(arn: str) -> bool:
    return bool(_SNS_TOPIC_ARN.match(arn))


def resolve_notification_arns(option_arns: list[str] | None, stack_arns: list[str] | None) -> list[str] | None:
    """
    Combine notification ARNs from the options and the stack.

    None leaves notifications unmanaged; an empty list clears them.

    Raises
    ------
        StackDeployToolkitError: If an ARN is not an SNS topic ARN

    """
    if option_arns is None and stack_arns is None:
        return None
    arns = list(option_arns or []) + list(stack_arns or [])
    for arn in arns:
        if not validate_sns_topic_arn(arn):
            raise StackDeployToolkitError(f"Notification arn {arn} is not a valid arn for an SNS topic")
    return arns


def tags_for_stack(option_tags: dict[str, str], stack: StackArtifact) -> list[dict[str, str]]:
    """Option tags when given, otherwise the stack's own tags."""
    tags = option_tags or stack.tags
    return [{"Key": key, "Value": value} for key, value in tags.items()]


class Toolkit:
    """
    Deploy, roll back and destroy stacks.

    Example:
    -------
        ```python
        toolkit = get_toolkit()
        report = toolkit.deploy(stacks, DeployOptions(concurrency=2))
        print(report.outputs)
        ```

    """

    def __init__(
        self,
        deployments: Deployments,
        asset_publisher: AssetPublisher,
        template_differ: TemplateDiffer,
        confirmation: UserConfirmation | None = None,
        default_options: DeployOptions | None = None,
    ) -> None:
        self._deployments = deployments
        self._assets = asset_publisher
        self._differ = template_differ
        self._confirmation = confirmation or UserConfirmation()
        self._default_options = default_options or DeployOptions()
        self._rollbacks = RollbackCoordinator(deployments)

    def deploy(self, stacks: list[StackArtifact], options: DeployOptions | None = None) -> DeployReport:
        """
        Deploy stacks and their assets.

        Args:
        ----
            stacks: Stacks in deploy order
            options: Deploy options; the Toolkit's default options when omitted

        Returns:
        -------
            DeployReport with a record per stack and the accumulated outputs

        Raises:
        ------
            StackDeployToolkitError: The first stack, asset or approval failure
            StackDeployAuthenticationError: If credentials cannot be obtained

        """
        options = options or self._default_options
        start = time.monotonic()
        report = DeployReport()

        if not stacks:
            LOGGER.error("This app contains no stacks")
            return report

        if options.hotswap != HotswapMode.FULL_DEPLOYMENT:
            LOGGER.warning(
                "⚠️ The --hotswap and --hotswap-fallback flags deliberately introduce CloudFormation drift "
                "to speed up deployments"
            )
            LOGGER.warning("⚠️ They should only be used for development - never use them for your production Stacks!")

        if options.concurrency > 1 and options.progress and options.progress != StackActivityProgress.EVENTS:
            LOGGER.warning('⚠️ The --concurrency flag only supports --progress "events". Switching to "events".')

        parameter_map = build_parameter_map(options.parameters)
        report_lock = threading.Lock()

        def build_asset(node: AssetBuildNode) -> None:
            self._assets.build_single_asset(node.asset, node.parent_stack)

        def publish_asset(node: AssetPublishNode) -> None:
            self._assets.publish_single_asset(node.asset, node.parent_stack)

        def deploy_stack(node: StackNode) -> None:
            self._deploy_stack(node.stack, stacks, options, parameter_map, report, report_lock)

        prebuild = options.asset_build_time == AssetBuildTime.ALL_BEFORE_DEPLOY
        graph = WorkGraphBuilder(prebuild_assets=prebuild).build(stacks)

        if not options.force:
            graph.remove_unnecessary_assets(
                lambda node: self._assets.is_single_asset_published(node.asset, node.parent_stack)
            )

        scheduler = ConcurrencyScheduler(GraphConcurrency.from_deploy_options(options))
        try:
            scheduler.run(
                graph,
                {
                    NodeKind.STACK: deploy_stack,
                    NodeKind.ASSET_BUILD: build_asset,
                    NodeKind.ASSET_PUBLISH: publish_asset,
                },
            )
        finally:
            if options.outputs_file:
                self._write_outputs(Path(options.outputs_file), report)

        LOGGER.info(f"✨  Total time: {elapsed_since(start)}s")
        return report

    def _deploy_stack(
        self,
        stack: StackArtifact,
        stacks: list[StackArtifact],
        options: DeployOptions,
        parameter_map: dict[str, dict[str, str | None]],
        report: DeployReport,
        report_lock: threading.Lock,
    ) -> None:
        record = StackDeployRecord(stack_name=stack.stack_name)
        with report_lock:
            report.records[stack.stack_name] = record

        if len(stacks) != 1:
            LOGGER.info(stack.display_name)

        if not stack.resources:
            if not self._deployments.stack_exists(stack):
                LOGGER.warning(f"{stack.display_name}: stack has no resources, skipping deployment.")
            else:
                LOGGER.warning(f"{stack.display_name}: stack has no resources, deleting existing stack.")
                self.destroy(
                    [stack],
                    DestroyOptions(role_arn=options.role_arn, force=True, from_deploy=True, ci=options.ci),
                )
            record.skipped = True
            return

        if options.require_approval != RequireApproval.NEVER:
            current_template = self._deployments.read_current_template(stack)
            if self._differ.requires_approval(current_template, stack, options.require_approval):
                self._confirmation.ask(
                    options.concurrency,
                    '"--require-approval" is enabled and stack includes security-sensitive updates',
                    "Do you wish to deploy these changes",
                )

        notification_arns = resolve_notification_arns(options.notification_arns, stack.notification_arns)

        LOGGER.info(f"{stack.display_name}: deploying... [{stacks.index(stack) + 1}/{len(stacks)}]")
        start = time.monotonic()

        request = DeployStackRequest(
            stack=stack,
            deploy_name=stack.stack_name,
            role_arn=options.role_arn,
            toolkit_stack_name=options.toolkit_stack_name,
            reuse_assets=options.reuse_assets,
            notification_arns=notification_arns,
            tags=tags_for_stack(options.tags, stack),
            deployment_method=options.deployment_method,
            force=options.force,
            parameters=parameters_for_stack(parameter_map, stack.stack_name),
            use_previous_parameters=options.use_previous_parameters,
            progress=options.effective_progress,
            ci=options.ci,
            rollback=options.rollback,
            hotswap=options.hotswap,
        )

        machine = DeployStateMachine(self._deployments, self._rollbacks, self._confirmation, options)
        try:
            run = machine.run(request)
        except Exception as e:
            if is_expired_token_error(e) or isinstance(e, StackDeployError):
                raise
            raise StackDeployToolkitError(f"❌  {stack.stack_name} failed: {type(e).__name__}: {e}") from e

        result = run.result
        record.result = result
        record.attempts = run.attempts
        record.rolled_back = run.rolled_back
        record.elapsed_seconds = elapsed_since(start)

        LOGGER.success(f" ✅  {stack.display_name}{' (no changes)' if result.no_op else ''}")
        LOGGER.info(f"✨  Deployment time: {record.elapsed_seconds}s")

        if result.outputs:
            with report_lock:
                report.outputs[stack.stack_name] = dict(result.outputs)
            LOGGER.info("Outputs:")
        for name in sorted(result.outputs):
            LOGGER.info(f"{stack.id}.{name} = {result.outputs[name]}")
        LOGGER.info(f"Stack ARN: {result.stack_arn}")

    def _write_outputs(self, path: Path, report: DeployReport) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(report.outputs, f, indent=2)
        LOGGER.debug(f"Wrote outputs of {len(report.outputs)} stack(s) to {path}")

    def rollback(self, stacks: list[StackArtifact], options: RollbackOptions | None = None) -> None:
        """
        Roll back stacks.

        Raises
        ------
            StackDeployToolkitError: If a rollback fails or no stack could be rolled back

        """
        start = time.monotonic()
        self._rollbacks.rollback(stacks, options or RollbackOptions())
        LOGGER.info(f"✨  Total time: {elapsed_since(start)}s")

    def destroy(self, stacks: list[StackArtifact], options: DestroyOptions | None = None) -> None:
        """Delete stacks in reverse deploy order, asking first unless forced."""
        options = options or DestroyOptions()
        ordered = list(reversed(stacks))

        if not options.force:
            names = ", ".join(stack.id for stack in ordered)
            if not self._confirmation.confirm(f"Are you sure you want to delete: {names}"):
                return

        action = "deploy" if options.from_deploy else "destroy"
        for index, stack in enumerate(ordered, start=1):
            LOGGER.info(f"{stack.display_name}: destroying... [{index}/{len(ordered)}]")
            try:
                self._deployments.destroy_stack(stack, role_arn=options.role_arn)
            except Exception:
                LOGGER.error(f" ❌  {stack.display_name}: {action} failed")
                raise
            LOGGER.success(f" ✅  {stack.display_name}: {action}ed")
