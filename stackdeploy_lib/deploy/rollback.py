"""
Rollback coordinator.

Rolls back one or more stacks through the provisioning API. Used as the standalone
rollback command and as the recovery step of the deploy state machine.
"""

import time

from loguru import logger

from stackdeploy_lib.config.schemas import RollbackOptions
from stackdeploy_lib.deploy.outcomes import RollbackResult
from stackdeploy_lib.exceptions import StackDeployToolkitError, is_expired_token_error
from stackdeploy_lib.protocols import Deployments
from stackdeploy_lib.types.artifacts import StackArtifact
from stackdeploy_lib.utils.timing import elapsed_since

LOGGER = logger.bind(name="stackdeploy_lib.deploy.rollback")


class RollbackCoordinator:
    """
    Roll back stacks, stopping at the first failure.

    The overall rollback fails when not a single stack was in a state that could be
    rolled back.
    """

    def __init__(self, deployments: Deployments) -> None:
        self._deployments = deployments

    def rollback(
        self,
        stacks: list[StackArtifact],
        options: RollbackOptions,
        reverse: bool = False,
    ) -> list[RollbackResult]:
        """
        Roll back the given stacks.

        Args:
        ----
            stacks: Stacks in deploy order
            options: Rollback options
            reverse: Walk the stacks in reverse deploy order

        Returns:
        -------
            One RollbackResult per stack

        Raises:
        ------
            StackDeployToolkitError: If a stack's rollback fails, or no stack was eligible

        """
        if not stacks:
            LOGGER.error("No stacks selected")
            return []

        ordered = list(reversed(stacks)) if reverse else list(stacks)
        results: list[RollbackResult] = []
        any_rollbackable = False

        for stack in ordered:
            LOGGER.info(f"Rolling back {stack.display_name}")
            start = time.monotonic()
            try:
                result = self._deployments.rollback_stack(
                    stack,
                    role_arn=options.role_arn,
                    toolkit_stack_name=options.toolkit_stack_name,
                    force=options.force,
                    orphan_logical_ids=options.orphan_logical_ids,
                    validate_bootstrap_stack_version=options.validate_bootstrap_stack_version,
                )
            except Exception as e:
                if is_expired_token_error(e):
                    raise
                LOGGER.error(f"❌  {stack.display_name} failed: {e}")
                raise StackDeployToolkitError("Rollback failed (use --force to orphan failing resources)") from e

            if not result.not_in_rollbackable_state:
                any_rollbackable = True
            results.append(result)
            LOGGER.info(f"✨  Rollback time: {elapsed_since(start)}s")

        if not any_rollbackable:
            raise StackDeployToolkitError("No stacks were in a state that could be rolled back")
        return results
