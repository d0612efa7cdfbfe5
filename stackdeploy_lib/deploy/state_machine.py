"""
Per-stack deploy state machine.

    START -> ATTEMPT_DEPLOY -> DONE
                            -> PERFORM_ROLLBACK -> ATTEMPT_DEPLOY (rollback enabled)
                            -> ATTEMPT_DEPLOY (rollback enabled, after a replacement)

A stack stabilises within two deploy attempts: at most one recovery, then one
retry. A third attempt means the provisioning API broke its contract and is a
fatal error rather than a silent loop. Expired-token errors pass through untouched.
"""

from enum import Enum

from loguru import logger
from pydantic import BaseModel, Field

from stackdeploy_lib.config.schemas import DeployOptions, RollbackOptions
from stackdeploy_lib.deploy.confirmation import UserConfirmation
from stackdeploy_lib.deploy.outcomes import (
    DeployStackRequest,
    DidDeployStack,
    NeedRollbackFirst,
    ReplacementRequiresRollback,
    RollbackReason,
)
from stackdeploy_lib.deploy.rollback import RollbackCoordinator
from stackdeploy_lib.exceptions import StackDeployContractViolationError
from stackdeploy_lib.protocols import Deployments

LOGGER = logger.bind(name="stackdeploy_lib.deploy.state_machine")

MAX_DEPLOY_ATTEMPTS = 2

REPLACEMENT_MOTIVATION = 'Change includes a replacement which cannot be deployed with "--no-rollback"'


class DeployState(str, Enum):
    START = "start"
    ATTEMPT_DEPLOY = "attempt-deploy"
    PERFORM_ROLLBACK = "perform-rollback"
    DONE = "done"


class DeployRun(BaseModel):
    """Result of driving one stack to DONE."""

    result: DidDeployStack
    attempts: int
    rolled_back: bool = False
    history: list[DeployState] = Field(default_factory=list)


def paused_fail_motivation(outcome: NeedRollbackFirst) -> str:
    if outcome.reason == RollbackReason.REPLACEMENT:
        return (
            f"Stack is in a paused fail state ({outcome.status}) and change includes a replacement "
            'which cannot be deployed with "--no-rollback"'
        )
    return f'Stack is in a paused fail state ({outcome.status}) and command line arguments do not include "--no-rollback"'


class DeployStateMachine:
    """Drive one stack's provisioning attempts to completion."""

    def __init__(
        self,
        deployments: Deployments,
        rollbacks: RollbackCoordinator,
        confirmation: UserConfirmation,
        options: DeployOptions,
    ) -> None:
        self._deployments = deployments
        self._rollbacks = rollbacks
        self._confirmation = confirmation
        self._options = options

    def run(self, request: DeployStackRequest) -> DeployRun:
        """
        Deploy the stack in ``request``.

        Raises
        ------
            StackDeployContractViolationError: On a third attempt or an unknown outcome
            StackDeployToolkitError: If a required confirmation is refused or declined

        """
        state = DeployState.START
        history: list[DeployState] = []
        rollback = request.rollback
        attempts = 0
        rolled_back = False
        result: DidDeployStack | None = None

        while state != DeployState.DONE:
            history.append(state)

            if state == DeployState.START:
                state = DeployState.ATTEMPT_DEPLOY

            elif state == DeployState.ATTEMPT_DEPLOY:
                if attempts >= MAX_DEPLOY_ATTEMPTS:
                    raise StackDeployContractViolationError(
                        f"This loop should have stabilized in {MAX_DEPLOY_ATTEMPTS} iterations, but didn't"
                    )
                attempts += 1
                outcome = self._deployments.deploy_stack(request.model_copy(update={"rollback": rollback}))

                if isinstance(outcome, DidDeployStack):
                    result = outcome
                    state = DeployState.DONE
                elif isinstance(outcome, NeedRollbackFirst):
                    motivation = paused_fail_motivation(outcome)
                    self._confirm_or_force(
                        motivation,
                        f"{motivation}. Roll back first and then proceed with deployment",
                        "Rolling back first",
                    )
                    state = DeployState.PERFORM_ROLLBACK
                elif isinstance(outcome, ReplacementRequiresRollback):
                    self._confirm_or_force(
                        REPLACEMENT_MOTIVATION,
                        f"{REPLACEMENT_MOTIVATION}. Perform a regular deployment",
                        "Proceeding with regular deployment",
                    )
                    rollback = True
                    state = DeployState.ATTEMPT_DEPLOY
                else:
                    raise StackDeployContractViolationError(f"Unexpected result type from deploy_stack: {outcome!r}")

            elif state == DeployState.PERFORM_ROLLBACK:
                self._rollbacks.rollback(
                    [request.stack],
                    RollbackOptions(
                        role_arn=request.role_arn,
                        toolkit_stack_name=self._options.toolkit_stack_name,
                        force=self._options.force,
                    ),
                )
                rolled_back = True
                rollback = True
                state = DeployState.ATTEMPT_DEPLOY

        history.append(state)
        return DeployRun(result=result, attempts=attempts, rolled_back=rolled_back, history=history)

    def _confirm_or_force(self, motivation: str, question: str, forced_action: str) -> None:
        if self._options.force:
            LOGGER.warning(f"{motivation}. {forced_action} (--force).")
            return
        self._confirmation.ask(self._options.concurrency, motivation, question)
