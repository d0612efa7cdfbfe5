"""Tests for the rollback coordinator."""

from unittest.mock import MagicMock

import pytest

from stackdeploy_lib.config.schemas import RollbackOptions
from stackdeploy_lib.deploy.outcomes import RollbackResult
from stackdeploy_lib.deploy.rollback import RollbackCoordinator
from stackdeploy_lib.exceptions import StackDeployToolkitError


@pytest.fixture
def deployments():
    deployments = MagicMock(name="deployments")
    deployments.rollback_stack.return_value = RollbackResult()
    return deployments


class TestRollbackCoordinator:
    """Tests for RollbackCoordinator.rollback."""

    def test_no_stacks(self, deployments, log_records):
        """Test that an empty selection logs an error and does nothing."""
        assert RollbackCoordinator(deployments).rollback([], RollbackOptions()) == []
        assert ("ERROR", "No stacks selected") in log_records
        deployments.rollback_stack.assert_not_called()

    def test_passes_options(self, deployments, make_stack):
        """Test that rollback options reach the provisioning API."""
        options = RollbackOptions(role_arn="arn:role", force=True, orphan_logical_ids=["Bucket"])

        RollbackCoordinator(deployments).rollback([make_stack("A")], options)

        kwargs = deployments.rollback_stack.call_args.kwargs
        assert kwargs["role_arn"] == "arn:role"
        assert kwargs["force"] is True
        assert kwargs["orphan_logical_ids"] == ["Bucket"]
        assert kwargs["validate_bootstrap_stack_version"] is True

    def test_none_rollbackable(self, deployments, make_stack):
        """Test that the command fails when no stack could be rolled back."""
        deployments.rollback_stack.return_value = RollbackResult(not_in_rollbackable_state=True)
        with pytest.raises(StackDeployToolkitError, match="No stacks were in a state that could be rolled back"):
            RollbackCoordinator(deployments).rollback([make_stack("A"), make_stack("B")], RollbackOptions())

    def test_some_rollbackable(self, deployments, make_stack):
        """Test that one eligible stack is enough."""
        deployments.rollback_stack.side_effect = [RollbackResult(not_in_rollbackable_state=True), RollbackResult()]

        results = RollbackCoordinator(deployments).rollback([make_stack("A"), make_stack("B")], RollbackOptions())

        assert [result.not_in_rollbackable_state for result in results] == [True, False]

    def test_failure_stops_and_is_chained(self, deployments, make_stack, log_records):
        """Test that the first failing stack aborts the rollback."""
        cause = RuntimeError("resource stuck")
        deployments.rollback_stack.side_effect = cause

        with pytest.raises(StackDeployToolkitError, match="use --force to orphan failing resources") as exc_info:
            RollbackCoordinator(deployments).rollback([make_stack("A"), make_stack("B")], RollbackOptions())

        assert exc_info.value.__cause__ is cause
        assert deployments.rollback_stack.call_count == 1
        assert ("ERROR", "❌  A failed: resource stuck") in log_records

    def test_expired_token_not_wrapped(self, deployments, make_stack, client_error):
        """Test that expired credentials reach the caller unchanged."""
        error = client_error("ExpiredToken", "The security token included in the request is expired")
        deployments.rollback_stack.side_effect = error

        with pytest.raises(type(error)) as exc_info:
            RollbackCoordinator(deployments).rollback([make_stack("A")], RollbackOptions())
        assert exc_info.value is error

    def test_reverse_order(self, deployments, make_stack):
        """Test rolling back in reverse deploy order."""
        RollbackCoordinator(deployments).rollback(
            [make_stack("A"), make_stack("B"), make_stack("C")], RollbackOptions(), reverse=True
        )
        assert [call.args[0].id for call in deployments.rollback_stack.call_args_list] == ["C", "B", "A"]
