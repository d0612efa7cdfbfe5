"""Tests for interactive confirmation."""

from unittest.mock import MagicMock

import pytest

from stackdeploy_lib.deploy.confirmation import UserConfirmation
from stackdeploy_lib.exceptions import StackDeployToolkitError


class TestUserConfirmation:
    """Tests for UserConfirmation."""

    def test_yes(self):
        """Test that an affirmative answer continues."""
        prompt = MagicMock(return_value=" Y ")
        UserConfirmation(prompt=prompt, is_tty=lambda: True).ask(1, "Risky", "Proceed")
        prompt.assert_called_once_with("Proceed (y/n)? ")

    def test_no(self):
        """Test that any other answer aborts."""
        confirmation = UserConfirmation(prompt=MagicMock(return_value="n"), is_tty=lambda: True)
        with pytest.raises(StackDeployToolkitError, match="Aborted by user"):
            confirmation.ask(1, "Risky", "Proceed")

    def test_no_tty(self):
        """Test that confirmation is refused without a terminal."""
        prompt = MagicMock()
        with pytest.raises(StackDeployToolkitError, match="Risky, but terminal \\(TTY\\) is not attached"):
            UserConfirmation(prompt=prompt, is_tty=lambda: False).ask(1, "Risky", "Proceed")
        prompt.assert_not_called()

    def test_concurrency(self):
        """Test that confirmation is refused for parallel deploys."""
        with pytest.raises(StackDeployToolkitError, match="concurrency is greater than 1"):
            UserConfirmation(prompt=MagicMock(), is_tty=lambda: True).ask(2, "Risky", "Proceed")

    def test_confirm(self):
        """Test the plain yes/no question."""
        assert UserConfirmation(prompt=MagicMock(return_value="yes")).confirm("Delete") is True
        assert UserConfirmation(prompt=MagicMock(return_value="")).confirm("Delete") is False
