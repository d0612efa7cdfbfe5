"""Interactive yes/no confirmation before risky deploy steps."""

import sys
from collections.abc import Callable

from loguru import logger

from stackdeploy_lib.exceptions import StackDeployToolkitError

LOGGER = logger.bind(name="stackdeploy_lib.deploy.confirmation")

Prompt = Callable[[str], str]


def _stdin_is_tty() -> bool:
    return sys.stdin is not None and sys.stdin.isatty()


class UserConfirmation:
    """
    Ask the operator to confirm, or refuse when nobody can be asked.

    Confirmation is refused when no terminal is attached, and when stacks deploy in
    parallel (there is no single human to ask).
    """

    def __init__(self, prompt: Prompt = input, is_tty: Callable[[], bool] = _stdin_is_tty) -> None:
        self._prompt = prompt
        self._is_tty = is_tty

    def ask(self, concurrency: int, motivation: str, question: str) -> None:
        """
        Ask a yes/no question.

        Args:
        ----
            concurrency: Stack concurrency of the run
            motivation: Why confirmation is needed
            question: Question shown to the operator

        Raises:
        ------
            StackDeployToolkitError: If confirmation cannot be asked or is declined

        """
        if not self._is_tty():
            raise StackDeployToolkitError(
                f"{motivation}, but terminal (TTY) is not attached so we are unable to get a confirmation from the user"
            )
        if concurrency > 1:
            raise StackDeployToolkitError(
                f"{motivation}, but concurrency is greater than 1 so we are unable to get a confirmation from the user"
            )

        answer = self._prompt(f"{question} (y/n)? ").strip().lower()
        if answer not in ("y", "yes"):
            LOGGER.debug(f"User declined: {question}")
            raise StackDeployToolkitError("Aborted by user")

    def confirm(self, question: str) -> bool:
        """Ask a yes/no question without refusal rules; used by destroy."""
        return self._prompt(f"{question} (y/n)? ").strip().lower() in ("y", "yes")
