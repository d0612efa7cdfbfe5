"""Subprocess helper used by the Docker asset publisher."""

import os
import subprocess

from loguru import logger

LOGGER = logger.bind(name="stackdeploy_lib.utils.commands")


def run_command(
    cmd: list[str],
    check: bool = True,
    capture: bool = True,
    env: dict[str, str] | None = None,
    timeout: int | None = None,
    input_text: str | None = None,
    cwd: str | None = None,
) -> subprocess.CompletedProcess:
    """
    Run a command with consistent handling.

    Args:
    ----
        cmd: Command and arguments as a list
        check: If True, raise CalledProcessError on non-zero exit
        capture: If True, capture stdout/stderr
        env: Optional environment variables (merged with os.environ)
        timeout: Optional timeout in seconds
        input_text: Optional text fed to the command's stdin (e.g. a registry password)
        cwd: Optional working directory

    Returns:
    -------
        CompletedProcess instance with returncode, stdout, stderr

    Raises:
    ------
        subprocess.CalledProcessError: If check=True and command fails
        subprocess.TimeoutExpired: If timeout is exceeded

    Example:
    -------
        ```python
        result = run_command(["docker", "images", "-q", "my-image:latest"], check=False)
        if result.returncode != 0:
            print(f"Command failed: {result.stderr}")
        ```

    """
    command_env = os.environ.copy()
    if env:
        command_env.update(env)

    LOGGER.debug(f"Running command: {' '.join(cmd)}")

    return subprocess.run(
        cmd,
        capture_output=capture,
        text=True,
        check=check,
        env=command_env,
        timeout=timeout,
        input=input_text,
        cwd=cwd,
    )
