import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


# ----------------------------
# Command execution
# ----------------------------


def run_cmd(
    command: list[str],
    capture_output: bool = True,
    env: dict[str, str] | None = None,
) -> CommandResult:
    """
    Run an external command synchronously, without timeout.

    With capture_output=False the child inherits the operator's terminal,
    which is what interactive tools (nsenter, profiler.sh) need.
    A missing executable is reported as exit code 127, like a shell would.
    """
    logger.debug(f"Running: {' '.join(command)}")
    run_env: dict[str, Any] | None = None
    if env:
        run_env = os.environ.copy()
        run_env.update(env)

    try:
        if capture_output:
            result = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=run_env,
            )
            return CommandResult(result.returncode, result.stdout, result.stderr)

        result = subprocess.run(command, env=run_env)
        return CommandResult(result.returncode)
    except FileNotFoundError as e:
        logger.debug(f"Command not found: {command[0]}")
        return CommandResult(127, "", str(e))
