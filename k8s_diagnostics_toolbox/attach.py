import logging

from k8s_diagnostics_toolbox.config import ToolboxConfig
from k8s_diagnostics_toolbox.errors import AttachError
from k8s_diagnostics_toolbox.process import run_cmd

logger = logging.getLogger(__name__)


class AttachInvoker:
    """
    Drives jattach against a host pid. Calls block until the JVM answers
    and are never retried: re-running a dump against a live JVM is not safe.
    """

    def __init__(self, config: ToolboxConfig | None = None, runner=None):
        self.config = config or ToolboxConfig()
        self.runner = runner or run_cmd

    def attach(self, pid: int, command: str, *args: str) -> str:
        jattach = self.config.require_tool("jattach")
        logger.info(f"jattach {pid} {command} {' '.join(args)}".rstrip())
        result = self.runner([jattach, str(pid), command, *args])
        if not result.ok:
            output = (result.stdout or "") + (result.stderr or "")
            raise AttachError(
                f"jattach {command} failed for pid {pid} "
                f"(exit code {result.returncode}): {output.strip()}",
                returncode=result.returncode,
                output=output,
            )
        return result.stdout

    def jcmd(self, pid: int, jcmd: str) -> str:
        return self.attach(pid, "jcmd", jcmd)
