from k8s_diagnostics_toolbox.config import ToolboxConfig
from k8s_diagnostics_toolbox.process import CommandResult, run_cmd

POD_NAME_LABEL = "io.kubernetes.pod.name"

# Reported by runtimes that don't expose an explicit root path
ROOTFS_SENTINEL = "rootfs"


class RuntimeBackend:
    """
    Base class for all container runtime backends.

    Every query returns a value or a miss (None / empty list). A backend
    never raises for a failed query so the resolver can fall through to
    the next one.
    """

    # ---- Metadata (mandatory) ----
    name: str = "BaseRuntime"
    priority: int = 100

    def __init__(self, config: ToolboxConfig | None = None, runner=None):
        self.config = config or ToolboxConfig()
        self.runner = runner or run_cmd

    def query(self, command: list[str]) -> str | None:
        result: CommandResult = self.runner(command, env=self.env())
        output = (result.stdout or "").strip()
        if not result.ok or not output:
            return None
        return output

    def env(self) -> dict[str, str]:
        return {}

    def find_containers(self, pod_name: str) -> list[str]:
        raise NotImplementedError

    def container_pid(self, container_id: str) -> int | None:
        raise NotImplementedError

    def root_path(self, container_id: str) -> str | None:
        return None

    def exec_command(self, container_id: str, argv: list[str]) -> list[str]:
        raise NotImplementedError


def parse_pid(output: str | None) -> int | None:
    if not output:
        return None
    try:
        pid = int(output.splitlines()[0].strip())
    except ValueError:
        return None
    # Stopped containers report pid 0
    return pid if pid > 0 else None
