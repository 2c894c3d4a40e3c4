import logging
import os
from dataclasses import dataclass

from k8s_diagnostics_toolbox.config import ToolboxConfig
from k8s_diagnostics_toolbox.errors import ResolutionError
from k8s_diagnostics_toolbox.loader import default_runtimes
from k8s_diagnostics_toolbox.runtimes.base_runtime import (
    ROOTFS_SENTINEL,
    RuntimeBackend,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContainerTarget:
    """
    OS-level identity of a pod's container, valid only while it runs.
    """

    pod_name: str
    container_id: str
    pid: int
    root_path: str
    backend: str

    def host_path(self, container_path: str) -> str:
        return os.path.join(self.root_path, container_path.lstrip("/"))


class ContainerResolver:
    """
    Resolves pod -> container -> (pid, root path) by asking runtime
    backends strictly in priority order. Nothing is cached.
    """

    def __init__(
        self,
        runtimes: list[RuntimeBackend] | None = None,
        config: ToolboxConfig | None = None,
    ):
        self.config = config or ToolboxConfig()
        if runtimes is None:
            runtimes = default_runtimes(self.config)
        self.runtimes = sorted(runtimes, key=lambda r: r.priority)

    def runtime(self, name: str) -> RuntimeBackend:
        for runtime in self.runtimes:
            if runtime.name == name:
                return runtime
        raise ResolutionError(f"Unknown container runtime '{name}'")

    def _find(self, pod_name: str) -> tuple[str, RuntimeBackend]:
        if not pod_name:
            raise ResolutionError("Pod name must not be empty")

        for runtime in self.runtimes:
            containers = runtime.find_containers(pod_name)
            if not containers:
                logger.debug(f"{runtime.name}: no container for pod {pod_name}")
                continue
            if len(containers) > 1:
                logger.warning(
                    f"Pod {pod_name} has {len(containers)} containers, "
                    f"using {containers[0]} and ignoring {', '.join(containers[1:])}"
                )
            return containers[0], runtime

        raise ResolutionError(f"No running container found for pod '{pod_name}'")

    def resolve_container(self, pod_name: str) -> str:
        container_id, _ = self._find(pod_name)
        return container_id

    def resolve_pid(self, container_id: str) -> int:
        for runtime in self.runtimes:
            pid = runtime.container_pid(container_id)
            if pid is not None:
                return pid
            logger.debug(f"{runtime.name}: no pid for container {container_id}")

        raise ResolutionError(f"Could not find pid of container '{container_id}'")

    def resolve_root_path(self, container_id: str, pid: int | None = None) -> str:
        for runtime in self.runtimes:
            root_path = runtime.root_path(container_id)
            if root_path and root_path != ROOTFS_SENTINEL:
                return root_path

        if pid is None:
            pid = self.resolve_pid(container_id)
        return os.path.join(self.config.proc_root, str(pid), "root")

    def resolve(self, pod_name: str) -> ContainerTarget:
        container_id, runtime = self._find(pod_name)
        pid = self.resolve_pid(container_id)
        root_path = self.resolve_root_path(container_id, pid)
        logger.debug(
            f"Pod {pod_name}: container={container_id} pid={pid} root={root_path}"
        )
        return ContainerTarget(
            pod_name=pod_name,
            container_id=container_id,
            pid=pid,
            root_path=root_path,
            backend=runtime.name,
        )
