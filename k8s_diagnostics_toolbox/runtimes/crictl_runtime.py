from k8s_diagnostics_toolbox.runtimes.base_runtime import (
    POD_NAME_LABEL,
    RuntimeBackend,
    parse_pid,
)


class CrictlRuntime(RuntimeBackend):
    """
    CRI-compatible runtimes (containerd, CRI-O) queried through crictl.
    """

    name = "crictl"
    priority = 10

    def binary(self) -> str:
        return self.config.tool_path("crictl")

    def env(self) -> dict[str, str]:
        return self.config.runtime_env()

    def _inspect(self, container_id: str, template: str) -> str | None:
        return self.query(
            [
                self.binary(),
                "inspect",
                "--template",
                template,
                "-o",
                "go-template",
                container_id,
            ]
        )

    def find_containers(self, pod_name: str) -> list[str]:
        output = self.query(
            [self.binary(), "ps", "--label", f"{POD_NAME_LABEL}={pod_name}", "-q"]
        )
        if not output:
            return []
        return [line.strip() for line in output.splitlines() if line.strip()]

    def container_pid(self, container_id: str) -> int | None:
        return parse_pid(self._inspect(container_id, "{{.info.pid}}"))

    def root_path(self, container_id: str) -> str | None:
        return self._inspect(container_id, "{{.info.runtimeSpec.root.path}}")

    def exec_command(self, container_id: str, argv: list[str]) -> list[str]:
        return [self.binary(), "exec", "-is", container_id, *argv]
