from k8s_diagnostics_toolbox.runtimes.base_runtime import (
    POD_NAME_LABEL,
    RuntimeBackend,
    parse_pid,
)


class DockerRuntime(RuntimeBackend):
    """
    Legacy dockershim nodes. Only consulted when crictl has no answer.
    """

    name = "docker"
    priority = 20

    def binary(self) -> str:
        return self.config.tools.get("docker", "docker")

    def find_containers(self, pod_name: str) -> list[str]:
        output = self.query(
            [
                self.binary(),
                "ps",
                "--filter",
                f"label={POD_NAME_LABEL}={pod_name}",
                "-q",
            ]
        )
        if not output:
            return []
        return [line.strip() for line in output.splitlines() if line.strip()]

    def container_pid(self, container_id: str) -> int | None:
        return parse_pid(
            self.query([self.binary(), "inspect", container_id, "-f", "{{.State.Pid}}"])
        )

    def exec_command(self, container_id: str, argv: list[str]) -> list[str]:
        return [self.binary(), "exec", "-i", container_id, *argv]
