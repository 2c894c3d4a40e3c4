import logging
import os

import pytest

from k8s_diagnostics_toolbox.errors import ResolutionError
from k8s_diagnostics_toolbox.resolver import ContainerResolver
from k8s_diagnostics_toolbox.runtimes.crictl_runtime import CrictlRuntime
from k8s_diagnostics_toolbox.runtimes.docker_runtime import DockerRuntime


def build_resolver(config, runner):
    return ContainerResolver(
        [
            DockerRuntime(config=config, runner=runner),
            CrictlRuntime(config=config, runner=runner),
        ],
        config=config,
    )


class TestContainerResolution:
    def test_broker_scenario_resolves_to_proc_root(self, resolver, config):
        target = resolver.resolve("broker-0")

        assert target.container_id == "abc123"
        assert target.pid == 4821
        assert target.root_path == os.path.join(config.proc_root, "4821", "root")
        assert target.backend == "crictl"

    def test_resolution_is_idempotent(self, resolver):
        first = resolver.resolve("broker-0")
        second = resolver.resolve("broker-0")

        assert first == second

    def test_every_call_queries_the_runtime(self, resolver, broker_runner):
        resolver.resolve_container("broker-0")
        resolver.resolve_container("broker-0")

        assert len(broker_runner.commands_with("ps")) == 2

    def test_first_container_wins_with_warning(self, config, runner, caplog):
        runner.on(["ps", "io.kubernetes.pod.name=multi"], stdout="c1\nc2\nc3\n")
        resolver = build_resolver(config, runner)

        with caplog.at_level(logging.WARNING):
            assert resolver.resolve_container("multi") == "c1"

        assert "c2, c3" in caplog.text

    def test_unknown_pod_raises(self, resolver):
        with pytest.raises(ResolutionError):
            resolver.resolve_container("missing-0")

    def test_empty_pod_name_rejected(self, resolver, broker_runner):
        with pytest.raises(ResolutionError):
            resolver.resolve_container("")
        assert broker_runner.calls == []

    def test_container_listing_falls_back_to_docker(self, config, runner):
        runner.on(["ps", "--filter", "label=io.kubernetes.pod.name=legacy-0"], stdout="d0ck3r\n")
        resolver = build_resolver(config, runner)

        assert resolver.resolve_container("legacy-0") == "d0ck3r"
        # crictl is asked first even though docker was listed first
        assert runner.calls[0]["command"][0] == "crictl"


class TestPidResolution:
    def test_pid_falls_back_to_docker_when_crictl_fails(self, config, runner):
        runner.on(["inspect", "{{.info.pid}}"], returncode=1)
        runner.on(["docker", "inspect", "abc123", "{{.State.Pid}}"], stdout="999\n")
        resolver = build_resolver(config, runner)

        assert resolver.resolve_pid("abc123") == 999

    def test_empty_crictl_output_is_a_miss(self, config, runner):
        runner.on(["inspect", "{{.info.pid}}"], stdout="\n")
        runner.on(["docker", "inspect", "{{.State.Pid}}"], stdout="1234\n")
        resolver = build_resolver(config, runner)

        assert resolver.resolve_pid("abc123") == 1234

    def test_docker_not_asked_when_crictl_answers(self, resolver, broker_runner):
        resolver.resolve_pid("abc123")

        assert broker_runner.commands_with("docker") == []

    def test_both_backends_failing_is_an_error(self, config, runner):
        resolver = build_resolver(config, runner)

        with pytest.raises(ResolutionError):
            resolver.resolve_pid("abc123")

    def test_stopped_container_pid_zero_is_a_miss(self, config, runner):
        runner.on(["inspect", "{{.info.pid}}"], stdout="0\n")
        resolver = build_resolver(config, runner)

        with pytest.raises(ResolutionError):
            resolver.resolve_pid("abc123")


class TestRootPathResolution:
    def test_rootfs_sentinel_uses_proc_root(self, resolver, config):
        pid = resolver.resolve_pid("abc123")

        assert resolver.resolve_root_path("abc123") == os.path.join(
            config.proc_root, str(pid), "root"
        )

    def test_explicit_root_path_is_used(self, config, runner):
        runner.on(
            ["inspect", "{{.info.runtimeSpec.root.path}}"],
            stdout="/run/containerd/io.containerd.runtime.v2.task/k8s.io/abc123/rootfs\n",
        )
        resolver = build_resolver(config, runner)

        assert (
            resolver.resolve_root_path("abc123")
            == "/run/containerd/io.containerd.runtime.v2.task/k8s.io/abc123/rootfs"
        )

    def test_failed_root_query_falls_back(self, config, runner):
        runner.on(["docker", "inspect", "{{.State.Pid}}"], stdout="77\n")
        resolver = build_resolver(config, runner)

        assert resolver.resolve_root_path("abc123") == os.path.join(
            config.proc_root, "77", "root"
        )

    def test_root_path_fails_only_when_pid_fails(self, config, runner):
        resolver = build_resolver(config, runner)

        with pytest.raises(ResolutionError):
            resolver.resolve_root_path("abc123")


def test_crictl_uses_configured_endpoint(config, broker_runner):
    config.runtime_endpoint = "unix:///run/containerd/containerd.sock"
    CrictlRuntime(config=config, runner=broker_runner).find_containers("broker-0")

    assert broker_runner.calls[0]["env"] == {
        "CONTAINER_RUNTIME_ENDPOINT": "unix:///run/containerd/containerd.sock"
    }
