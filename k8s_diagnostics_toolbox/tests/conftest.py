import os

import pytest

from k8s_diagnostics_toolbox.config import ToolboxConfig
from k8s_diagnostics_toolbox.process import CommandResult
from k8s_diagnostics_toolbox.relocator import OutputRelocator
from k8s_diagnostics_toolbox.resolver import ContainerResolver
from k8s_diagnostics_toolbox.runtimes.crictl_runtime import CrictlRuntime
from k8s_diagnostics_toolbox.runtimes.docker_runtime import DockerRuntime

# ----------------------------
# Fake command runner
# ----------------------------


class FakeRunner:
    """
    Stands in for run_cmd. A rule matches when all of its tokens appear
    in the command; the first matching rule wins. Unmatched commands
    fail with exit code 1.
    """

    def __init__(self):
        self.rules = []
        self.calls = []

    def on(self, tokens, stdout="", returncode=0, stderr="", effect=None):
        self.rules.append((list(tokens), CommandResult(returncode, stdout, stderr), effect))
        return self

    def __call__(self, command, capture_output=True, env=None):
        self.calls.append({"command": list(command), "env": env})
        for tokens, result, effect in self.rules:
            if all(t in command for t in tokens):
                if effect is not None:
                    effect(command)
                return result
        return CommandResult(1, "", "unexpected command")

    def commands_with(self, *tokens):
        return [c["command"] for c in self.calls if all(t in c["command"] for t in tokens)]


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def config(tmp_path):
    cache = tmp_path / "cache"
    (cache / "jattach").mkdir(parents=True)
    (cache / "jattach" / "jattach").write_text("#!/bin/sh\n")
    (tmp_path / "proc").mkdir()
    return ToolboxConfig(
        cache_dir=str(cache),
        proc_root=str(tmp_path / "proc"),
        tools={"crictl": "crictl"},
    )


@pytest.fixture
def container_root(config):
    """
    Host view of container abc123 (pid 4821) through /proc/<pid>/root.
    """
    root = os.path.join(config.proc_root, "4821", "root")
    os.makedirs(os.path.join(root, "tmp"))
    return root


@pytest.fixture
def broker_runner(runner):
    """
    crictl knows pod broker-0 -> abc123 -> pid 4821, no explicit root path.
    """
    runner.on(["ps", "io.kubernetes.pod.name=broker-0"], stdout="abc123\n")
    runner.on(["inspect", "{{.info.pid}}", "abc123"], stdout="4821\n")
    runner.on(["inspect", "{{.info.runtimeSpec.root.path}}", "abc123"], stdout="rootfs\n")
    return runner


@pytest.fixture
def resolver(config, broker_runner):
    runtimes = [
        CrictlRuntime(config=config, runner=broker_runner),
        DockerRuntime(config=config, runner=broker_runner),
    ]
    return ContainerResolver(runtimes, config=config)


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    cwd = tmp_path / "cwd"
    cwd.mkdir()
    monkeypatch.chdir(cwd)
    monkeypatch.delenv("SUDO_USER", raising=False)
    return cwd


@pytest.fixture
def relocator(workdir):
    return OutputRelocator(environ={})


@pytest.fixture
def proc_sys(config):
    """
    Kernel perf settings under the fake proc root, both stricter than
    what async-profiler wants.
    """
    kernel = os.path.join(config.proc_root, "sys", "kernel")
    os.makedirs(kernel)
    for name, value in (("perf_event_paranoid", "2"), ("kptr_restrict", "1")):
        with open(os.path.join(kernel, name), "w") as f:
            f.write(value + "\n")
    return kernel


@pytest.fixture
def profiler_cache(config):
    cache = os.path.join(config.cache_dir, "async-profiler")
    os.makedirs(os.path.join(cache, "build"))
    with open(os.path.join(cache, "profiler.sh"), "w") as f:
        f.write("#!/bin/sh\n")
    with open(os.path.join(cache, "build", "libasyncProfiler.so"), "w") as f:
        f.write("ELF")
    return cache
