import os

import pytest

from k8s_diagnostics_toolbox.attach import AttachInvoker
from k8s_diagnostics_toolbox.config import ToolboxConfig
from k8s_diagnostics_toolbox.errors import AttachError, RelocationError, ToolNotFoundError
from k8s_diagnostics_toolbox.toolbox import Toolbox


@pytest.fixture
def toolbox(config, resolver, broker_runner, relocator):
    return Toolbox(
        config=config, resolver=resolver, relocator=relocator, runner=broker_runner
    )


def write_heapdump(container_root):
    def effect(command):
        with open(os.path.join(container_root, "tmp", "heapdump.hprof"), "w") as f:
            f.write("JAVA PROFILE 1.0.2")

    return effect


def test_heapdump_relocated_into_cwd(toolbox, broker_runner, container_root, workdir):
    broker_runner.on(["4821", "dumpheap"], stdout="Heap dump file created\n",
                     effect=write_heapdump(container_root))

    artifact = toolbox.heapdump("broker-0")

    assert artifact.startswith("heapdump_broker-0_")
    assert artifact.endswith(".hprof")
    assert (workdir / artifact).exists()
    assert not os.path.exists(os.path.join(container_root, "tmp", "heapdump.hprof"))

    jattach = broker_runner.commands_with("dumpheap")[0]
    # path interpreted inside the container, not the host path
    assert jattach[1:] == ["4821", "dumpheap", "/tmp/heapdump.hprof"]


def test_attach_failure_leaves_no_artifact(toolbox, broker_runner, workdir):
    broker_runner.on(["4821", "dumpheap"], returncode=1, stdout="Could not attach\n")

    with pytest.raises(AttachError) as excinfo:
        toolbox.heapdump("broker-0")

    assert excinfo.value.returncode == 1
    assert "Could not attach" in excinfo.value.output
    assert os.listdir(workdir) == []


def test_attach_is_not_retried(toolbox, broker_runner):
    broker_runner.on(["4821", "dumpheap"], returncode=1)

    with pytest.raises(AttachError):
        toolbox.heapdump("broker-0")

    assert len(broker_runner.commands_with("dumpheap")) == 1


def test_heapdump_without_file_is_relocation_error(toolbox, broker_runner, container_root):
    broker_runner.on(["4821", "dumpheap"], stdout="ok\n")

    with pytest.raises(RelocationError):
        toolbox.heapdump("broker-0")


def test_threaddump_returns_output_verbatim(toolbox, broker_runner):
    dump = 'Full thread dump OpenJDK 64-Bit Server VM:\n\n"main" #1 prio=5\n'
    broker_runner.on(["4821", "threaddump", "-l"], stdout=dump)

    assert toolbox.threaddump("broker-0") == dump


def test_jattach_passthrough(toolbox, broker_runner):
    broker_runner.on(["4821", "properties"], stdout="java.version=17\n")

    assert toolbox.jattach("broker-0", ["properties"]) == "java.version=17\n"


def test_missing_jattach_binary(tmp_path, runner):
    invoker = AttachInvoker(ToolboxConfig(cache_dir=str(tmp_path)), runner=runner)

    with pytest.raises(ToolNotFoundError):
        invoker.attach(4821, "threaddump")
    assert runner.calls == []


def test_nsenter_targets_container_pid(toolbox, broker_runner):
    broker_runner.on(["nsenter"], returncode=0)

    assert toolbox.nsenter("broker-0", ["-m", "-p", "ls"]) == 0
    assert broker_runner.commands_with("nsenter")[0] == [
        "nsenter", "-t", "4821", "-m", "-p", "ls"
    ]
