import logging
from typing import Any

from k8s_diagnostics_toolbox.attach import AttachInvoker
from k8s_diagnostics_toolbox.config import ToolboxConfig
from k8s_diagnostics_toolbox.errors import AttachError, RelocationError
from k8s_diagnostics_toolbox.flamegraph import auto_convert
from k8s_diagnostics_toolbox.interactive import StopSignal, wait_for_stop
from k8s_diagnostics_toolbox.jfr import JfrController
from k8s_diagnostics_toolbox.loader import ProfilerPreset, load_presets
from k8s_diagnostics_toolbox.process import run_cmd
from k8s_diagnostics_toolbox.profiler import AsyncProfilerController
from k8s_diagnostics_toolbox.relocator import OutputRelocator
from k8s_diagnostics_toolbox.resolver import ContainerResolver
from k8s_diagnostics_toolbox.sessions import SessionStore

logger = logging.getLogger(__name__)

HEAPDUMP_FILE = "heapdump.hprof"


class Toolbox:
    """
    One entry point per diagnostic operation. Every call re-resolves the
    pod because containers may have restarted since the last command.
    """

    def __init__(
        self,
        config: ToolboxConfig | None = None,
        resolver: ContainerResolver | None = None,
        invoker: AttachInvoker | None = None,
        relocator: OutputRelocator | None = None,
        profiler: AsyncProfilerController | None = None,
        runner=None,
    ):
        self.config = config or ToolboxConfig()
        self.runner = runner or run_cmd
        self.resolver = resolver or ContainerResolver(config=self.config)
        self.invoker = invoker or AttachInvoker(self.config, runner=self.runner)
        self.relocator = relocator or OutputRelocator()
        self.store = SessionStore(self.config.state_dir)
        self.jfr_controller = JfrController(
            self.config, self.invoker, self.relocator, self.store
        )
        self.profiler = profiler or AsyncProfilerController(
            self.resolver,
            self.config,
            relocator=self.relocator,
            store=self.store,
            runner=self.runner,
        )

    # ----------------------------
    # Attach operations
    # ----------------------------

    def heapdump(self, pod_name: str) -> str:
        target = self.resolver.resolve(pod_name)
        container_file = self.config.container_path(HEAPDUMP_FILE)
        self.invoker.attach(target.pid, "dumpheap", container_file)
        artifact = self.relocator.relocate(
            target.root_path, container_file, f"heapdump_{pod_name}.hprof"
        )
        if artifact is None:
            raise RelocationError(
                f"Heap dump was not written to {target.host_path(container_file)}"
            )
        return artifact

    def threaddump(self, pod_name: str) -> str:
        target = self.resolver.resolve(pod_name)
        return self.invoker.attach(target.pid, "threaddump", "-l")

    def jattach(self, pod_name: str, args: list[str]) -> str:
        if not args:
            raise AttachError("jattach needs a command, e.g. 'properties'")
        target = self.resolver.resolve(pod_name)
        return self.invoker.attach(target.pid, *args)

    def nsenter(self, pod_name: str, args: list[str]) -> int:
        container_id = self.resolver.resolve_container(pod_name)
        pid = self.resolver.resolve_pid(container_id)
        result = self.runner(["nsenter", "-t", str(pid), *args], capture_output=False)
        return result.returncode

    def crictl(self, args: list[str]) -> int:
        runtime = self.resolver.runtime("crictl")
        result = self.runner(
            [runtime.binary(), *args], capture_output=False, env=runtime.env()
        )
        return result.returncode

    # ----------------------------
    # Flight Recorder
    # ----------------------------

    def jfr(
        self,
        pod_name: str,
        command: str,
        settings_file: str | None = None,
        force: bool = False,
    ) -> dict[str, Any]:
        target = self.resolver.resolve(pod_name)
        if command == "start":
            output = self.jfr_controller.start(target, settings_file, force=force)
            return {"output": output}
        if command == "stop":
            return {"artifact": self.jfr_controller.stop(target)}
        if command == "dump":
            return {"artifact": self.jfr_controller.dump(target)}
        if command == "check":
            return {"output": self.jfr_controller.check(target)}
        raise ValueError(f"Unknown JFR command '{command}'")

    def jfr_profile(
        self,
        pod_name: str,
        timeout: float | None = None,
        stop_signal: StopSignal | None = None,
        convert: bool = True,
    ) -> dict[str, Any]:
        logger.info("Starting JFR profiling...")
        self.jfr(pod_name, "start")
        reason = wait_for_stop(timeout=timeout, stop_signal=stop_signal)
        result = self.jfr(pod_name, "stop")
        result["stopped_by"] = reason
        if convert:
            result["flamegraph"] = auto_convert(result["artifact"], self.config)
        return result

    # ----------------------------
    # async-profiler
    # ----------------------------

    def async_profiler(
        self, pod_name: str, args: list[str], force: bool = False
    ) -> str | None:
        target = self.resolver.resolve(pod_name)
        return self.profiler.run(target, args, force=force)

    def async_profiler_profile(
        self,
        pod_name: str,
        preset_name: str,
        timeout: float | None = None,
        stop_signal: StopSignal | None = None,
    ) -> dict[str, Any]:
        presets = load_presets()
        preset: ProfilerPreset | None = presets.get(preset_name)
        if preset is None:
            raise ValueError(
                f"Unknown command '{preset_name}', expected one of {sorted(presets)}"
            )

        result: dict[str, Any] = {}
        if preset.interactive:
            logger.info(f"{preset.description}...")
            self.async_profiler(pod_name, preset.start)
            result["stopped_by"] = wait_for_stop(
                timeout=timeout, stop_signal=stop_signal
            )

        result["artifact"] = self.async_profiler(pod_name, preset.stop)
        if preset.convert:
            result["flamegraph"] = auto_convert(result["artifact"], self.config)
        return result

    def sessions(self) -> list[dict[str, Any]]:
        return [record.to_dict() for record in self.store.active()]
