import logging
import os
import shutil

from k8s_diagnostics_toolbox.config import ToolboxConfig
from k8s_diagnostics_toolbox.errors import (
    AttachError,
    DiagnosticsError,
    StagingError,
    ToolNotFoundError,
)
from k8s_diagnostics_toolbox.perf_events import PerfEventEnvironment
from k8s_diagnostics_toolbox.process import run_cmd
from k8s_diagnostics_toolbox.relocator import OutputRelocator
from k8s_diagnostics_toolbox.resolver import ContainerResolver, ContainerTarget
from k8s_diagnostics_toolbox.sessions import ASYNC_PROFILER, SessionStore

logger = logging.getLogger(__name__)

PROFILER_DIR = "async-profiler"
PROFILER_SCRIPT = "profiler.sh"


# ----------------------------
# Argument inspection
# ----------------------------


def is_start_invocation(args: list[str]) -> bool:
    return "start" in args


def ends_session(args: list[str]) -> bool:
    return "stop" in args


def output_file_argument(args: list[str]) -> str | None:
    """
    Path following the first -f flag, as seen inside the container.
    """
    for i, arg in enumerate(args):
        if arg == "-f":
            if i + 1 < len(args):
                return args[i + 1]
            return None
    return None


class AsyncProfilerController:
    """
    Runs async-profiler's control script inside the target container.
    """

    def __init__(
        self,
        resolver: ContainerResolver,
        config: ToolboxConfig | None = None,
        relocator: OutputRelocator | None = None,
        store: SessionStore | None = None,
        environment: PerfEventEnvironment | None = None,
        runner=None,
    ):
        self.resolver = resolver
        self.config = config or resolver.config
        self.relocator = relocator or OutputRelocator()
        self.store = store or SessionStore(self.config.state_dir)
        self.environment = environment or PerfEventEnvironment(self.config.proc_root)
        self.runner = runner or run_cmd

    @property
    def container_dir(self) -> str:
        return self.config.container_path(PROFILER_DIR)

    def stage(self, target: ContainerTarget) -> None:
        destination = target.host_path(self.container_dir)
        if os.path.isdir(destination):
            return

        source = self.config.tool_cache_dir(PROFILER_DIR)
        if not os.path.isdir(source):
            raise ToolNotFoundError(f"async-profiler not found in {source}")
        logger.info(f"Copying async-profiler to {destination}")
        try:
            shutil.copytree(source, destination, symlinks=True)
        except OSError as e:
            raise StagingError(f"Could not copy async-profiler to {destination}: {e}") from e

    def execute(self, target: ContainerTarget, args: list[str]) -> None:
        runtime = self.resolver.runtime(target.backend)
        script = os.path.join(self.container_dir, PROFILER_SCRIPT)
        command = runtime.exec_command(target.container_id, [script, *args])
        result = self.runner(command, capture_output=False, env=runtime.env())
        if not result.ok:
            logger.error("Failed.")
            raise AttachError(
                f"{PROFILER_SCRIPT} {' '.join(args)} failed "
                f"(exit code {result.returncode})",
                returncode=result.returncode,
            )
        logger.info("Done.")

    def run(
        self, target: ContainerTarget, args: list[str], force: bool = False
    ) -> str | None:
        """
        Returns the relocated output file for terminal invocations that
        name one with -f, otherwise None.
        """
        if is_start_invocation(args):
            return self._start(target, args, force)
        return self._finish(target, args)

    def _start(self, target: ContainerTarget, args: list[str], force: bool) -> None:
        self.stage(target)
        record = self.store.begin(
            target.pod_name, target.container_id, ASYNC_PROFILER, force=force
        )
        record.output_file = output_file_argument(args)

        try:
            record.sysctl_backup = self.environment.prepare()
            self.store.save(record)
            self.execute(target, args)
        except DiagnosticsError:
            self.store.clear(target.container_id, ASYNC_PROFILER)
            if record.sysctl_backup:
                self.environment.restore(record.sysctl_backup)
            raise

        self.store.mark_recording(record)
        return None

    def _finish(self, target: ContainerTarget, args: list[str]) -> str | None:
        record = self.store.load(target.container_id, ASYNC_PROFILER)
        self.stage(target)
        if record is None:
            one_shot = True
            backup = self.environment.prepare()
        else:
            one_shot = False
            backup = record.sysctl_backup

        try:
            self.execute(target, args)
        finally:
            if one_shot or ends_session(args):
                self.store.clear(target.container_id, ASYNC_PROFILER)
                self.environment.restore(backup)

        logger.debug(f"Rootpath {target.root_path}")
        output_file = output_file_argument(args)
        if output_file is None:
            return None
        return self.relocator.relocate(
            target.root_path, output_file, os.path.basename(output_file)
        )
