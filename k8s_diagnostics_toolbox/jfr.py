import logging
import os
import shutil

from k8s_diagnostics_toolbox.attach import AttachInvoker
from k8s_diagnostics_toolbox.config import ToolboxConfig
from k8s_diagnostics_toolbox.errors import AttachError, DiagnosticsError, StagingError
from k8s_diagnostics_toolbox.relocator import OutputRelocator
from k8s_diagnostics_toolbox.resolver import ContainerTarget
from k8s_diagnostics_toolbox.sessions import JFR, SessionStore

logger = logging.getLogger(__name__)

RECORDING_NAME = "recording"
RECORDING_FILE = "recording.jfr"
SETTINGS_FILE = "profiling.jfc"
DEFAULT_SETTINGS = "profile"


class JfrController:
    """
    Flight Recorder session with a fixed recording name, controlled via jcmd.
    """

    def __init__(
        self,
        config: ToolboxConfig | None = None,
        invoker: AttachInvoker | None = None,
        relocator: OutputRelocator | None = None,
        store: SessionStore | None = None,
    ):
        self.config = config or ToolboxConfig()
        self.invoker = invoker or AttachInvoker(self.config)
        self.relocator = relocator or OutputRelocator()
        self.store = store or SessionStore(self.config.state_dir)

    @property
    def recording_path(self) -> str:
        return self.config.container_path(RECORDING_FILE)

    @property
    def settings_path(self) -> str:
        return self.config.container_path(SETTINGS_FILE)

    def start(
        self,
        target: ContainerTarget,
        settings_file: str | None = None,
        force: bool = False,
    ) -> str:
        record = self.store.begin(
            target.pod_name, target.container_id, JFR, force=force
        )

        settings_file = settings_file or self.config.jfr_settings
        settings = DEFAULT_SETTINGS
        try:
            if settings_file and os.path.isfile(settings_file):
                settings = self._stage_settings(target, settings_file)
                record.staged_files.append(settings)
                self.store.save(record)
            elif settings_file:
                logger.warning(
                    f"Settings file {settings_file} not found, using '{settings}'"
                )

            output = self.invoker.jcmd(
                target.pid, f"JFR.start name={RECORDING_NAME} settings={settings}"
            )
        except DiagnosticsError:
            self.store.clear(target.container_id, JFR)
            self._remove_staged(target, record.staged_files)
            raise

        self.store.mark_recording(record)
        return output

    def _stage_settings(self, target: ContainerTarget, settings_file: str) -> str:
        logger.info(f"Using profiling settings from {settings_file}")
        destination = target.host_path(self.settings_path)
        try:
            shutil.copyfile(settings_file, destination)
        except OSError as e:
            raise StagingError(f"Could not copy {settings_file} to {destination}: {e}") from e
        return self.settings_path

    def _jcmd_to_file(self, target: ContainerTarget, command: str) -> str:
        output = self.invoker.jcmd(
            target.pid,
            f"JFR.{command} name={RECORDING_NAME} filename={self.recording_path}",
        )
        if output:
            logger.info(output.strip())
        return output

    def _relocate_recording(self, target: ContainerTarget) -> str | None:
        return self.relocator.relocate(
            target.root_path, self.recording_path, RECORDING_FILE
        )

    def stop(self, target: ContainerTarget) -> str | None:
        record = self.store.load(target.container_id, JFR)
        if record is None:
            logger.warning(
                f"No JFR session recorded for pod {target.pod_name}, stopping anyway"
            )

        # The recording file is collected even when JFR.stop reports an error
        error: AttachError | None = None
        try:
            self._jcmd_to_file(target, "stop")
        except AttachError as e:
            error = e

        try:
            artifact = self._relocate_recording(target)
        finally:
            staged = record.staged_files if record else []
            self._remove_staged(target, staged or [self.settings_path])
            self.store.clear(target.container_id, JFR)

        if error is not None and artifact is None:
            raise error
        return artifact

    def dump(self, target: ContainerTarget) -> str | None:
        if self.store.load(target.container_id, JFR) is None:
            logger.warning(f"No JFR session recorded for pod {target.pod_name}")
        self._jcmd_to_file(target, "dump")
        return self._relocate_recording(target)

    def check(self, target: ContainerTarget) -> str:
        return self.invoker.jcmd(target.pid, "JFR.check")

    def _remove_staged(self, target: ContainerTarget, staged: list[str]) -> None:
        for path in staged:
            host_path = target.host_path(path)
            if os.path.isfile(host_path):
                os.remove(host_path)
