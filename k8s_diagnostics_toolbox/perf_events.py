import logging
import os

from k8s_diagnostics_toolbox.errors import StagingError

logger = logging.getLogger(__name__)

# Values async-profiler needs to sample kernel frames without extra capabilities
PERF_EVENT_SETTINGS = {
    "perf_event_paranoid": "1",
    "kptr_restrict": "0",
}


class PerfEventEnvironment:
    """
    Host-wide kernel settings for perf events. prepare() returns the
    previous values so restore() can put them back when profiling ends.
    """

    def __init__(self, proc_root: str = "/proc", settings: dict[str, str] | None = None):
        self.proc_root = proc_root
        self.settings = settings or PERF_EVENT_SETTINGS

    def _path(self, name: str) -> str:
        return os.path.join(self.proc_root, "sys", "kernel", name)

    def read(self, name: str) -> str:
        with open(self._path(name), encoding="utf-8") as f:
            return f.read().strip()

    def write(self, name: str, value: str) -> None:
        with open(self._path(name), "w", encoding="utf-8") as f:
            f.write(f"{value}\n")

    def prepare(self) -> dict[str, str]:
        backup = {}
        try:
            for name, value in self.settings.items():
                previous = self.read(name)
                backup[name] = previous
                if previous != value:
                    logger.info(f"Setting kernel.{name}={value} (was {previous})")
                    self.write(name, value)
        except OSError as e:
            if backup:
                self.restore(backup)
            raise StagingError(f"Could not set kernel perf event settings: {e}") from e
        return backup

    def restore(self, backup: dict[str, str]) -> None:
        try:
            for name, value in backup.items():
                if self.read(name) != value:
                    logger.info(f"Restoring kernel.{name}={value}")
                    self.write(name, value)
        except OSError as e:
            raise StagingError(f"Could not restore kernel perf event settings: {e}") from e
