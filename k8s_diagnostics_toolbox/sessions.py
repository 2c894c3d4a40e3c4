import json
import logging
import os
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum

from k8s_diagnostics_toolbox.errors import SessionStateError

logger = logging.getLogger(__name__)

JFR = "jfr"
ASYNC_PROFILER = "async-profiler"


class SessionState(str, Enum):
    IDLE = "idle"
    STAGED = "staged"
    RECORDING = "recording"


@dataclass
class SessionRecord:
    """
    A diagnostic session against one container with one tool.
    """

    pod_name: str
    container_id: str
    tool: str
    state: SessionState = SessionState.IDLE
    started_at: str | None = None
    staged_files: list[str] = field(default_factory=list)
    output_file: str | None = None
    sysctl_backup: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["state"] = self.state.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "SessionRecord":
        data = dict(data)
        data["state"] = SessionState(data.get("state", SessionState.IDLE.value))
        return cls(**data)


def _safe(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]", "_", value)


class SessionStore:
    """
    Session records persisted as one JSON file per (container, tool).
    """

    def __init__(self, state_dir: str):
        self.state_dir = state_dir

    def _path(self, container_id: str, tool: str) -> str:
        return os.path.join(
            self.state_dir, f"{_safe(container_id)}_{_safe(tool)}.json"
        )

    def load(self, container_id: str, tool: str) -> SessionRecord | None:
        path = self._path(container_id, tool)
        if not os.path.exists(path):
            return None
        with open(path, encoding="utf-8") as f:
            return SessionRecord.from_dict(json.load(f))

    def save(self, record: SessionRecord) -> None:
        os.makedirs(self.state_dir, exist_ok=True)
        path = self._path(record.container_id, record.tool)
        tmp = path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(record.to_dict(), f, indent=2)
        os.replace(tmp, path)

    def clear(self, container_id: str, tool: str) -> None:
        path = self._path(container_id, tool)
        if os.path.exists(path):
            os.remove(path)

    def active(self) -> list[SessionRecord]:
        if not os.path.isdir(self.state_dir):
            return []
        records = []
        for name in sorted(os.listdir(self.state_dir)):
            if not name.endswith(".json"):
                continue
            with open(os.path.join(self.state_dir, name), encoding="utf-8") as f:
                records.append(SessionRecord.from_dict(json.load(f)))
        return records

    # ----------------------------
    # Transitions
    # ----------------------------

    def begin(
        self, pod_name: str, container_id: str, tool: str, force: bool = False
    ) -> SessionRecord:
        """
        Create a STAGED record, refusing if one is already recording.
        """
        existing = self.load(container_id, tool)
        if existing and existing.state == SessionState.RECORDING and not force:
            raise SessionStateError(
                f"A {tool} session for pod {existing.pod_name} is already "
                f"recording since {existing.started_at}"
            )
        if existing:
            logger.warning(
                f"Replacing {existing.state.value} {tool} session of container "
                f"{container_id}"
            )

        record = SessionRecord(
            pod_name=pod_name,
            container_id=container_id,
            tool=tool,
            state=SessionState.STAGED,
            started_at=datetime.now().isoformat(timespec="seconds"),
        )
        self.save(record)
        return record

    def mark_recording(self, record: SessionRecord) -> SessionRecord:
        record.state = SessionState.RECORDING
        self.save(record)
        return record
