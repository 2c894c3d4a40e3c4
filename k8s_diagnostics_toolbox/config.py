import os
from dataclasses import dataclass, field, fields
from typing import Any

import yaml

from k8s_diagnostics_toolbox.errors import ConfigError, ToolNotFoundError

DEFAULT_CONFIG_PATH = os.path.join(
    "~", ".config", "k8s-diagnostics-toolbox", "config.yaml"
)
MICROK8S_CONTAINERD_SOCKET = "/var/snap/microk8s/common/run/containerd.sock"


@dataclass
class ToolboxConfig:
    """
    Node-local settings. Every field has a usable default so the toolbox
    runs without any configuration file.
    """

    cache_dir: str = os.path.join("~", ".cache", "k8s-diagnostics-toolbox")
    state_dir: str = ""
    runtime_endpoint: str | None = None
    container_tmp: str = "/tmp"
    jfr_settings: str | None = None
    plugin_folder: str | None = None
    proc_root: str = "/proc"
    tools: dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        self.cache_dir = os.path.expanduser(self.cache_dir)
        if not self.state_dir:
            self.state_dir = os.path.join(self.cache_dir, "sessions")
        self.state_dir = os.path.expanduser(self.state_dir)
        if self.jfr_settings:
            self.jfr_settings = os.path.expanduser(self.jfr_settings)
        if self.plugin_folder:
            self.plugin_folder = os.path.expanduser(self.plugin_folder)

    def tool_cache_dir(self, tool: str) -> str:
        return os.path.join(self.cache_dir, tool)

    def tool_path(self, tool: str, binary: str | None = None) -> str:
        if tool in self.tools:
            return os.path.expanduser(self.tools[tool])
        return os.path.join(self.tool_cache_dir(tool), binary or tool)

    def require_tool(self, tool: str, binary: str | None = None) -> str:
        path = self.tool_path(tool, binary)
        if not os.path.exists(path):
            raise ToolNotFoundError(
                f"{tool} not found at {path}, install it into {self.cache_dir}"
            )
        return path

    def container_path(self, name: str) -> str:
        """
        Path of a well-known file inside the container's temporary directory.
        """
        return os.path.join(self.container_tmp, name)

    def runtime_env(self) -> dict[str, str]:
        if self.runtime_endpoint:
            return {"CONTAINER_RUNTIME_ENDPOINT": self.runtime_endpoint}
        if os.path.exists(MICROK8S_CONTAINERD_SOCKET):
            return {
                "CONTAINER_RUNTIME_ENDPOINT": f"unix://{MICROK8S_CONTAINERD_SOCKET}"
            }
        return {}


def _validate_document(doc: Any, path: str) -> dict[str, Any]:
    if doc is None:
        return {}
    if not isinstance(doc, dict):
        raise ConfigError(f"Config {path} must be a mapping")

    allowed = {f.name for f in fields(ToolboxConfig)}
    unknown = set(doc) - allowed
    if unknown:
        raise ConfigError(f"Config {path} has unknown keys: {sorted(unknown)}")

    if "tools" in doc and not isinstance(doc["tools"], dict):
        raise ConfigError(f"Config {path}: tools must be a mapping")
    return doc


def load_config(
    path: str | None = None, environ: dict[str, str] | None = None
) -> ToolboxConfig:
    environ = os.environ if environ is None else environ

    explicit = path or environ.get("K8S_DIAG_CONFIG")
    config_path = os.path.expanduser(explicit or DEFAULT_CONFIG_PATH)

    values: dict[str, Any] = {}
    if os.path.exists(config_path):
        try:
            with open(config_path, encoding="utf-8") as f:
                values = _validate_document(yaml.safe_load(f), config_path)
        except yaml.YAMLError as e:
            raise ConfigError(f"Config {config_path} is not valid YAML: {e}") from e
    elif explicit:
        raise ConfigError(f"Config file {config_path} does not exist")

    # ----------------------------
    # Environment overrides
    # ----------------------------
    if environ.get("CONTAINER_RUNTIME_ENDPOINT"):
        values["runtime_endpoint"] = environ["CONTAINER_RUNTIME_ENDPOINT"]
    if environ.get("K8S_DIAG_CACHE_DIR"):
        values["cache_dir"] = environ["K8S_DIAG_CACHE_DIR"]

    return ToolboxConfig(**values)
