import glob
import importlib.util
import os
from typing import Any

import yaml

from k8s_diagnostics_toolbox.config import ToolboxConfig
from k8s_diagnostics_toolbox.runtimes.base_runtime import RuntimeBackend

# ----------------------------
# Dynamic Runtime Loader
# ----------------------------


def validate_runtime(runtime: RuntimeBackend):
    for field in ("name", "priority"):
        if not hasattr(runtime, field):
            raise ValueError(f"Runtime {runtime} missing required field '{field}'")

    if not isinstance(runtime.name, str) or not runtime.name:
        raise ValueError("Runtime.name must be a non-empty string")
    if not isinstance(runtime.priority, int):
        raise ValueError(f"Runtime {runtime.name}.priority must be an integer")
    if not (0 <= runtime.priority <= 1000):
        raise ValueError(f"Runtime {runtime.name}.priority must be between 0 and 1000")

    for capability in ("find_containers", "container_pid", "root_path", "exec_command"):
        if not callable(getattr(runtime, capability, None)):
            raise ValueError(
                f"Runtime {runtime.name} must implement callable '{capability}'"
            )


def load_runtimes(
    runtime_folder=None, config: ToolboxConfig | None = None, runner=None
) -> list[RuntimeBackend]:
    """
    Instantiate every RuntimeBackend subclass found in the folder,
    ordered by priority (lowest first).
    """
    if runtime_folder is None:
        runtime_folder = os.path.join(os.path.dirname(__file__), "runtimes")

    runtimes: list[RuntimeBackend] = []

    for file in sorted(glob.glob(os.path.join(runtime_folder, "*.py"))):
        if os.path.basename(file) in ("base_runtime.py", "__init__.py"):
            continue
        module_name = os.path.splitext(os.path.basename(file))[0]
        spec = importlib.util.spec_from_file_location(module_name, file)
        if spec is None or spec.loader is None:
            continue
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        for attr in dir(module):
            cls = getattr(module, attr)
            if (
                isinstance(cls, type)
                and issubclass(cls, RuntimeBackend)
                and cls is not RuntimeBackend
                and cls.__module__ == module_name
            ):
                runtimes.append(cls(config=config, runner=runner))

    # ---- CONTRACT VALIDATION ----
    for runtime in runtimes:
        validate_runtime(runtime)

    return sorted(runtimes, key=lambda r: r.priority)


def load_plugins(
    plugin_folder=None, config: ToolboxConfig | None = None, runner=None
) -> list[RuntimeBackend]:
    if plugin_folder is None or not os.path.exists(plugin_folder):
        return []
    return load_runtimes(plugin_folder, config=config, runner=runner)


def default_runtimes(
    config: ToolboxConfig | None = None, runner=None
) -> list[RuntimeBackend]:
    config = config or ToolboxConfig()
    runtimes = load_runtimes(config=config, runner=runner) + load_plugins(
        config.plugin_folder, config=config, runner=runner
    )
    return sorted(runtimes, key=lambda r: r.priority)


# ----------------------------
# Profiler presets
# ----------------------------


class ProfilerPreset:
    def __init__(self, spec: dict[str, Any]):
        self.name = spec["name"]
        self.description = spec.get("description", "")
        self.start = [str(a) for a in spec["start"]] if spec.get("start") else None
        self.stop = [str(a) for a in spec.get("stop", [])]
        self.convert = bool(spec.get("convert", False))
        self.spec = spec

    @property
    def interactive(self) -> bool:
        return self.start is not None


def validate_preset(spec: Any):
    if not isinstance(spec, dict):
        raise ValueError("Each preset must be a dict")
    name = spec.get("name")
    if not isinstance(name, str) or not name:
        raise ValueError("Preset.name must be a non-empty string")

    allowed_keys = {"name", "description", "start", "stop", "convert"}
    unknown = set(spec) - allowed_keys
    if unknown:
        raise ValueError(f"Preset {name} has invalid keys: {sorted(unknown)}")

    if not isinstance(spec.get("stop"), list) or not spec["stop"]:
        raise ValueError(f"Preset {name}.stop must be a non-empty list")
    if "start" in spec and not isinstance(spec["start"], list):
        raise ValueError(f"Preset {name}.start must be a list")


def build_presets(spec: Any) -> list[ProfilerPreset]:
    """
    Accepts either a single dict or a list of dicts from YAML file.
    """
    if not spec:
        return []
    items = [spec] if isinstance(spec, dict) else spec
    if not isinstance(items, list):
        raise ValueError("YAML content must be a dict or a list of dicts")

    presets = []
    for item in items:
        validate_preset(item)
        presets.append(ProfilerPreset(item))
    return presets


def load_presets(preset_folder=None) -> dict[str, ProfilerPreset]:
    if preset_folder is None:
        preset_folder = os.path.join(os.path.dirname(__file__), "presets")

    presets: dict[str, ProfilerPreset] = {}
    for yfile in sorted(glob.glob(os.path.join(preset_folder, "*.yaml"))):
        with open(yfile, encoding="utf-8") as f:
            for preset in build_presets(yaml.safe_load(f)):
                if preset.name in presets:
                    raise ValueError(f"Duplicate preset '{preset.name}' in {yfile}")
                presets[preset.name] = preset
    return presets
