import logging
import os
import shutil

from k8s_diagnostics_toolbox.config import ToolboxConfig
from k8s_diagnostics_toolbox.errors import AttachError, RelocationError, ToolNotFoundError
from k8s_diagnostics_toolbox.process import run_cmd
from k8s_diagnostics_toolbox.relocator import restore_ownership

logger = logging.getLogger(__name__)


def java_available() -> bool:
    return shutil.which("java") is not None


def jfr_to_flamegraph(
    jfr_file: str,
    flamegraph_file: str | None = None,
    config: ToolboxConfig | None = None,
    runner=None,
) -> str:
    """
    Render a JFR recording as an HTML flamegraph with async-profiler's
    converter. Returns the path of the HTML file.
    """
    config = config or ToolboxConfig()
    runner = runner or run_cmd

    if not os.path.isfile(jfr_file):
        raise RelocationError(f"File {jfr_file} doesn't exist.")
    if not flamegraph_file:
        flamegraph_file = os.path.splitext(jfr_file)[0] + ".html"

    converter = config.require_tool("async-profiler", os.path.join("build", "converter.jar"))
    result = runner(["java", "-cp", converter, "jfr2flame", jfr_file, flamegraph_file])
    if not result.ok:
        raise AttachError(
            f"jfr2flame failed for {jfr_file}: {(result.stderr or '').strip()}",
            returncode=result.returncode,
            output=result.stderr,
        )

    restore_ownership(flamegraph_file)
    return flamegraph_file


def auto_convert(jfr_file: str | None, config: ToolboxConfig | None = None) -> str | None:
    if not jfr_file or not os.path.isfile(jfr_file):
        return None
    if not java_available():
        logger.info("java not found, skipping flamegraph conversion")
        return None
    try:
        return jfr_to_flamegraph(jfr_file, config=config)
    except (AttachError, ToolNotFoundError) as e:
        logger.warning(f"Flamegraph conversion skipped: {e}")
        return None
