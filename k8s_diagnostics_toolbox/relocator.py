import logging
import os
import shutil
from datetime import datetime

from k8s_diagnostics_toolbox.errors import RelocationError

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d-%H%M%S"


def timestamp(now: datetime | None = None) -> str:
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def timestamped_name(base_name: str, now: datetime | None = None) -> str:
    """
    heapdump_mypod.hprof -> heapdump_mypod_2024-01-02-030405.hprof
    """
    stem, ext = os.path.splitext(base_name)
    return f"{stem}_{timestamp(now)}{ext}"


def unique_path(path: str) -> str:
    """
    out_ts.jfr -> out_ts_1.jfr when out_ts.jfr already exists.
    """
    if not os.path.exists(path):
        return path
    stem, ext = os.path.splitext(path)
    n = 1
    while os.path.exists(f"{stem}_{n}{ext}"):
        n += 1
    return f"{stem}_{n}{ext}"


def invoking_user(environ=None) -> str | None:
    """
    The unprivileged user behind sudo, if any.
    """
    environ = os.environ if environ is None else environ
    user = environ.get("SUDO_USER")
    if user and user != "root":
        return user
    return None


def restore_ownership(path: str, environ=None) -> None:
    user = invoking_user(environ)
    if user and os.path.isfile(path):
        logger.debug(f"chown {user} {path}")
        shutil.chown(path, user=user)


class OutputRelocator:
    """
    Moves files written inside a container's mount namespace to the
    operator's working directory.
    """

    def __init__(self, target_dir: str | None = None, environ=None, clock=None):
        self.target_dir = target_dir
        self.environ = environ
        self.clock = clock or datetime.now

    def relocate(
        self, root_path: str, container_path: str, base_name: str
    ) -> str | None:
        source = os.path.join(root_path, container_path.lstrip("/"))
        if not os.path.isfile(source):
            logger.info(f"No output file at {source}")
            return None

        target = timestamped_name(base_name, self.clock())
        if self.target_dir:
            target = os.path.join(self.target_dir, target)
        target = unique_path(target)

        try:
            shutil.move(source, target)
        except OSError as e:
            raise RelocationError(f"Could not move {source} to {target}: {e}") from e
        restore_ownership(target, self.environ)
        return target
