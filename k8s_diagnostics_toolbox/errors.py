class DiagnosticsError(Exception):
    """
    Base class for every failure surfaced by the toolbox.
    """

    exit_code = 1


class ResolutionError(DiagnosticsError):
    """
    Pod, container, pid or root path could not be resolved.
    """

    exit_code = 2


class AttachError(DiagnosticsError):
    """
    An attach or in-container control command exited non-zero.
    """

    exit_code = 3

    def __init__(self, message: str, returncode: int | None = None, output: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.output = output


class RelocationError(DiagnosticsError):
    exit_code = 4


class SessionStateError(DiagnosticsError):
    exit_code = 5


class ToolNotFoundError(DiagnosticsError):
    exit_code = 6


class ConfigError(DiagnosticsError):
    exit_code = 7


class StagingError(DiagnosticsError):
    """
    Files or kernel settings could not be prepared for a session.
    """

    exit_code = 8
