import logging
import os
import select
import signal
import sys
import threading

logger = logging.getLogger(__name__)

REQUESTED = "requested"
TIMEOUT = "timeout"
KEYPRESS = "keypress"
SIGNAL = "signal"

_POLL_INTERVAL = 0.2


class StopSignal:
    """
    Cancellation channel for a running session. Whoever calls stop()
    first decides the reason.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self.reason: str | None = None

    def stop(self, reason: str = REQUESTED) -> None:
        with self._lock:
            if self.reason is None:
                self.reason = reason
            self._event.set()

    @property
    def stopped(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> str:
        if not self._event.wait(timeout):
            self.stop(TIMEOUT)
        return self.reason or REQUESTED


def _watch_keypress(stream, stop_signal: StopSignal) -> None:
    import termios
    import tty

    fd = stream.fileno()
    saved = termios.tcgetattr(fd)
    try:
        tty.setcbreak(fd)
        while not stop_signal.stopped:
            ready, _, _ = select.select([fd], [], [], _POLL_INTERVAL)
            if ready:
                os.read(fd, 1)
                stop_signal.stop(KEYPRESS)
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


def _is_tty(stream) -> bool:
    try:
        return stream.isatty()
    except (AttributeError, ValueError, OSError):
        return False


def wait_for_stop(
    prompt: str = "Press any key to stop profiling...",
    timeout: float | None = None,
    stop_signal: StopSignal | None = None,
    keypress: bool = True,
    stream=None,
) -> str:
    """
    Block until a keypress, SIGINT/SIGTERM, the timeout or a programmatic
    stop_signal.stop(). Returns the reason.
    """
    stop_signal = stop_signal or StopSignal()
    stream = stream or sys.stdin

    previous_handlers = {}
    if threading.current_thread() is threading.main_thread():
        for signum in (signal.SIGINT, signal.SIGTERM):
            previous_handlers[signum] = signal.signal(
                signum, lambda *_: stop_signal.stop(SIGNAL)
            )

    watcher = None
    if keypress and _is_tty(stream):
        print(prompt, flush=True)
        watcher = threading.Thread(
            target=_watch_keypress, args=(stream, stop_signal), daemon=True
        )
        watcher.start()
    elif timeout is not None:
        logger.info(f"Stopping in {timeout:g}s")

    try:
        reason = stop_signal.wait(timeout)
    finally:
        stop_signal.stop(reason=REQUESTED)
        if watcher is not None:
            watcher.join()
        for signum, handler in previous_handlers.items():
            signal.signal(signum, handler)

    logger.debug(f"Stopped ({reason})")
    return reason
