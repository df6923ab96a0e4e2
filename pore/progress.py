"""
Progress reporting for pore.

Everything here goes to stderr so stdout carries only command output
(forall blocks, status JSON lines, parsed manifests). Project jobs report
from worker threads, so every write is serialized.
"""

import os
import sys
import threading
from typing import Optional

_COLORS = {
    'red': '\033[31m',
    'green': '\033[32m',
    'yellow': '\033[33m',
}
_RESET = '\033[0m'


class ProgressReporter:
    """
    Line-oriented stderr reporter.

    Plain progress, warnings and success lines are shown only when enabled
    (by default, when stderr is a terminal); ``error`` and ``fatal`` lines
    are always shown.
    """

    def __init__(self, enabled: Optional[bool] = None):
        interactive = sys.stderr.isatty()
        self.enabled = interactive if enabled is None else enabled
        self.use_colors = interactive and 'NO_COLOR' not in os.environ
        self._lock = threading.Lock()

    def _emit(self, message: str, color: Optional[str] = None) -> None:
        if color and self.use_colors:
            message = f"{_COLORS[color]}{message}{_RESET}"
        with self._lock:
            print(message, file=sys.stderr, flush=True)

    def __call__(self, message: str) -> None:
        if self.enabled:
            self._emit(message)

    def success(self, message: str) -> None:
        if self.enabled:
            self._emit(message, 'green')

    def warning(self, message: str) -> None:
        if self.enabled:
            self._emit(f"warning: {message}", 'yellow')

    def error(self, message: str) -> None:
        self._emit(f"error: {message}", 'red')

    def fatal(self, message: str) -> None:
        """The last line a dying command prints; ``message`` is already prefixed."""
        self._emit(message, 'red')


_progress: Optional[ProgressReporter] = None


def get_progress(enabled: Optional[bool] = None) -> ProgressReporter:
    """
    The process-wide reporter.

    Passing ``enabled`` replaces it; ``PORE_PROGRESS=0`` or ``1`` overrides
    terminal detection for the default one.
    """
    global _progress
    if enabled is None and _progress is None:
        override = os.environ.get('PORE_PROGRESS')
        if override in ('0', '1'):
            enabled = override == '1'
    if _progress is None or enabled is not None:
        _progress = ProgressReporter(enabled)
    return _progress
