"""Where tool diagnostics go when an operation fails.

A sink is handed to SmimeTool explicitly; nothing here is global.
"""

import sys
from typing import Optional, Protocol, TextIO, runtime_checkable

from smime_exec.logging import get_logger


@runtime_checkable
class DiagnosticSink(Protocol):
    """Anything that can display a failed run's standard error."""

    def show(self, diagnostic: str) -> None:
        ...


class LoggingDiagnosticSink:
    """Writes diagnostics to the log at WARNING level."""

    def __init__(self, name: str = "smime_exec.tool"):
        self._logger = get_logger(name)

    def show(self, diagnostic: str) -> None:
        for line in diagnostic.splitlines():
            if line:
                self._logger.warning("tool: %s", line)


class LastDiagnosticSink:
    """Keeps the most recent diagnostic for later display.

    Reused across failures; each failure replaces the previous text.
    Not meant to be shared by operations failing at the same time.
    """

    def __init__(self):
        self.last: Optional[str] = None
        self.count = 0

    def show(self, diagnostic: str) -> None:
        self.last = diagnostic
        self.count += 1

    def clear(self) -> None:
        self.last = None


class StreamDiagnosticSink:
    """Writes each diagnostic to a text stream, standard error by default.

    The stream is looked up when a diagnostic arrives, so a redirected
    ``sys.stderr`` is honored.
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream

    def show(self, diagnostic: str) -> None:
        if not diagnostic:
            return
        stream = self._stream if self._stream is not None else sys.stderr
        stream.write(diagnostic if diagnostic.endswith("\n") else diagnostic + "\n")
        stream.flush()
