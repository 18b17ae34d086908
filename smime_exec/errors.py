"""
Exception classes for smime-exec.
"""

from typing import Optional


class SmimeError(Exception):
    """Base exception for smime-exec errors."""
    pass


class AlreadyRunningError(SmimeError):
    """The context's process is still running - start() called twice."""
    pass


class ProcessNotStartedError(SmimeError):
    """Input, wait or output requested from a context with no process."""
    pass


class CredentialError(SmimeError):
    """Credential missing, empty, or already wiped."""
    pass


class ToolFailureError(SmimeError):
    """The external tool failed.

    ``diagnostic`` holds the tool's standard error output verbatim.
    ``returncode`` is the exit status for a normal exit, ``signal`` the
    signal number when the process was killed.
    """

    def __init__(
        self,
        message: str,
        diagnostic: str = "",
        returncode: Optional[int] = None,
        signal: Optional[int] = None,
    ):
        super().__init__(message)
        self.diagnostic = diagnostic
        self.returncode = returncode
        self.signal = signal


class ToolTimeoutError(ToolFailureError):
    """The tool did not finish before the deadline and was killed."""

    def __init__(self, message: str, diagnostic: str = "", timeout: Optional[float] = None):
        super().__init__(message, diagnostic=diagnostic)
        self.timeout = timeout
