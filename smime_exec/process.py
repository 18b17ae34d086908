"""Process context and runner for the external CMS tool.

A ProcessContext owns one invocation of the tool: the child process,
the threads draining its standard output and standard error, and the
buffers those threads fill. Output is collected as a whole and handed
to the caller only once the process is terminal.

Lifecycle:
    with ProcessContext("cmsutil", poll_interval=1.0, timeout=60) as ctx:
        ctx.start(["-E", "-d", dbdir, "-r", "alice"])
        ctx.write(payload)
        ctx.close_input()
        ctx.wait_for_completion()
        ctx.raise_for_status()
        ciphertext = ctx.output
    # process killed if still alive, pipes closed, buffers zeroed

Completion is detected by polling the child with a bounded wait per
iteration. Reader threads are joined after the child is terminal, within what
is left of the deadline; they only return at end-of-data, so the output
is complete when it is read. A leftover child that keeps the pipes open
past the deadline is a timeout, never a short read.
"""

import os
import subprocess
import threading
import time
from enum import Enum
from typing import IO, Iterable, Optional, Sequence, Union

from smime_exec.credentials import secure_zero
from smime_exec.errors import (
    AlreadyRunningError,
    ProcessNotStartedError,
    ToolFailureError,
    ToolTimeoutError,
)
from smime_exec.logging import get_logger, redact_arguments

logger = get_logger(__name__)

READ_CHUNK_SIZE = 64 * 1024

Argument = Union[str, bytes]


class ProcessStatus(str, Enum):
    """State of the process owned by a context."""

    NOT_STARTED = "not-started"
    RUNNING = "running"
    EXITED = "exited"
    SIGNALED = "signaled"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessStatus.EXITED, ProcessStatus.SIGNALED)


def _drain(stream: IO[bytes], sink: bytearray) -> None:
    """Copy a pipe into a buffer until end-of-data, then close it.

    Reads the raw descriptor so no buffered-stream lock is held while
    blocked. The reader owns its stream: nobody else closes it, so a
    reader abandoned by reset() (a grandchild still holds the pipe)
    finishes on its own whenever that pipe reaches end-of-data.
    """
    fd = stream.fileno()
    try:
        while True:
            chunk = os.read(fd, READ_CHUNK_SIZE)
            if not chunk:
                break
            sink.extend(chunk)
    finally:
        stream.close()


class ProcessContext:
    """One tool invocation with its paired diagnostic stream.

    Args:
        program: Path or name of the executable
        poll_interval: Upper bound in seconds of one status poll
        timeout: Overall deadline in seconds, None to wait indefinitely
        secret_flags: Flags whose following argument is never logged
    """

    def __init__(
        self,
        program: str,
        *,
        poll_interval: float = 1.0,
        timeout: Optional[float] = None,
        secret_flags: Iterable[str] = (),
    ):
        self.program = program
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.secret_flags = set(secret_flags)

        self._process: Optional[subprocess.Popen] = None
        self._readers: list[threading.Thread] = []
        self._stdout = bytearray()
        self._stderr = bytearray()
        self._started_at: Optional[float] = None

    def __enter__(self) -> "ProcessContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.reset()

    def __repr__(self) -> str:
        return f"<ProcessContext {self.program!r} {self.status.value}>"

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    @property
    def status(self) -> ProcessStatus:
        """Current status, polling the child without blocking."""
        if self._process is None:
            return ProcessStatus.NOT_STARTED
        code = self._process.poll()
        if code is None:
            return ProcessStatus.RUNNING
        if code < 0:
            return ProcessStatus.SIGNALED
        return ProcessStatus.EXITED

    @property
    def returncode(self) -> Optional[int]:
        """Exit status after a normal exit, else None."""
        if self.status is ProcessStatus.EXITED:
            return self._process.returncode
        return None

    @property
    def signal(self) -> Optional[int]:
        """Terminating signal number after a signaled exit, else None."""
        if self.status is ProcessStatus.SIGNALED:
            return -self._process.returncode
        return None

    @property
    def succeeded(self) -> bool:
        return self.status is ProcessStatus.EXITED and self._process.returncode == 0

    @property
    def output(self) -> bytes:
        """Everything the tool wrote to standard output."""
        return bytes(self._stdout)

    @property
    def diagnostic(self) -> str:
        """Everything the tool wrote to standard error, as text."""
        return self._stderr.decode("utf-8", errors="replace")

    # ------------------------------------------------------------------
    # Runner
    # ------------------------------------------------------------------

    def start(self, arguments: Sequence[Argument]) -> None:
        """Spawn the program with the given arguments.

        Raises:
            AlreadyRunningError: The previous process has not terminated
            ToolFailureError: The program could not be executed
        """
        if self.status is ProcessStatus.RUNNING:
            raise AlreadyRunningError(
                f"{self.program} is already running (pid {self._process.pid})"
            )
        if self._process is not None:
            self.reset()

        logger.info(
            "Starting tool",
            program=self.program,
            arguments=redact_arguments(list(arguments), self.secret_flags),
        )
        try:
            self._process = subprocess.Popen(
                [self.program, *arguments],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise ToolFailureError(
                f"Could not start {self.program}: {e.strerror or e}",
                diagnostic=str(e),
            ) from e

        self._started_at = time.monotonic()
        self._readers = [
            self._spawn_reader(self._process.stdout, self._stdout, "stdout"),
            self._spawn_reader(self._process.stderr, self._stderr, "stderr"),
        ]

    def write(self, data: bytes) -> None:
        """Feed bytes to the tool's standard input."""
        process = self._require_process()
        if not data:
            return
        try:
            process.stdin.write(data)
            process.stdin.flush()
        except BrokenPipeError as e:
            self._fail_on_io("writing input", e)

    def close_input(self) -> None:
        """Signal end-of-input. Safe to call more than once."""
        process = self._require_process()
        if process.stdin.closed:
            return
        try:
            process.stdin.close()
        except BrokenPipeError as e:
            self._fail_on_io("closing input", e)

    def wait_for_completion(self) -> ProcessStatus:
        """Block until the process is terminal and all output is collected.

        Raises:
            ToolTimeoutError: The deadline passed; the process was killed
        """
        process = self._require_process()
        if not process.stdin.closed:
            self.close_input()

        deadline = None
        if self.timeout is not None:
            deadline = self._started_at + self.timeout

        while True:
            wait = self.poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    self._kill()
                    self._join_readers(timeout=self.poll_interval)
                    logger.warning("Tool timed out", program=self.program, timeout=self.timeout)
                    raise ToolTimeoutError(
                        f"{self.program} did not finish within {self.timeout:g}s",
                        diagnostic=self.diagnostic,
                        timeout=self.timeout,
                    )
                wait = min(wait, remaining)
            try:
                process.wait(timeout=wait)
                break
            except subprocess.TimeoutExpired:
                logger.debug(
                    "Tool still running",
                    pid=process.pid,
                    elapsed_s=round(time.monotonic() - self._started_at, 1),
                )

        drain_timeout = None
        if deadline is not None:
            drain_timeout = max(deadline - time.monotonic(), 0)
        if not self._join_readers(timeout=drain_timeout):
            # exited, but a leftover child still holds the output pipes
            logger.warning(
                "Tool output still open after exit", program=self.program, timeout=self.timeout
            )
            raise ToolTimeoutError(
                f"{self.program} exited but its output did not end within {self.timeout:g}s",
                diagnostic=self.diagnostic,
                timeout=self.timeout,
            )
        status = self.status
        logger.info(
            "Tool finished",
            program=self.program,
            status=status.value,
            returncode=process.returncode,
            output_bytes=len(self._stdout),
            diagnostic_bytes=len(self._stderr),
        )
        return status

    def run(self, arguments: Sequence[Argument], data: bytes = b"") -> ProcessStatus:
        """Start, feed ``data``, signal end-of-input and wait."""
        self.start(arguments)
        self.write(data)
        self.close_input()
        return self.wait_for_completion()

    def raise_for_status(self) -> None:
        """Raise ToolFailureError unless the process exited with status 0."""
        status = self.status
        if status is ProcessStatus.NOT_STARTED:
            raise ProcessNotStartedError("No process has been started")
        if status is ProcessStatus.RUNNING:
            raise ProcessNotStartedError(f"{self.program} has not finished yet")
        if self.succeeded:
            return
        if status is ProcessStatus.SIGNALED:
            message = f"{self.program} was terminated by signal {self.signal}"
        else:
            message = f"{self.program} exited with status {self.returncode}"
        raise ToolFailureError(
            message,
            diagnostic=self.diagnostic,
            returncode=self.returncode,
            signal=self.signal,
        )

    def reset(self) -> None:
        """Release the process, its pipes and both buffers.

        Kills the process if it is still running. A no-op on a context
        that never started anything. The context can be started again.
        """
        process = self._process
        if process is not None:
            if process.poll() is None:
                logger.warning("Killing unfinished tool", program=self.program, pid=process.pid)
                self._kill()
            self._discard_input()
            self._join_readers(timeout=self.poll_interval)

        secure_zero(self._stdout)
        secure_zero(self._stderr)
        self._stdout = bytearray()
        self._stderr = bytearray()
        self._process = None
        self._readers = []
        self._started_at = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_process(self) -> subprocess.Popen:
        if self._process is None:
            raise ProcessNotStartedError("No process has been started")
        return self._process

    def _spawn_reader(self, stream: IO[bytes], sink: bytearray, name: str) -> threading.Thread:
        thread = threading.Thread(
            target=_drain,
            args=(stream, sink),
            name=f"{self.program}-{name}",
            daemon=True,
        )
        thread.start()
        return thread

    def _join_readers(self, timeout: Optional[float] = None) -> bool:
        """Wait for both readers to hit end-of-data; False if one did not in time."""
        deadline = None if timeout is None else time.monotonic() + timeout
        finished = True
        for thread in self._readers:
            thread.join(None if deadline is None else max(deadline - time.monotonic(), 0))
            if thread.is_alive():
                logger.warning("Output reader did not reach end-of-data", stream=thread.name)
                finished = False
        return finished

    def _discard_input(self) -> None:
        """Close stdin, dropping whatever the tool no longer accepts."""
        stdin = self._process.stdin
        if stdin.closed:
            return
        try:
            stdin.close()
        except BrokenPipeError:
            pass

    def _kill(self) -> None:
        self._process.kill()
        self._process.wait()

    def _fail_on_io(self, action: str, error: Exception) -> None:
        """Report a pipe failure once the tool has said why it quit."""
        logger.warning("Pipe failure", program=self.program, action=action, error=str(error))
        self._discard_input()
        self.wait_for_completion()
        raise ToolFailureError(
            f"{self.program} stopped reading its input ({action}: {error})",
            diagnostic=self.diagnostic,
            returncode=self.returncode,
            signal=self.signal,
        ) from error
