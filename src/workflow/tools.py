"""Uniform runner for out-of-process tools (yt-dlp, ffmpeg, whisper).

Progress is a heuristic: the fraction of an expected amount of stdout
that has been observed so far. It says nothing precise about how far a
tool actually is and is only used to move a progress bar.
"""

import logging
import shlex
import subprocess
import threading
from typing import Callable, List, Optional, Sequence, Type

from src.workflow.errors import JobCancelledError, ToolExecutionError
from src.workflow.session import Session, terminate_process

logger = logging.getLogger(__name__)


def _drain(stream, chunks: List[str]) -> None:
    """Read a stream to EOF into `chunks`."""
    for line in stream:
        chunks.append(line)


class ExternalToolInvoker:
    """Runs one external process to completion and captures its output.

    Non-zero exits become ToolExecutionError (or the requested subclass)
    carrying the captured stderr. When a Session is supplied, the process
    is registered with the session's cancellation token so a cancel
    request terminates it.

    Example:
        invoker = ExternalToolInvoker()
        output = invoker.invoke(
            "yt-dlp", ["--dump-json", "--no-download", url],
            description="Fetching metadata",
        )
    """

    DEFAULT_EXPECTED_OUTPUT = 1000  # characters of stdout treated as "done"

    def __init__(
        self,
        timeout: Optional[float] = None,
        expected_output: int = DEFAULT_EXPECTED_OUTPUT,
    ):
        """Initialize the invoker.

        Args:
            timeout: Default wall-clock limit per invocation in seconds,
                or None for no limit.
            expected_output: Output length at which the progress heuristic
                reports a stage as complete.
        """
        self.timeout = timeout
        self.expected_output = max(expected_output, 1)

    def invoke(
        self,
        command: str,
        args: Sequence[str],
        on_progress: Optional[Callable[[float], None]] = None,
        *,
        description: Optional[str] = None,
        session: Optional[Session] = None,
        timeout: Optional[float] = None,
        error_class: Type[ToolExecutionError] = ToolExecutionError,
    ) -> str:
        """Run `command` with `args` and return its captured stdout.

        Args:
            command: Executable name or path.
            args: Arguments passed to the executable.
            on_progress: Called with an estimated completion fraction in [0, 1].
            description: Human-readable step name used in logs and errors.
            session: Attempt session whose cancellation terminates the process.
            timeout: Overrides the default timeout for this call.
            error_class: ToolExecutionError subclass raised on failure.

        Returns:
            Everything the process wrote to stdout.

        Raises:
            ToolExecutionError: If the tool is missing, exits non-zero or times out.
            JobCancelledError: If the session was cancelled before or during the run.
        """
        cmd = [command, *args]
        description = description or command
        timeout = timeout if timeout is not None else self.timeout

        if session is not None:
            session.raise_if_cancelled()

        logger.debug(f"Starting: {description} ({shlex.join(cmd)})")

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
                start_new_session=True,
            )
        except FileNotFoundError as e:
            raise error_class(
                description, cmd, None, f"Executable not found: {command}"
            ) from e
        except OSError as e:
            raise error_class(description, cmd, None, str(e)) from e

        unregister = (
            session.cancel_token.register(lambda: terminate_process(process))
            if session is not None
            else None
        )

        timed_out = threading.Event()
        timer = None
        if timeout:

            def on_timeout() -> None:
                timed_out.set()
                terminate_process(process)

            timer = threading.Timer(timeout, on_timeout)
            timer.daemon = True
            timer.start()

        stderr_chunks: List[str] = []
        stderr_reader = threading.Thread(
            target=_drain, args=(process.stderr, stderr_chunks), daemon=True
        )
        stderr_reader.start()

        output: List[str] = []
        output_length = 0
        try:
            for line in process.stdout:
                output.append(line)
                output_length += len(line)
                if on_progress is not None:
                    on_progress(min(output_length / self.expected_output, 1.0))
            returncode = process.wait()
            stderr_reader.join()
        finally:
            if timer is not None:
                timer.cancel()
            if unregister is not None:
                unregister()
            if process.poll() is None:
                terminate_process(process)
            process.stdout.close()
            process.stderr.close()

        stderr = "".join(stderr_chunks)

        if session is not None and session.cancelled:
            logger.info(f"Cancelled: {description}")
            raise JobCancelledError(f"Cancelled: {session.cancel_token.reason}")

        if timed_out.is_set():
            logger.error(f"Timed out: {description} after {timeout}s")
            raise error_class(
                description, cmd, None, f"Timed out after {timeout}s. {stderr}"
            )

        if returncode != 0:
            logger.error(f"Failed: {description} (code {returncode})")
            raise error_class(description, cmd, returncode, stderr)

        logger.debug(f"Completed: {description}")
        if on_progress is not None:
            on_progress(1.0)
        return "".join(output)
