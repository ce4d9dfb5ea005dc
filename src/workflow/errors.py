"""Error taxonomy for the media analysis pipeline and job queue.

Pipeline errors carry a ``retryable`` flag that the job queue consults
when an attempt fails:

- ValidationError: input fails a precondition, retrying would fail the same way
- ToolExecutionError: an external process exited non-zero, eligible for retry
- TranscriptionError: tool failure during the transcription stage
- AnalysisError, WebhookDeliveryError, CleanupError: absorbed where raised,
  never change a job's outcome
- JobCancelledError: the attempt was cancelled on request
"""

from typing import Optional, Sequence

# Keep only the tail of captured diagnostics in error messages
_MAX_DIAGNOSTIC_CHARS = 2000


class PipelineError(Exception):
    """Base class for errors raised while processing a job attempt."""

    retryable = True


class ValidationError(PipelineError):
    """Input failed a precondition (e.g. media longer than the allowed maximum)."""

    retryable = False


class ToolExecutionError(PipelineError):
    """An external tool exited non-zero or produced unusable output.

    Attributes:
        description: Human-readable name of the step that failed.
        command: Full command line that was executed, if any.
        returncode: Process exit code, or None if the process never ran
            to completion (not found, killed, timed out).
        stderr: Captured diagnostic output.
    """

    def __init__(
        self,
        description: str,
        command: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        self.description = description
        self.command = list(command) if command else []
        self.returncode = returncode
        self.stderr = stderr or ""

        diagnostics = self.stderr.strip()
        if len(diagnostics) > _MAX_DIAGNOSTIC_CHARS:
            diagnostics = "..." + diagnostics[-_MAX_DIAGNOSTIC_CHARS:]

        if returncode is None:
            message = f"{description} failed"
        else:
            message = f"{description} failed with code {returncode}"
        if diagnostics:
            message = f"{message}: {diagnostics}"
        super().__init__(message)


class TranscriptionError(ToolExecutionError):
    """Transcription stage failure. Fatal to the attempt."""


class AnalysisError(PipelineError):
    """Analysis backend failure. Downgraded to a partial result."""


class WebhookDeliveryError(PipelineError):
    """Webhook delivery failed. Logged, never propagated."""


class CleanupError(PipelineError):
    """Removing session artifacts failed. Logged, never masks the outcome."""


class JobCancelledError(PipelineError):
    """The attempt was cancelled while in flight."""

    retryable = False


class JobNotFoundError(KeyError):
    """No job is tracked under the requested id."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(job_id)

    def __str__(self) -> str:
        return f"No job found with ID: {self.job_id}"


class QueueFullError(Exception):
    """The queue is at capacity and cannot admit another job."""

    def __init__(self, waiting: int, active: int, capacity: int):
        self.waiting = waiting
        self.active = active
        self.capacity = capacity
        super().__init__(
            f"Processing queue is at capacity ({waiting + active}/{capacity})"
        )


class JobStateError(Exception):
    """The requested operation is not valid in the job's current state."""
