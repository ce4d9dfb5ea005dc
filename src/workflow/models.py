"""Job records tracked by the job queue."""

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, Optional


class JobStatus(str, Enum):
    """Job lifecycle states.

    waiting -> active -> completed
    waiting -> active -> waiting   (recoverable failure, attempts < max_attempts)
    waiting -> active -> failed    (terminal failure)
    """

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass
class JobOptions:
    """Processing options supplied with a job.

    Attributes:
        include_transcript: Run audio extraction and transcription.
        include_analysis: Run AI content analysis (when a backend is configured).
        webhook_url: Callback URL notified once the result is assembled.
        priority: Accepted and stored; dispatch order is FIFO.
    """

    include_transcript: bool = True
    include_analysis: bool = True
    webhook_url: Optional[str] = None
    priority: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "includeTranscript": self.include_transcript,
            "includeAnalysis": self.include_analysis,
            "webhookUrl": self.webhook_url,
            "priority": self.priority,
        }


@dataclass
class JobPayload:
    """The work requested by a caller: a media URL plus options."""

    url: str
    options: JobOptions = field(default_factory=JobOptions)


@dataclass
class Job:
    """A single unit of work tracked through the queue's state machine."""

    id: str
    payload: JobPayload
    max_attempts: int = 3
    status: JobStatus = JobStatus.WAITING
    progress: int = 0
    attempts: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    result: Optional[Dict[str, Any]] = None
    last_error: Optional[str] = None

    @property
    def finished_at(self) -> Optional[datetime]:
        """When the job reached a terminal state, if it has."""
        return self.completed_at or self.failed_at

    @property
    def duration_seconds(self) -> Optional[float]:
        """Seconds between the last start and the terminal transition."""
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def snapshot(self) -> "Job":
        """Return an independent copy safe to hand outside the queue."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses."""

        def _iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        data: Dict[str, Any] = {
            "jobId": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "videoUrl": self.payload.url,
            "options": self.payload.options.to_dict(),
            "attempts": self.attempts,
            "maxAttempts": self.max_attempts,
            "createdAt": _iso(self.created_at),
            "startedAt": _iso(self.started_at),
            "completedAt": _iso(self.completed_at),
            "failedAt": _iso(self.failed_at),
        }
        if self.status == JobStatus.COMPLETED:
            data["result"] = self.result
        if self.last_error:
            data["lastError"] = self.last_error
        return data


@dataclass
class SubmitReceipt:
    """Returned by JobQueue.submit()."""

    job_id: str
    status: JobStatus
    estimated_position: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jobId": self.job_id,
            "status": self.status.value,
            "estimatedPosition": self.estimated_position,
        }


@dataclass
class QueueStats:
    """Job counts by status."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def pending(self) -> int:
        """Jobs that count against the admission cap."""
        return self.waiting + self.active

    def to_dict(self) -> Dict[str, int]:
        return {
            "waiting": self.waiting,
            "active": self.active,
            "completed": self.completed,
            "failed": self.failed,
        }
