"""Job queue and pipeline orchestration for media analysis.

Jobs flow through: submit -> dispatch (bounded concurrency) ->
metadata -> download -> audio -> transcription -> analysis ->
result assembly -> webhook, with per-attempt cleanup.
"""

from src.workflow.config import PipelineConfig, QueueConfig
from src.workflow.models import Job, JobOptions, JobPayload, JobStatus
from src.workflow.orchestrator import PipelineOrchestrator
from src.workflow.queue import JobQueue

__all__ = [
    "Job",
    "JobOptions",
    "JobPayload",
    "JobQueue",
    "JobStatus",
    "PipelineConfig",
    "PipelineOrchestrator",
    "QueueConfig",
]
