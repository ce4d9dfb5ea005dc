"""Assembly of the final job result payload."""

import time
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, Dict, Iterator, Optional

from src.media.models import MediaMetadata, Transcript
from src.workflow.models import JobOptions


class StageTimings:
    """Wall-clock duration of each pipeline stage, in seconds."""

    def __init__(self):
        self._started = time.monotonic()
        self.stages: Dict[str, float] = {}

    @contextmanager
    def measure(self, stage: str) -> Iterator[None]:
        """Time the enclosed block as `stage`, recorded even if it raises."""
        start = time.monotonic()
        try:
            yield
        finally:
            self.stages[stage] = round(time.monotonic() - start, 3)

    @property
    def total(self) -> float:
        return round(time.monotonic() - self._started, 3)

    def to_dict(self) -> Dict[str, float]:
        return dict(self.stages)


def assemble_result(
    metadata: MediaMetadata,
    transcript: Optional[Transcript],
    analysis: Optional[Dict[str, Any]],
    timings: StageTimings,
    *,
    job_id: str,
    session_id: str,
    options: JobOptions,
    tools: Optional[Dict[str, Optional[str]]] = None,
    output_sizes: Optional[Dict[str, int]] = None,
    processed_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Merge stage outputs into the result payload.

    Absent transcript or analysis are reported as None; nothing is
    synthesized for stages that did not run.
    """
    processed_at = processed_at or datetime.now(UTC)

    return {
        "success": True,
        "jobId": job_id,
        "sessionId": session_id,
        "processedAt": processed_at.isoformat(),
        "data": {
            "video": metadata.to_dict(),
            "transcript": transcript.to_dict() if transcript is not None else None,
            "analysis": analysis,
        },
        "metadata": {
            "processing": {
                "includeTranscript": options.include_transcript,
                "includeAnalysis": options.include_analysis,
                "hasTranscript": transcript is not None,
                "hasAnalysis": analysis is not None,
                "analysisDegraded": bool(analysis and "error" in analysis),
            },
            "tools": dict(tools or {}),
            "performance": {
                "stageTimings": timings.to_dict(),
                "totalProcessingTime": timings.total,
                "transcriptLength": len(transcript.text) if transcript is not None else 0,
                "outputSizes": dict(output_sizes or {}),
            },
        },
    }
