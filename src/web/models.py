"""
Pydantic models for job API request validation.

Request bodies use camelCase field names on the wire.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.workflow.models import JobOptions

_URL_SCHEMES = ("http://", "https://")


def _check_url(value: str, field_name: str) -> str:
    value = value.strip()
    if not value.startswith(_URL_SCHEMES):
        raise ValueError(f"{field_name} must start with http:// or https://")
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProcessOptions(CamelModel):
    """Processing options for a submitted job."""
    include_transcript: bool = Field(default=True, description="Extract audio and transcribe")
    include_analysis: bool = Field(default=True, description="Run AI content analysis")
    webhook_url: Optional[str] = Field(default=None, description="URL notified on completion")
    priority: int = Field(default=0, ge=0, le=10, description="Stored with the job; dispatch is FIFO")

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return _check_url(v, "webhookUrl")

    def to_job_options(self) -> JobOptions:
        return JobOptions(
            include_transcript=self.include_transcript,
            include_analysis=self.include_analysis,
            webhook_url=self.webhook_url,
            priority=self.priority,
        )


class ProcessVideoRequest(CamelModel):
    """Request body for POST /api/process-video."""
    video_url: str = Field(..., min_length=1, max_length=2048, description="Media URL to analyze")
    callback_url: Optional[str] = Field(
        default=None, description="Alias for options.webhookUrl"
    )
    options: ProcessOptions = Field(default_factory=ProcessOptions)

    @field_validator("video_url")
    @classmethod
    def validate_video_url(cls, v: str) -> str:
        return _check_url(v, "videoUrl")

    @field_validator("callback_url")
    @classmethod
    def validate_callback_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return _check_url(v, "callbackUrl")

    def job_options(self) -> JobOptions:
        options = self.options.to_job_options()
        if options.webhook_url is None and self.callback_url:
            options.webhook_url = self.callback_url
        return options


class CancelRequest(CamelModel):
    """Request body for POST /api/cancel-request."""
    job_id: str = Field(..., min_length=1, max_length=128)
    reason: Optional[str] = Field(default=None, max_length=500)
