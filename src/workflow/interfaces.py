"""Collaborator interfaces consumed by the orchestrator and job queue.

The queue depends on the Pipeline interface rather than on the concrete
orchestrator, and the orchestrator depends on these stage interfaces
rather than on specific tools.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from src.media.models import MediaMetadata, Transcript
from src.workflow.models import JobPayload
from src.workflow.progress import ProgressReporter
from src.workflow.session import CancellationToken, Session

ProgressCallback = Callable[[float], None]


class PlatformAdapter(ABC):
    """Turns a media URL into metadata and a local media file."""

    @abstractmethod
    def get_metadata(self, url: str, session: Optional[Session] = None) -> MediaMetadata:
        """Fetch metadata without downloading the media."""
        pass

    @abstractmethod
    def download_media(
        self,
        url: str,
        session: Session,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Path:
        """Download the media into the session workspace.

        The file is owned by the session and removed with it.

        Returns:
            Path to the downloaded file.
        """
        pass


class AudioExtractor(ABC):
    """Converts downloaded media into a waveform suitable for transcription."""

    @abstractmethod
    def extract(
        self,
        media_path: Path,
        session: Session,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Path:
        pass


class TranscriptionBackend(ABC):
    """Speech-to-text over an audio file."""

    name: str = "transcription"

    @abstractmethod
    def transcribe(
        self,
        audio_path: Path,
        session: Optional[Session] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Transcript:
        """Transcribe audio.

        Raises:
            TranscriptionError: If transcription fails.
        """
        pass


class AnalysisBackend(ABC):
    """AI content analysis over transcript and metadata."""

    name: str = "analysis"

    @abstractmethod
    def analyze(
        self, transcript: Optional[Transcript], metadata: MediaMetadata
    ) -> Dict[str, Any]:
        """Analyze content.

        Raises:
            AnalysisError: If the backend fails.
        """
        pass


class Pipeline(ABC):
    """Runs one attempt of a job end-to-end."""

    @abstractmethod
    def run(
        self,
        job_id: str,
        payload: JobPayload,
        reporter: ProgressReporter,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Dict[str, Any]:
        """Process the payload and return the assembled result.

        Raises:
            PipelineError: On any fatal stage failure.
        """
        pass
