"""Audio extraction with ffmpeg."""

import logging
from pathlib import Path
from typing import Callable, Optional

from src.workflow.errors import ToolExecutionError
from src.workflow.interfaces import AudioExtractor
from src.workflow.session import Session
from src.workflow.tools import ExternalToolInvoker

logger = logging.getLogger(__name__)


class FfmpegAudioExtractor(AudioExtractor):
    """Produces 16 kHz mono PCM WAV, the input format whisper expects."""

    SAMPLE_RATE = 16000

    def __init__(self, invoker: ExternalToolInvoker, ffmpeg_path: str = "ffmpeg"):
        self.invoker = invoker
        self.ffmpeg_path = ffmpeg_path

    def extract(
        self,
        media_path: Path,
        session: Session,
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> Path:
        """Extract the audio track of `media_path` into the session workspace.

        Raises:
            ToolExecutionError: If ffmpeg fails or writes an empty file.
        """
        audio_path = session.path("audio", "audio.wav")

        self.invoker.invoke(
            self.ffmpeg_path,
            [
                "-i",
                str(media_path),
                "-vn",
                "-acodec",
                "pcm_s16le",
                "-ar",
                str(self.SAMPLE_RATE),
                "-ac",
                "1",
                "-progress",
                "pipe:1",
                "-nostats",
                "-y",
                str(audio_path),
            ],
            on_progress,
            description="Audio extraction",
            session=session,
        )

        if not audio_path.exists() or audio_path.stat().st_size == 0:
            raise ToolExecutionError(
                "Audio extraction", stderr=f"No audio written to {audio_path}"
            )

        logger.info(f"Extracted audio to {audio_path}")
        return audio_path
