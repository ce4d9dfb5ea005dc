"""Transcription backends.

Two implementations are available, selected by TRANSCRIPTION_BACKEND:

- whisper-cli: runs the openai-whisper executable as an external tool,
  so it can be cancelled like any other stage.
- faster-whisper: runs CTranslate2 inference in-process. The model is
  loaded lazily on first use and shared by all concurrent jobs.
"""

import gc
import json
import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from src.config import Config
from src.media.models import Transcript, TranscriptSegment
from src.workflow.errors import JobCancelledError, TranscriptionError
from src.workflow.interfaces import TranscriptionBackend
from src.workflow.session import Session
from src.workflow.tools import ExternalToolInvoker

logger = logging.getLogger(__name__)


class WhisperCliTranscriber(TranscriptionBackend):
    """Transcribes audio with the `whisper` command line tool."""

    name = "whisper-cli"

    def __init__(
        self,
        invoker: ExternalToolInvoker,
        whisper_path: str = "whisper",
        model: str = "base",
        language: str = "auto",
    ):
        self.invoker = invoker
        self.whisper_path = whisper_path
        self.model = model
        self.language = language

    def _build_args(self, audio_path: Path, output_dir: Path) -> list:
        args = [str(audio_path), "--model", self.model]
        if self.language and self.language != "auto":
            args.extend(["--language", self.language])
        args.extend(
            [
                "--output_format",
                "json",
                "--output_dir",
                str(output_dir),
                "--fp16",
                "False",
                "--verbose",
                "False",
            ]
        )
        return args

    def transcribe(
        self,
        audio_path: Path,
        session: Optional[Session] = None,
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> Transcript:
        """Transcribe `audio_path`; whisper writes `<audio stem>.json`.

        Raises:
            TranscriptionError: If whisper fails or its output is missing or unreadable.
        """
        audio_path = Path(audio_path)
        output_dir = session.directory("transcripts") if session else audio_path.parent

        self.invoker.invoke(
            self.whisper_path,
            self._build_args(audio_path, output_dir),
            on_progress,
            description="Transcription",
            session=session,
            error_class=TranscriptionError,
        )

        transcript_path = output_dir / f"{audio_path.stem}.json"
        if not transcript_path.exists():
            raise TranscriptionError(
                "Transcription", stderr=f"Transcript file not found: {transcript_path}"
            )

        try:
            data = json.loads(transcript_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise TranscriptionError(
                "Transcription", stderr=f"Unreadable transcript: {e}"
            ) from e

        transcript = Transcript.from_whisper_json(data)
        logger.info(
            f"Transcribed {len(transcript.segments)} segments "
            f"({len(transcript.text)} chars, language={transcript.language})"
        )
        return transcript


class FasterWhisperTranscriber(TranscriptionBackend):
    """In-process transcription with faster-whisper.

    Configuration (via Config):
        WHISPER_MODEL: Model size (default: "base")
        WHISPER_DEVICE: Device to use (default: "cpu")
        WHISPER_COMPUTE_TYPE: Compute type (default: "int8")
        WHISPER_LANGUAGE: Language code, or "auto" to detect
    """

    name = "faster-whisper"

    def __init__(
        self,
        model_size: str = "base",
        device: str = "cpu",
        compute_type: str = "int8",
        language: str = "auto",
    ):
        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self.language = language
        self._model = None
        self._model_lock = threading.Lock()

    def _get_model(self):
        """Lazily load the faster-whisper model."""
        with self._model_lock:
            if self._model is None:
                from faster_whisper import WhisperModel

                compute_type = self.compute_type
                # CPU doesn't support float16, use int8 instead
                if self.device == "cpu" and compute_type == "float16":
                    logger.info("CPU device: switching compute_type from float16 to int8")
                    compute_type = "int8"

                logger.info(
                    f"Loading faster-whisper model ({self.model_size}) on {self.device} "
                    f"with compute_type={compute_type}..."
                )
                self._model = WhisperModel(
                    self.model_size,
                    device=self.device,
                    compute_type=compute_type,
                )
            return self._model

    def unload_model(self) -> None:
        """Release the faster-whisper model from memory."""
        with self._model_lock:
            if self._model is not None:
                logger.info("Releasing faster-whisper model from memory")
                self._model = None
                gc.collect()

    def is_model_loaded(self) -> bool:
        return self._model is not None

    def transcribe(
        self,
        audio_path: Path,
        session: Optional[Session] = None,
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> Transcript:
        """Transcribe `audio_path`, reporting progress as audio time covered.

        Raises:
            TranscriptionError: If the model fails to load or transcribe.
            JobCancelledError: If the session is cancelled between segments.
        """
        language = None if self.language in ("", "auto") else self.language

        try:
            model = self._get_model()
            segments_iter, info = model.transcribe(
                str(audio_path),
                beam_size=5,
                language=language,
                vad_filter=True,  # Filter out silence for cleaner transcripts
            )

            segments = []
            # segments_iter is a generator; decoding happens as it is consumed
            for segment in segments_iter:
                if session is not None:
                    session.raise_if_cancelled()
                segments.append(
                    TranscriptSegment(
                        start=segment.start,
                        end=segment.end,
                        text=segment.text.strip(),
                        avg_logprob=segment.avg_logprob,
                    )
                )
                if on_progress is not None and info.duration:
                    on_progress(min(segment.end / info.duration, 1.0))
        except JobCancelledError:
            raise
        except Exception as e:
            raise TranscriptionError("Transcription", stderr=str(e)) from e

        transcript = Transcript(
            text=" ".join(s.text for s in segments),
            segments=segments,
            language=info.language or "unknown",
        )
        logger.info(
            f"Transcribed {len(segments)} segments "
            f"({len(transcript.text)} chars, language={transcript.language})"
        )
        return transcript


def create_transcriber(config: Config, invoker: ExternalToolInvoker) -> TranscriptionBackend:
    """Build the transcription backend selected by configuration."""
    if config.TRANSCRIPTION_BACKEND == "faster-whisper":
        return FasterWhisperTranscriber(
            model_size=config.WHISPER_MODEL,
            device=config.WHISPER_DEVICE,
            compute_type=config.WHISPER_COMPUTE_TYPE,
            language=config.WHISPER_LANGUAGE,
        )
    return WhisperCliTranscriber(
        invoker,
        whisper_path=config.WHISPER_PATH,
        model=config.WHISPER_MODEL,
        language=config.WHISPER_LANGUAGE,
    )
