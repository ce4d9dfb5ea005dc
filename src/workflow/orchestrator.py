"""Stage-sequencing orchestrator for one job attempt.

Runs the fixed pipeline metadata -> download -> audio extraction ->
transcription -> analysis -> result assembly -> webhook, inside a
Session whose artifacts are removed on every exit path.

Failure policy per stage:

- metadata / validation, download, audio extraction, transcription:
  abort the attempt and propagate to the job queue
- analysis: absorbed into a degraded analysis object, the job completes
- webhook: logged only
- cleanup: logged only, never masks the attempt's outcome
"""

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, Optional

from src.media.models import MediaMetadata, Transcript
from src.workflow.config import PipelineConfig
from src.workflow.errors import ValidationError
from src.workflow.interfaces import (
    AnalysisBackend,
    AudioExtractor,
    Pipeline,
    PlatformAdapter,
    TranscriptionBackend,
)
from src.workflow.models import JobPayload
from src.workflow.progress import MonotonicProgress, ProgressReporter
from src.workflow.result import StageTimings, assemble_result
from src.workflow.session import CancellationToken, Session
from src.workflow.webhook import WebhookNotifier

logger = logging.getLogger(__name__)


def _file_size(path: Optional[Path]) -> int:
    try:
        return Path(path).stat().st_size if path else 0
    except OSError:
        return 0


class PipelineOrchestrator(Pipeline):
    """Runs one attempt of a job end-to-end and reports progress.

    Collaborators are injected so tests can replace any stage.

    Example:
        orchestrator = PipelineOrchestrator(
            PipelineConfig(), platform, extractor, transcriber, analyzer,
        )
        result = orchestrator.run("job-1", JobPayload(url), NullReporter())
    """

    def __init__(
        self,
        config: PipelineConfig,
        platform: PlatformAdapter,
        audio_extractor: AudioExtractor,
        transcriber: TranscriptionBackend,
        analyzer: Optional[AnalysisBackend] = None,
        notifier: Optional[WebhookNotifier] = None,
        tools: Optional[Dict[str, str]] = None,
    ):
        """Initialize the orchestrator.

        Args:
            config: Pipeline configuration (workspace, limits, progress bands).
            platform: Adapter for metadata and media download.
            audio_extractor: Converts media into transcription input.
            transcriber: Speech-to-text backend.
            analyzer: AI analysis backend, or None when not configured.
            notifier: Webhook notifier, or None to disable webhooks.
            tools: External tool names/paths reported in result metadata.
        """
        self.config = config
        self.platform = platform
        self.audio_extractor = audio_extractor
        self.transcriber = transcriber
        self.analyzer = analyzer
        self.notifier = notifier
        self.tools = dict(tools or {})

    def _validate(self, metadata: MediaMetadata) -> None:
        duration = metadata.duration or 0
        limit = self.config.max_video_duration
        if duration > limit:
            raise ValidationError(
                f"Video duration {duration}s exceeds maximum allowed {limit}s"
            )

    def _analyze(
        self,
        transcript: Optional[Transcript],
        metadata: MediaMetadata,
        session: Session,
    ) -> Optional[Dict[str, Any]]:
        """Run analysis, degrading failures into an error-carrying object."""
        if self.analyzer is None:
            logger.info("Analysis backend not configured, skipping analysis")
            return None

        try:
            analysis = self.analyzer.analyze(transcript, metadata)
        except Exception as e:
            logger.error(f"Analysis failed for {session.session_id}: {e}")
            return self._degraded_analysis(str(e) or type(e).__name__, transcript, metadata, session)

        if not isinstance(analysis, dict):
            message = f"Analysis backend returned {type(analysis).__name__}, expected an object"
            logger.error(f"Analysis failed for {session.session_id}: {message}")
            return self._degraded_analysis(message, transcript, metadata, session)

        analysis.setdefault("metadata", {})["session_id"] = session.session_id
        return analysis

    @staticmethod
    def _degraded_analysis(
        message: str,
        transcript: Optional[Transcript],
        metadata: MediaMetadata,
        session: Session,
    ) -> Dict[str, Any]:
        return {
            "error": "Analysis failed",
            "basic_info": {
                "title": metadata.title,
                "duration": metadata.duration,
                "has_transcript": transcript is not None,
                "transcript_length": len(transcript.text) if transcript else 0,
            },
            "metadata": {
                "error": message,
                "generated_at": datetime.now(UTC).isoformat(),
                "session_id": session.session_id,
            },
        }

    def _result_tools(self, analysis: Optional[Dict[str, Any]]) -> Dict[str, Optional[str]]:
        tools: Dict[str, Optional[str]] = dict(self.tools)
        tools["transcription"] = self.transcriber.name
        model = None
        if analysis is not None and "error" not in analysis:
            model = analysis.get("metadata", {}).get("model")
        tools["analysis"] = model
        return tools

    def run(
        self,
        job_id: str,
        payload: JobPayload,
        reporter: ProgressReporter,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Dict[str, Any]:
        """Process one attempt of a job.

        Raises:
            ValidationError: If the media exceeds the duration limit.
            ToolExecutionError: If download, audio extraction or transcription fails.
            JobCancelledError: If the attempt was cancelled.
        """
        bands = self.config.bands
        options = payload.options
        progress = MonotonicProgress(reporter)
        timings = StageTimings()
        output_sizes: Dict[str, int] = {}

        session = Session(self.config.temp_dir, cancel_token=cancel_token)
        logger.info(f"Job {job_id}: starting attempt in session {session.session_id}")

        with session:
            progress.report(bands.metadata.start)
            with timings.measure("metadata"):
                metadata = self.platform.get_metadata(payload.url, session)
            self._validate(metadata)
            progress.complete(bands.metadata)

            session.raise_if_cancelled()
            logger.info(f"Job {job_id}: downloading '{metadata.title}'")
            with timings.measure("download"):
                media_path = self.platform.download_media(
                    payload.url, session, progress.band_callback(bands.download)
                )
            output_sizes["video"] = _file_size(media_path)
            progress.complete(bands.download)

            transcript = None
            if options.include_transcript:
                session.raise_if_cancelled()
                logger.info(f"Job {job_id}: extracting audio")
                with timings.measure("audio"):
                    audio_path = self.audio_extractor.extract(
                        media_path, session, progress.band_callback(bands.audio)
                    )
                output_sizes["audio"] = _file_size(audio_path)
                progress.complete(bands.audio)

                session.raise_if_cancelled()
                logger.info(f"Job {job_id}: transcribing")
                with timings.measure("transcription"):
                    transcript = self.transcriber.transcribe(
                        audio_path, session, progress.band_callback(bands.transcription)
                    )
                output_sizes["transcript"] = len(transcript.text)
                progress.complete(bands.transcription)

            analysis = None
            if options.include_analysis:
                session.raise_if_cancelled()
                logger.info(f"Job {job_id}: analyzing content")
                with timings.measure("analysis"):
                    analysis = self._analyze(transcript, metadata, session)
            progress.complete(bands.analysis)

            session.raise_if_cancelled()
            result = assemble_result(
                metadata,
                transcript,
                analysis,
                timings,
                job_id=job_id,
                session_id=session.session_id,
                options=options,
                tools=self._result_tools(analysis),
                output_sizes=output_sizes,
            )
            progress.complete(bands.assembly)

            if options.webhook_url and self.notifier is not None:
                self.notifier.notify(options.webhook_url, job_id, result)
            progress.complete(bands.webhook)

        logger.info(f"Job {job_id}: attempt completed in {timings.total}s")
        return result
