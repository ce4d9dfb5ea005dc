"""Construction of the orchestrator and job queue from configuration."""

import logging
from typing import Optional

from src.backends.analysis import create_analyzer
from src.backends.transcription import create_transcriber
from src.config import Config
from src.media.ffmpeg import FfmpegAudioExtractor
from src.media.ytdlp import YtDlpAdapter
from src.workflow.config import PipelineConfig, QueueConfig
from src.workflow.orchestrator import PipelineOrchestrator
from src.workflow.queue import JobQueue
from src.workflow.tools import ExternalToolInvoker
from src.workflow.webhook import WebhookNotifier

logger = logging.getLogger(__name__)


def create_orchestrator(config: Config) -> PipelineOrchestrator:
    """Wire the production pipeline: yt-dlp, ffmpeg, whisper and Gemini."""
    invoker = ExternalToolInvoker(timeout=config.TOOL_TIMEOUT)

    return PipelineOrchestrator(
        PipelineConfig.from_config(config),
        platform=YtDlpAdapter(
            invoker,
            ytdlp_path=config.YTDLP_PATH,
            media_format=config.YTDLP_FORMAT,
            metadata_timeout=config.METADATA_TIMEOUT,
        ),
        audio_extractor=FfmpegAudioExtractor(invoker, ffmpeg_path=config.FFMPEG_PATH),
        transcriber=create_transcriber(config, invoker),
        analyzer=create_analyzer(config),
        notifier=WebhookNotifier(
            timeout=config.WEBHOOK_TIMEOUT, user_agent=config.WEBHOOK_USER_AGENT
        ),
        tools=config.tool_paths(),
    )


def create_job_queue(config: Config, queue_config: Optional[QueueConfig] = None) -> JobQueue:
    """Create a job queue over the production pipeline. Not started."""
    queue_config = queue_config or QueueConfig.from_env()
    return JobQueue(create_orchestrator(config), queue_config)
