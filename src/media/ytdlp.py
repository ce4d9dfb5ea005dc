"""Platform adapter backed by the yt-dlp executable."""

import json
import logging
from pathlib import Path
from typing import Callable, Optional

from src.media.models import MediaMetadata
from src.workflow.errors import ToolExecutionError
from src.workflow.interfaces import PlatformAdapter
from src.workflow.session import Session
from src.workflow.tools import ExternalToolInvoker

logger = logging.getLogger(__name__)


class YtDlpAdapter(PlatformAdapter):
    """Fetches metadata and media for any URL yt-dlp supports.

    Example:
        adapter = YtDlpAdapter(ExternalToolInvoker())
        metadata = adapter.get_metadata("https://youtube.com/watch?v=...")
    """

    DEFAULT_FORMAT = "best[height<=720]/best"

    def __init__(
        self,
        invoker: ExternalToolInvoker,
        ytdlp_path: str = "yt-dlp",
        media_format: str = DEFAULT_FORMAT,
        metadata_timeout: Optional[float] = 30,
    ):
        self.invoker = invoker
        self.ytdlp_path = ytdlp_path
        self.media_format = media_format
        self.metadata_timeout = metadata_timeout

    def get_metadata(self, url: str, session: Optional[Session] = None) -> MediaMetadata:
        """Fetch metadata via `--dump-json` without downloading.

        Raises:
            ToolExecutionError: If yt-dlp fails or prints unparseable JSON.
        """
        output = self.invoker.invoke(
            self.ytdlp_path,
            ["--dump-json", "--no-download", "--no-playlist", url],
            description="Metadata extraction",
            session=session,
            timeout=self.metadata_timeout,
        )

        try:
            info = json.loads(output)
        except json.JSONDecodeError as e:
            raise ToolExecutionError(
                "Metadata extraction", stderr=f"Invalid metadata JSON: {e}"
            ) from e

        metadata = MediaMetadata.from_ytdlp_info(info, url)
        logger.info(f"Metadata: '{metadata.title}' ({metadata.duration}s)")
        return metadata

    def download_media(
        self,
        url: str,
        session: Session,
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> Path:
        """Download media into the session's downloads directory.

        yt-dlp picks the extension, so the file is located afterwards by
        its session prefix.

        Raises:
            ToolExecutionError: If yt-dlp fails or no file was produced.
        """
        template = session.path("downloads", "video.%(ext)s")

        self.invoker.invoke(
            self.ytdlp_path,
            [
                "--format",
                self.media_format,
                "--output",
                str(template),
                "--no-playlist",
                "--newline",
                url,
            ],
            on_progress,
            description="Video download",
            session=session,
        )

        media_path = session.find("downloads", "video.")
        if media_path is None:
            raise ToolExecutionError(
                "Video download", stderr="Downloaded video file not found"
            )

        logger.info(f"Downloaded media to {media_path}")
        return media_path
