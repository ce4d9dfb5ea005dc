"""AI content analysis using Gemini structured output."""

import json
import logging
from datetime import UTC, datetime
from typing import Any, Dict, Optional

from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from src.config import Config
from src.media.models import MediaMetadata, Transcript
from src.prompt_manager import PromptManager
from src.schemas import ContentAnalysis
from src.workflow.errors import AnalysisError
from src.workflow.interfaces import AnalysisBackend

logger = logging.getLogger(__name__)

PROMPT_NAME = "content_analysis"
MAX_DESCRIPTION_CHARS = 500
NO_TRANSCRIPT = "No transcript available"


def _is_rate_limited(error: BaseException) -> bool:
    """Whether an API error is a 429 worth retrying."""
    message = str(error).lower()
    return "429" in message or "too many requests" in message or "resource_exhausted" in message


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def _strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json fence if the model added one."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3]
    return cleaned.strip()


class GeminiAnalyzer(AnalysisBackend):
    """Analyzes transcript and metadata with a Gemini model.

    The client is created on first use so that constructing the analyzer
    never touches the network.
    """

    name = "gemini"

    def __init__(
        self,
        config: Config,
        prompt_manager: Optional[PromptManager] = None,
        client=None,
    ):
        self.config = config
        self.model = config.GEMINI_MODEL
        self.max_transcript_chars = config.ANALYSIS_MAX_TRANSCRIPT_CHARS
        self.prompt_manager = prompt_manager or PromptManager(config=config)
        self._client = client

    def _get_client(self):
        if self._client is None:
            from google import genai

            self._client = genai.Client(api_key=self.config.GEMINI_API_KEY)
        return self._client

    def build_prompt(self, transcript: Optional[Transcript], metadata: MediaMetadata) -> str:
        if transcript is not None:
            transcript_text = _truncate(transcript.text, self.max_transcript_chars)
        else:
            transcript_text = NO_TRANSCRIPT
        return self.prompt_manager.build_prompt(
            PROMPT_NAME,
            title=metadata.title,
            duration=metadata.duration,
            creator=metadata.creator,
            description=_truncate(metadata.description, MAX_DESCRIPTION_CHARS),
            tags=", ".join(metadata.tags),
            categories=", ".join(metadata.categories),
            view_count=metadata.view_count,
            like_count=metadata.like_count,
            segment_count=len(transcript.segments) if transcript else 0,
            transcript=transcript_text,
        )

    @retry(
        retry=retry_if_exception(_is_rate_limited),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        reraise=True,
    )
    def _generate(self, prompt: str):
        return self._get_client().models.generate_content(
            model=self.model,
            contents=prompt,
            config={
                "response_mime_type": "application/json",
                "response_schema": ContentAnalysis,
                "temperature": 0.1,
            },
        )

    def _parse(self, response) -> Dict[str, Any]:
        parsed = getattr(response, "parsed", None)
        if isinstance(parsed, ContentAnalysis):
            return parsed.model_dump()

        text = getattr(response, "text", None)
        if not text:
            raise AnalysisError("Analysis model returned an empty response")
        return ContentAnalysis.model_validate(json.loads(_strip_code_fences(text))).model_dump()

    def analyze(
        self, transcript: Optional[Transcript], metadata: MediaMetadata
    ) -> Dict[str, Any]:
        """Run the analysis and attach generation metadata.

        Raises:
            AnalysisError: On any client, parsing or validation failure.
        """
        logger.debug(f"Analyzing '{metadata.title}' (transcript: {transcript is not None})")
        try:
            response = self._generate(self.build_prompt(transcript, metadata))
            analysis = self._parse(response)
        except AnalysisError:
            raise
        except Exception as e:
            raise AnalysisError(str(e)) from e

        usage = getattr(response, "usage_metadata", None)
        analysis["metadata"] = {
            "model": self.model,
            "tokens_used": getattr(usage, "total_token_count", None) or 0,
            "generated_at": datetime.now(UTC).isoformat(),
        }
        return analysis


def create_analyzer(config: Config) -> Optional[AnalysisBackend]:
    """Build the analysis backend, or None if no API key is configured."""
    if not config.analysis_configured:
        logger.warning("GEMINI_API_KEY not configured, content analysis disabled")
        return None
    return GeminiAnalyzer(config)
