"""Tests for result assembly, stage timings, progress and webhook delivery."""

from datetime import UTC, datetime
from unittest.mock import Mock, patch

import pytest
import requests

from src.media.models import MediaMetadata, Transcript, TranscriptSegment
from src.workflow.config import StageBand
from src.workflow.errors import WebhookDeliveryError
from src.workflow.models import JobOptions
from src.workflow.progress import CallbackReporter, MonotonicProgress
from src.workflow.result import StageTimings, assemble_result
from src.workflow.webhook import COMPLETED_EVENT, WebhookNotifier


@pytest.fixture
def metadata():
    return MediaMetadata(id="abc", title="Test Video", duration=45, original_url="https://x/v")


@pytest.fixture
def transcript():
    return Transcript(
        text="Hello world",
        segments=[TranscriptSegment(0.0, 2.0, "Hello world", -0.5)],
        language="en",
    )


class TestStageTimings:
    """Tests for StageTimings."""

    def test_measure_records_stage(self):
        timings = StageTimings()
        with timings.measure("download"):
            pass

        assert "download" in timings.to_dict()
        assert timings.to_dict()["download"] >= 0

    def test_measure_records_on_error(self):
        timings = StageTimings()
        with pytest.raises(RuntimeError):
            with timings.measure("audio"):
                raise RuntimeError("boom")

        assert "audio" in timings.stages


class TestAssembleResult:
    """Tests for assemble_result."""

    def test_full_result(self, metadata, transcript):
        processed_at = datetime(2024, 1, 1, tzinfo=UTC)

        result = assemble_result(
            metadata,
            transcript,
            {"summary": "ok"},
            StageTimings(),
            job_id="job-1",
            session_id="session_1_abc",
            options=JobOptions(),
            tools={"ffmpeg": "ffmpeg"},
            output_sizes={"video": 10},
            processed_at=processed_at,
        )

        assert result["success"] is True
        assert result["processedAt"] == "2024-01-01T00:00:00+00:00"
        assert result["data"]["video"]["title"] == "Test Video"
        assert result["data"]["transcript"]["language"] == "en"
        assert result["data"]["transcript"]["duration"] == 2.0
        assert result["data"]["analysis"] == {"summary": "ok"}
        assert result["metadata"]["tools"] == {"ffmpeg": "ffmpeg"}
        assert result["metadata"]["performance"]["transcriptLength"] == 11
        assert result["metadata"]["performance"]["outputSizes"] == {"video": 10}

    def test_absent_stages_are_null(self, metadata):
        result = assemble_result(
            metadata,
            None,
            None,
            StageTimings(),
            job_id="job-1",
            session_id="s",
            options=JobOptions(include_transcript=False, include_analysis=False),
        )

        assert result["data"]["transcript"] is None
        assert result["data"]["analysis"] is None
        processing = result["metadata"]["processing"]
        assert processing["hasTranscript"] is False
        assert processing["hasAnalysis"] is False
        assert processing["analysisDegraded"] is False


class TestMonotonicProgress:
    """Tests for MonotonicProgress."""

    def test_ignores_decreases_and_repeats(self):
        values = []
        progress = MonotonicProgress(CallbackReporter(values.append))

        for value in (5, 20, 10, 20, 150, -3):
            progress.report(value)

        assert values == [5, 20, 100]

    def test_band_callback(self):
        values = []
        progress = MonotonicProgress(CallbackReporter(values.append))
        on_progress = progress.band_callback(StageBand(40, 50))

        on_progress(0.5)
        on_progress(2.0)

        assert values == [45, 50]

    def test_invalid_band(self):
        with pytest.raises(ValueError):
            StageBand(60, 50)


class TestWebhookNotifier:
    """Tests for WebhookNotifier."""

    def test_build_payload(self):
        payload = WebhookNotifier().build_payload("job-1", {"success": True})

        assert payload["event"] == COMPLETED_EVENT
        assert payload["jobId"] == "job-1"
        assert payload["data"] == {"success": True}
        assert payload["timestamp"]

    @patch("src.workflow.webhook.requests.post")
    def test_notify_success(self, mock_post):
        mock_post.return_value = Mock(status_code=200)
        notifier = WebhookNotifier(timeout=5, user_agent="test-agent")

        assert notifier.notify("https://hooks.example.com", "job-1", {"success": True}) is True

        args, kwargs = mock_post.call_args
        assert args[0] == "https://hooks.example.com"
        assert kwargs["timeout"] == 5
        assert kwargs["headers"]["User-Agent"] == "test-agent"
        assert kwargs["json"]["jobId"] == "job-1"

    @patch("src.workflow.webhook.requests.post")
    def test_notify_http_error(self, mock_post):
        response = Mock()
        response.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
        mock_post.return_value = response

        assert WebhookNotifier().notify("https://hooks.example.com", "job-1", {}) is False

    @patch("src.workflow.webhook.requests.post")
    def test_notify_connection_error(self, mock_post):
        mock_post.side_effect = requests.ConnectionError("refused")

        assert WebhookNotifier().notify("https://hooks.example.com", "job-1", {}) is False

    @patch("src.workflow.webhook.requests.post")
    def test_deliver_raises(self, mock_post):
        mock_post.side_effect = requests.Timeout("timed out")

        with pytest.raises(WebhookDeliveryError):
            WebhookNotifier().deliver("https://hooks.example.com", "job-1", {})
