"""Tests for the per-attempt pipeline orchestrator."""

from unittest.mock import Mock

import pytest

from src.media.models import MediaMetadata, Transcript, TranscriptSegment
from src.workflow.config import PipelineConfig, QueueConfig
from src.workflow.errors import (
    AnalysisError,
    JobCancelledError,
    ToolExecutionError,
    TranscriptionError,
    ValidationError,
)
from src.workflow.interfaces import (
    AnalysisBackend,
    AudioExtractor,
    PlatformAdapter,
    TranscriptionBackend,
)
from src.workflow.models import JobOptions, JobPayload, JobStatus
from src.workflow.orchestrator import PipelineOrchestrator
from src.workflow.progress import ProgressReporter
from src.workflow.queue import JobQueue
from src.workflow.session import CancellationToken

URL = "https://www.youtube.com/watch?v=abc123"


class RecordingReporter(ProgressReporter):
    def __init__(self):
        self.values = []

    def report(self, percent):
        self.values.append(percent)


class FakePlatform(PlatformAdapter):
    """Writes a small media file into the session workspace."""

    def __init__(self, duration=45, fail_download=False):
        self.duration = duration
        self.fail_download = fail_download
        self.downloads = 0

    def get_metadata(self, url, session=None):
        return MediaMetadata(
            id="abc123",
            title="Test Video",
            duration=self.duration,
            creator="Test Channel",
            tags=["test"],
            original_url=url,
        )

    def download_media(self, url, session, on_progress=None):
        self.downloads += 1
        if self.fail_download:
            raise ToolExecutionError("Video download", ["yt-dlp"], 1, "ERROR: Video unavailable")
        if on_progress:
            on_progress(0.5)
            on_progress(0.25)
            on_progress(1.0)
        path = session.path("downloads", "video.mp4")
        path.write_bytes(b"\x00" * 2048)
        return path


class FakeExtractor(AudioExtractor):
    def __init__(self):
        self.calls = 0

    def extract(self, media_path, session, on_progress=None):
        self.calls += 1
        path = session.path("audio", "audio.wav")
        path.write_bytes(b"\x00" * 1024)
        if on_progress:
            on_progress(1.0)
        return path


class FakeTranscriber(TranscriptionBackend):
    name = "fake-whisper"

    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    def transcribe(self, audio_path, session=None, on_progress=None):
        self.calls += 1
        if self.error:
            raise self.error
        session.path("transcripts", "audio.json").write_text("{}")
        return Transcript(
            text="Hello and welcome to the test video.",
            segments=[TranscriptSegment(0.0, 4.5, "Hello and welcome to the test video.", -0.2)],
            language="en",
        )


class FakeAnalyzer(AnalysisBackend):
    name = "fake-gemini"

    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def analyze(self, transcript, metadata):
        self.calls.append((transcript, metadata))
        if self.error:
            raise self.error
        return {"summary": "A short test video.", "metadata": {"model": "gemini-test"}}


@pytest.fixture
def pipeline_config(tmp_path):
    return PipelineConfig(temp_dir=str(tmp_path), max_video_duration=600)


def leftover_files(tmp_path):
    return [p for p in tmp_path.rglob("*") if p.is_file()]


def build(pipeline_config, **overrides):
    parts = {
        "platform": FakePlatform(),
        "audio_extractor": FakeExtractor(),
        "transcriber": FakeTranscriber(),
        "analyzer": FakeAnalyzer(),
        "notifier": None,
        "tools": {"ytdlp": "yt-dlp", "ffmpeg": "ffmpeg"},
    }
    parts.update(overrides)
    return PipelineOrchestrator(pipeline_config, **parts), parts


class TestHappyPath:
    """Tests for a full successful attempt."""

    def test_completes_with_transcript_and_analysis(self, pipeline_config, tmp_path):
        """Test a 45 second video produces a complete result."""
        orchestrator, _ = build(pipeline_config)
        reporter = RecordingReporter()

        result = orchestrator.run("job-1", JobPayload(URL), reporter)

        assert result["success"] is True
        assert result["jobId"] == "job-1"
        assert result["sessionId"].startswith("session_")
        assert result["data"]["video"]["title"] == "Test Video"
        assert result["data"]["video"]["url"] == URL
        assert result["data"]["transcript"]["text"] == "Hello and welcome to the test video."
        assert result["data"]["analysis"]["summary"] == "A short test video."
        assert result["data"]["analysis"]["metadata"]["session_id"] == result["sessionId"]

        processing = result["metadata"]["processing"]
        assert processing["hasTranscript"] is True
        assert processing["hasAnalysis"] is True
        assert processing["analysisDegraded"] is False

        tools = result["metadata"]["tools"]
        assert tools["transcription"] == "fake-whisper"
        assert tools["analysis"] == "gemini-test"
        assert tools["ytdlp"] == "yt-dlp"

        performance = result["metadata"]["performance"]
        assert set(performance["stageTimings"]) == {
            "metadata", "download", "audio", "transcription", "analysis",
        }
        assert performance["outputSizes"]["video"] == 2048
        assert performance["outputSizes"]["audio"] == 1024

    def test_progress_is_monotonic_and_ends_at_100(self, pipeline_config):
        """Test that reported progress never decreases within an attempt."""
        orchestrator, _ = build(pipeline_config)
        reporter = RecordingReporter()

        orchestrator.run("job-1", JobPayload(URL), reporter)

        assert reporter.values == sorted(reporter.values)
        assert len(set(reporter.values)) == len(reporter.values)
        assert reporter.values[0] == 5
        assert reporter.values[-1] == 100
        assert all(0 <= value <= 100 for value in reporter.values)

    def test_session_artifacts_removed(self, pipeline_config, tmp_path):
        """Test that no session files remain after success."""
        orchestrator, _ = build(pipeline_config)

        orchestrator.run("job-1", JobPayload(URL), RecordingReporter())

        assert leftover_files(tmp_path) == []

    def test_without_transcript(self, pipeline_config):
        """Test that include_transcript=False skips audio and transcription."""
        orchestrator, parts = build(pipeline_config)
        payload = JobPayload(URL, JobOptions(include_transcript=False))

        result = orchestrator.run("job-2", payload, RecordingReporter())

        assert parts["audio_extractor"].calls == 0
        assert parts["transcriber"].calls == 0
        assert result["data"]["transcript"] is None
        assert result["metadata"]["processing"]["hasTranscript"] is False
        # Analysis still runs on metadata alone
        assert parts["analyzer"].calls[0][0] is None

    def test_without_analysis(self, pipeline_config):
        """Test that include_analysis=False leaves analysis null."""
        orchestrator, parts = build(pipeline_config)
        payload = JobPayload(URL, JobOptions(include_analysis=False))

        result = orchestrator.run("job-3", payload, RecordingReporter())

        assert parts["analyzer"].calls == []
        assert result["data"]["analysis"] is None
        assert result["metadata"]["tools"]["analysis"] is None


class TestValidation:
    """Tests for the duration precondition."""

    def test_too_long_fails_before_download(self, pipeline_config, tmp_path):
        """Test that a 700 second video is rejected without downloading."""
        platform = FakePlatform(duration=700)
        orchestrator, _ = build(pipeline_config, platform=platform)

        with pytest.raises(ValidationError) as exc_info:
            orchestrator.run("job-1", JobPayload(URL), RecordingReporter())

        assert "exceeds maximum" in str(exc_info.value)
        assert platform.downloads == 0
        assert leftover_files(tmp_path) == []

    def test_exactly_at_limit_is_accepted(self, pipeline_config):
        """Test that duration equal to the limit passes."""
        orchestrator, _ = build(pipeline_config, platform=FakePlatform(duration=600))

        result = orchestrator.run("job-1", JobPayload(URL), RecordingReporter())

        assert result["success"] is True


class TestAnalysis:
    """Tests for analysis degradation."""

    def test_missing_analyzer_yields_null_analysis(self, pipeline_config):
        """Test that without a configured backend the job still completes."""
        orchestrator, _ = build(pipeline_config, analyzer=None)

        result = orchestrator.run("job-1", JobPayload(URL), RecordingReporter())

        assert result["success"] is True
        assert result["data"]["analysis"] is None
        assert result["data"]["transcript"] is not None

    def test_analysis_failure_is_degraded(self, pipeline_config, tmp_path):
        """Test that an analysis error becomes an error-carrying object."""
        analyzer = FakeAnalyzer(error=AnalysisError("quota exhausted"))
        orchestrator, _ = build(pipeline_config, analyzer=analyzer)

        result = orchestrator.run("job-1", JobPayload(URL), RecordingReporter())

        analysis = result["data"]["analysis"]
        assert analysis["error"] == "Analysis failed"
        assert analysis["basic_info"]["title"] == "Test Video"
        assert analysis["basic_info"]["has_transcript"] is True
        assert analysis["metadata"]["error"] == "quota exhausted"
        assert result["metadata"]["processing"]["analysisDegraded"] is True
        assert result["metadata"]["tools"]["analysis"] is None
        assert leftover_files(tmp_path) == []

    def test_unexpected_analyzer_exception_is_degraded(self, pipeline_config):
        """Test that any exception from the backend degrades instead of failing."""
        analyzer = FakeAnalyzer(error=RuntimeError("connection reset"))
        orchestrator, _ = build(pipeline_config, analyzer=analyzer)

        result = orchestrator.run("job-1", JobPayload(URL), RecordingReporter())

        assert result["success"] is True
        assert result["data"]["analysis"]["error"] == "Analysis failed"
        assert result["data"]["analysis"]["metadata"]["error"] == "connection reset"
        assert result["metadata"]["processing"]["analysisDegraded"] is True

    def test_non_object_analysis_is_degraded(self, pipeline_config):
        """Test that a backend returning None yields a degraded analysis."""

        class EmptyAnalyzer(FakeAnalyzer):
            def analyze(self, transcript, metadata):
                return None

        orchestrator, _ = build(pipeline_config, analyzer=EmptyAnalyzer())

        result = orchestrator.run("job-1", JobPayload(URL), RecordingReporter())

        analysis = result["data"]["analysis"]
        assert analysis["error"] == "Analysis failed"
        assert "NoneType" in analysis["metadata"]["error"]
        assert analysis["metadata"]["session_id"] == result["sessionId"]


class TestFailures:
    """Tests for fatal stage failures."""

    def test_download_failure_propagates(self, pipeline_config, tmp_path):
        """Test that a download error aborts the attempt and cleans up."""
        orchestrator, parts = build(pipeline_config, platform=FakePlatform(fail_download=True))

        with pytest.raises(ToolExecutionError):
            orchestrator.run("job-1", JobPayload(URL), RecordingReporter())

        assert parts["audio_extractor"].calls == 0
        assert leftover_files(tmp_path) == []

    def test_transcription_failure_propagates(self, pipeline_config, tmp_path):
        """Test that transcription errors are fatal and artifacts are removed."""
        transcriber = FakeTranscriber(error=TranscriptionError("Transcription", returncode=1))
        orchestrator, parts = build(pipeline_config, transcriber=transcriber)

        with pytest.raises(TranscriptionError):
            orchestrator.run("job-1", JobPayload(URL), RecordingReporter())

        assert parts["analyzer"].calls == []
        assert leftover_files(tmp_path) == []

    def test_cancelled_token_stops_before_download(self, pipeline_config, tmp_path):
        """Test that a cancelled token aborts between stages."""
        platform = FakePlatform()
        orchestrator, _ = build(pipeline_config, platform=platform)
        token = CancellationToken()
        token.cancel("user abort")

        with pytest.raises(JobCancelledError) as exc_info:
            orchestrator.run("job-1", JobPayload(URL), RecordingReporter(), token)

        assert str(exc_info.value) == "Cancelled: user abort"
        assert platform.downloads == 0
        assert leftover_files(tmp_path) == []


class TestWebhook:
    """Tests for webhook delivery from the orchestrator."""

    def test_webhook_called_with_result(self, pipeline_config):
        """Test that the notifier receives the assembled result."""
        notifier = Mock()
        orchestrator, _ = build(pipeline_config, notifier=notifier)
        payload = JobPayload(URL, JobOptions(webhook_url="https://hooks.example.com/done"))

        result = orchestrator.run("job-1", payload, RecordingReporter())

        notifier.notify.assert_called_once_with("https://hooks.example.com/done", "job-1", result)

    def test_webhook_failure_does_not_fail_job(self, pipeline_config):
        """Test that a notifier reporting failure leaves the result intact."""
        notifier = Mock()
        notifier.notify.return_value = False
        orchestrator, _ = build(pipeline_config, notifier=notifier)
        payload = JobPayload(URL, JobOptions(webhook_url="https://hooks.example.com/done"))

        result = orchestrator.run("job-1", payload, RecordingReporter())

        assert result["success"] is True

    def test_no_webhook_without_url(self, pipeline_config):
        """Test that no delivery is attempted when no URL was given."""
        notifier = Mock()
        orchestrator, _ = build(pipeline_config, notifier=notifier)

        orchestrator.run("job-1", JobPayload(URL), RecordingReporter())

        notifier.notify.assert_not_called()


class TestThroughQueue:
    """Tests for the orchestrator driven by a real JobQueue."""

    @pytest.fixture
    def run_job(self):
        queues = []

        def runner(orchestrator, payload, **queue_config):
            job_queue = JobQueue(orchestrator, QueueConfig(**queue_config))
            job_queue.start()
            queues.append(job_queue)
            receipt = job_queue.submit(payload)
            return receipt, job_queue.wait_for(receipt.job_id, timeout=10)

        yield runner

        for job_queue in queues:
            job_queue.stop()

    def test_scenario_completed(self, pipeline_config, run_job):
        """Test waiting -> active -> completed with transcript and analysis."""
        orchestrator, _ = build(pipeline_config)
        payload = JobPayload(URL, JobOptions(include_transcript=True, include_analysis=True))

        receipt, job = run_job(orchestrator, payload)

        assert receipt.status == JobStatus.WAITING
        assert job.status == JobStatus.COMPLETED
        assert job.progress == 100
        assert job.result["data"]["transcript"]["text"]
        assert job.result["data"]["analysis"] is not None

    def test_scenario_too_long(self, pipeline_config, run_job):
        """Test that an over-long video fails once with no download."""
        platform = FakePlatform(duration=700)
        orchestrator, _ = build(pipeline_config, platform=platform)

        _, job = run_job(orchestrator, JobPayload(URL), max_attempts=3)

        assert job.status == JobStatus.FAILED
        assert job.attempts == 1
        assert "600" in job.last_error
        assert platform.downloads == 0

    def test_scenario_no_analysis_backend(self, pipeline_config, run_job):
        """Test that a disabled analysis backend still completes the job."""
        orchestrator, _ = build(pipeline_config, analyzer=None)

        _, job = run_job(orchestrator, JobPayload(URL, JobOptions(include_analysis=True)))

        assert job.status == JobStatus.COMPLETED
        assert job.result["data"]["analysis"] is None

    def test_analyzer_crash_still_completes(self, pipeline_config, run_job):
        """Test that an analyzer raising a non-analysis error completes in one attempt."""
        analyzer = FakeAnalyzer(error=RuntimeError("connection reset"))
        orchestrator, _ = build(pipeline_config, analyzer=analyzer)

        _, job = run_job(orchestrator, JobPayload(URL), max_attempts=3)

        assert job.status == JobStatus.COMPLETED
        assert job.attempts == 0
        assert len(analyzer.calls) == 1
        assert job.result["data"]["analysis"]["metadata"]["error"] == "connection reset"

    def test_failed_attempts_leave_no_files(self, pipeline_config, run_job, tmp_path):
        """Test cleanup after every retried failure."""
        platform = FakePlatform(fail_download=True)
        orchestrator, _ = build(pipeline_config, platform=platform)

        _, job = run_job(orchestrator, JobPayload(URL), max_attempts=3)

        assert job.status == JobStatus.FAILED
        assert platform.downloads == 3
        assert leftover_files(tmp_path) == []
