"""Tests for per-attempt sessions and cancellation tokens."""

import pytest

from src.workflow.errors import CleanupError, JobCancelledError
from src.workflow.session import CancellationToken, Session


class TestCancellationToken:
    """Tests for CancellationToken."""

    def test_cancel_runs_callbacks_once(self):
        token = CancellationToken()
        calls = []
        token.register(lambda: calls.append("a"))

        token.cancel("first")
        token.cancel("second")

        assert calls == ["a"]
        assert token.cancelled
        assert token.reason == "first"

    def test_register_after_cancel_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        calls = []

        token.register(lambda: calls.append("late"))

        assert calls == ["late"]

    def test_unregister(self):
        token = CancellationToken()
        calls = []
        unregister = token.register(lambda: calls.append("x"))

        unregister()
        token.cancel()

        assert calls == []

    def test_default_reason(self):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(JobCancelledError) as exc_info:
            token.raise_if_cancelled()

        assert str(exc_info.value) == "Cancelled: Cancelled by user request"

    def test_failing_callback_does_not_stop_others(self):
        token = CancellationToken()
        calls = []

        def broken():
            raise RuntimeError("boom")

        token.register(broken)
        token.register(lambda: calls.append("ok"))
        token.cancel()

        assert calls == ["ok"]


class TestSession:
    """Tests for Session workspace management."""

    def test_session_id_format(self, tmp_path):
        session = Session(str(tmp_path))

        prefix, timestamp, suffix = session.session_id.split("_")
        assert prefix == "session"
        assert timestamp.isdigit()
        assert len(suffix) == 16

    def test_session_ids_unique(self, tmp_path):
        ids = {Session(str(tmp_path)).session_id for _ in range(50)}
        assert len(ids) == 50

    def test_paths_are_prefixed(self, tmp_path):
        session = Session(str(tmp_path), session_id="session_1_abc")

        path = session.path("audio", "audio.wav")

        assert path == tmp_path / "audio" / "session_1_abc_audio.wav"

    def test_unknown_kind(self, tmp_path):
        with pytest.raises(ValueError):
            Session(str(tmp_path)).path("videos", "x.mp4")

    def test_context_manager_cleans_up(self, tmp_path):
        """Test that every session artifact is removed on exit."""
        with Session(str(tmp_path)) as session:
            session.path("downloads", "video.mp4").write_bytes(b"v")
            session.path("audio", "audio.wav").write_bytes(b"a")
            session.path("transcripts", "audio.json").write_text("{}")
            assert len(session.artifacts()) == 3

        assert [p for p in tmp_path.rglob("*") if p.is_file()] == []

    def test_cleanup_on_exception(self, tmp_path):
        """Test that cleanup runs and the original exception propagates."""
        with pytest.raises(RuntimeError, match="stage failed"):
            with Session(str(tmp_path)) as session:
                session.path("downloads", "video.mp4").write_bytes(b"v")
                raise RuntimeError("stage failed")

        assert [p for p in tmp_path.rglob("*") if p.is_file()] == []

    def test_cleanup_leaves_other_sessions(self, tmp_path):
        """Test that concurrent sessions never remove each other's files."""
        other = Session(str(tmp_path))
        other.prepare()
        other_file = other.path("downloads", "video.mp4")
        other_file.write_bytes(b"keep")

        with Session(str(tmp_path)) as session:
            session.path("downloads", "video.mp4").write_bytes(b"drop")

        assert other_file.exists()

    def test_find(self, tmp_path):
        session = Session(str(tmp_path))
        session.prepare()
        session.path("downloads", "video.webm").write_bytes(b"v")

        assert session.find("downloads", "video.").name.endswith("video.webm")
        assert session.find("audio", "audio.") is None

    def test_cleanup_error_is_logged_not_raised(self, tmp_path, monkeypatch):
        """Test that a failed removal does not replace the outcome."""
        session = Session(str(tmp_path))

        def fail_cleanup():
            raise CleanupError("permission denied")

        monkeypatch.setattr(session, "cleanup", fail_cleanup)

        with session:
            pass

    def test_cleanup_reports_removed_paths(self, tmp_path):
        session = Session(str(tmp_path))
        session.prepare()
        path = session.path("audio", "audio.wav")
        path.write_bytes(b"a")

        assert session.cleanup() == [path]
        assert session.cleanup() == []
