"""Per-attempt workspace for temporary artifacts.

A Session is created at the start of every processing attempt (a retried
job gets a new one). All artifacts live under the shared temp directory
in per-kind subdirectories and are prefixed with the session id, so
concurrent attempts never collide on disk and cleanup can find every
file an attempt produced.
"""

import logging
import os
import secrets
import shutil
import signal
import subprocess
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional

from src.workflow.errors import CleanupError, JobCancelledError

logger = logging.getLogger(__name__)


def terminate_process(process: subprocess.Popen) -> None:
    """Terminate a running tool process and its children.

    Tools are started in their own session, so on POSIX the whole
    process group is signalled.
    """
    if process.poll() is not None:
        return
    try:
        if hasattr(os, "killpg"):
            os.killpg(process.pid, signal.SIGTERM)
        else:
            process.terminate()
    except (ProcessLookupError, PermissionError):
        pass


class CancellationToken:
    """Cancellation flag shared between the queue and one attempt.

    Callbacks registered by in-flight work run once when cancel() is
    called, or immediately if the token is already cancelled.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: Optional[str] = None) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason or "Cancelled by user request"
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()

        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback failed")

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a cancellation callback.

        Returns:
            A function that unregisters the callback.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def unregister() -> None:
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return unregister

        callback()
        return lambda: None

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise JobCancelledError(f"Cancelled: {self.reason}")


class Session:
    """Ephemeral workspace for one processing attempt.

    Use as a context manager: the workspace directories are created on
    entry and every session-prefixed artifact is removed on exit,
    whatever the exit path. Cleanup failures are logged and never
    replace the attempt's own outcome.

    Example:
        with Session("./temp") as session:
            media = session.path("downloads", "video.mp4")
            ...
    """

    SUBDIRECTORIES = ("downloads", "audio", "transcripts")

    def __init__(
        self,
        temp_dir: str,
        session_id: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.temp_dir = Path(temp_dir)
        self.session_id = session_id or self.generate_session_id()
        self.cancel_token = cancel_token or CancellationToken()
        self.started_at = time.monotonic()

    @staticmethod
    def generate_session_id() -> str:
        """Unique id: millisecond timestamp plus random suffix."""
        return f"session_{int(time.time() * 1000)}_{secrets.token_hex(8)}"

    def __enter__(self) -> "Session":
        self.prepare()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            self.cleanup()
        except CleanupError as e:
            logger.warning(f"Cleanup failed for {self.session_id}: {e}")
        return False

    @property
    def cancelled(self) -> bool:
        return self.cancel_token.cancelled

    def raise_if_cancelled(self) -> None:
        self.cancel_token.raise_if_cancelled()

    def directory(self, kind: str) -> Path:
        if kind not in self.SUBDIRECTORIES:
            raise ValueError(f"Unknown artifact kind: {kind}")
        return self.temp_dir / kind

    def prepare(self) -> None:
        """Create the workspace directories."""
        for kind in self.SUBDIRECTORIES:
            self.directory(kind).mkdir(parents=True, exist_ok=True)

    def path(self, kind: str, name: str) -> Path:
        """Session-prefixed path for an artifact of the given kind."""
        return self.directory(kind) / f"{self.session_id}_{name}"

    def find(self, kind: str, name_prefix: str) -> Optional[Path]:
        """First existing artifact whose name starts with the session-prefixed name."""
        prefix = f"{self.session_id}_{name_prefix}"
        directory = self.directory(kind)
        if not directory.is_dir():
            return None
        for entry in sorted(directory.iterdir()):
            if entry.is_file() and entry.name.startswith(prefix):
                return entry
        return None

    def artifacts(self) -> List[Path]:
        """Every file in the workspace belonging to this session."""
        found = []
        for kind in self.SUBDIRECTORIES:
            directory = self.directory(kind)
            if not directory.is_dir():
                continue
            found.extend(
                entry
                for entry in directory.iterdir()
                if entry.name.startswith(self.session_id)
            )
        return sorted(found)

    def cleanup(self) -> List[Path]:
        """Remove every artifact belonging to this session.

        Attempts every file even if some removals fail.

        Returns:
            Paths that were removed.

        Raises:
            CleanupError: If any artifact could not be removed.
        """
        removed = []
        errors = []
        for artifact in self.artifacts():
            try:
                if artifact.is_dir():
                    shutil.rmtree(artifact)
                else:
                    artifact.unlink()
                removed.append(artifact)
                logger.debug(f"Cleaned up file: {artifact}")
            except FileNotFoundError:
                continue
            except OSError as e:
                errors.append(f"{artifact}: {e}")

        logger.debug(f"Cleanup completed for {self.session_id} ({len(removed)} files)")

        if errors:
            raise CleanupError("; ".join(errors))
        return removed
