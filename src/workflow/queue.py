"""In-process job queue with bounded concurrency.

A single dispatcher thread owns the job table, the waiting list and the
active set. Everything that changes queue state (submissions, finished
attempts, progress, cancel/pause/resume/prune requests) is posted to the
dispatcher as an event, so no two threads ever race on dispatch.
Attempts themselves run on a thread pool sized to the concurrency limit
and report back only through events.

Readers (status, stats, jobs) take a lock and receive copies.
"""

import logging
import queue
import threading
import uuid
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Deque, Dict, List, Optional

from src.workflow.config import QueueConfig
from src.workflow.errors import (
    JobCancelledError,
    JobNotFoundError,
    JobStateError,
    QueueFullError,
)
from src.workflow.interfaces import Pipeline
from src.workflow.models import Job, JobPayload, JobStatus, QueueStats, SubmitReceipt
from src.workflow.progress import CallbackReporter
from src.workflow.session import CancellationToken

logger = logging.getLogger(__name__)

JobListener = Callable[[Job], None]


@dataclass
class _Event:
    """A message for the dispatcher thread."""

    kind: str
    job_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    reply: Optional[Future] = None


@dataclass
class _ActiveAttempt:
    """Bookkeeping for one running attempt."""

    number: int
    token: CancellationToken
    future: Optional[Future] = None


class JobQueue:
    """Bounded-concurrency job queue driving a Pipeline.

    State machine per job:
        waiting -> active -> completed
        waiting -> active -> waiting   (retryable failure, attempts < max_attempts)
        waiting -> active -> failed    (non-retryable, exhausted or cancelled)

    Example:
        with JobQueue(orchestrator, QueueConfig.from_env()) as jobs:
            receipt = jobs.submit(JobPayload("https://..."))
            job = jobs.wait_for(receipt.job_id, timeout=600)
    """

    def __init__(
        self,
        pipeline: Pipeline,
        config: Optional[QueueConfig] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        """Initialize the queue.

        Args:
            pipeline: Runs one attempt of a job.
            config: Queue configuration; defaults to QueueConfig().
            id_factory: Generates job ids when the caller supplies none.
        """
        self.pipeline = pipeline
        self.config = config or QueueConfig()
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))

        self._jobs: Dict[str, Job] = {}
        self._waiting: Deque[str] = deque()
        self._active: Dict[str, _ActiveAttempt] = {}
        self._retry_timers: Dict[str, threading.Timer] = {}
        self._paused = False

        self._events: "queue.Queue[_Event]" = queue.Queue()
        self._lock = threading.Lock()
        self._changed = threading.Condition(self._lock)
        self._listeners: List[JobListener] = []

        self._executor: Optional[ThreadPoolExecutor] = None
        self._dispatcher: Optional[threading.Thread] = None
        self._running = False

    # Lifecycle

    def start(self) -> None:
        """Start the dispatcher thread and the attempt thread pool."""
        if self._running:
            return
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.concurrency_limit,
            thread_name_prefix="job",
        )
        self._running = True
        self._dispatcher = threading.Thread(
            target=self._dispatch_loop, name="job-dispatcher", daemon=True
        )
        self._dispatcher.start()
        logger.info(
            f"JobQueue started (concurrency={self.config.concurrency_limit}, "
            f"max_attempts={self.config.max_attempts})"
        )

    def stop(self, wait: bool = True) -> None:
        """Stop dispatching.

        Args:
            wait: If True, wait for running attempts to finish. Otherwise
                running attempts are cancelled.
        """
        # Taken under the lock so an in-flight _dispatch finishes submitting
        # before the executor shuts down
        with self._lock:
            if not self._running:
                return
            self._running = False
            tokens = [attempt.token for attempt in self._active.values()]

        if not wait:
            for token in tokens:
                token.cancel("Queue shutting down")

        # Attempts finish first so their outcomes reach the dispatcher
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

        self._events.put(_Event("stop"))
        if self._dispatcher is not None:
            self._dispatcher.join()
            self._dispatcher = None

        for timer in list(self._retry_timers.values()):
            timer.cancel()
        self._retry_timers.clear()
        logger.info("JobQueue stopped")

    def __enter__(self) -> "JobQueue":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.stop()
        return False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def paused(self) -> bool:
        return self._paused

    def add_listener(self, listener: JobListener) -> None:
        """Register a callback invoked with a snapshot of every job that
        reaches a terminal state."""
        self._listeners.append(listener)

    # Public operations

    def submit(self, payload: JobPayload, job_id: Optional[str] = None) -> SubmitReceipt:
        """Admit a job and trigger dispatch.

        Returns as soon as the job is recorded; processing happens in the
        background.

        Raises:
            QueueFullError: If waiting + active jobs are at the admission cap.
            JobStateError: If a job with this id is already tracked.
        """
        job = Job(
            id=job_id or self._id_factory(),
            payload=payload,
            max_attempts=self.config.max_attempts,
        )
        return self._request("submit", job.id, job=job)

    def status(self, job_id: str) -> Job:
        """Return a snapshot of the job.

        Raises:
            JobNotFoundError: If no job is tracked under this id.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return job.snapshot()

    def stats(self) -> Dict[str, int]:
        """Job counts by status."""
        with self._lock:
            return self._count().to_dict()

    def jobs(self, status: Optional[JobStatus] = None, limit: int = 10) -> List[Job]:
        """Snapshots of tracked jobs, oldest first."""
        if status is not None:
            status = JobStatus(status)
        with self._lock:
            selected = [
                job for job in self._jobs.values() if status is None or job.status == status
            ]
            return [job.snapshot() for job in selected[: max(limit, 0)]]

    def cancel(self, job_id: str, reason: Optional[str] = None) -> Job:
        """Cancel a waiting or active job.

        A waiting job is failed immediately. An active job has its
        session cancelled, which terminates the running external tool;
        the job becomes failed once the attempt unwinds.

        Returns:
            Snapshot of the job after the request was applied.

        Raises:
            JobNotFoundError: If no job is tracked under this id.
            JobStateError: If the job already completed or failed.
        """
        return self._request("cancel", job_id, reason=reason or "Cancelled by user request")

    def pause(self) -> None:
        """Stop starting new jobs. Active jobs continue."""
        self._request("pause")

    def resume(self) -> None:
        """Resume dispatching waiting jobs."""
        self._request("resume")

    def prune(self, older_than_seconds: Optional[float] = None) -> int:
        """Drop completed/failed records that finished before the cutoff.

        Returns:
            Number of records removed.
        """
        if older_than_seconds is None:
            older_than_seconds = self.config.retention_seconds
        return self._request("prune", older_than=older_than_seconds)

    def flush(self, timeout: Optional[float] = None) -> None:
        """Block until every event posted so far has been handled."""
        self._request("barrier", timeout=timeout)

    def wait_for(self, job_id: str, timeout: Optional[float] = None) -> Job:
        """Block until the job reaches a terminal state or the timeout expires.

        Returns:
            Snapshot of the job (check .status when a timeout was given).

        Raises:
            JobNotFoundError: If no job is tracked under this id.
        """
        with self._changed:

            def done() -> bool:
                job = self._jobs.get(job_id)
                return job is None or job.status.is_terminal

            self._changed.wait_for(done, timeout=timeout)
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return job.snapshot()

    # Dispatcher internals

    def _request(
        self,
        kind: str,
        job_id: Optional[str] = None,
        timeout: Optional[float] = None,
        **data,
    ):
        """Post an event and block until the dispatcher has handled it."""
        if not self._running:
            raise RuntimeError("JobQueue not started")
        reply: Future = Future()
        self._events.put(_Event(kind, job_id, data, reply))
        return reply.result(timeout=timeout)

    def _post(self, kind: str, job_id: Optional[str] = None, **data) -> None:
        self._events.put(_Event(kind, job_id, data))

    def _count(self) -> QueueStats:
        stats = QueueStats()
        for job in self._jobs.values():
            setattr(stats, job.status.value, getattr(stats, job.status.value) + 1)
        return stats

    def _dispatch_loop(self) -> None:
        handlers = {
            "submit": self._on_submit,
            "finished": self._on_finished,
            "progress": self._on_progress,
            "requeue": self._on_requeue,
            "cancel": self._on_cancel,
            "pause": self._on_pause,
            "resume": self._on_resume,
            "prune": self._on_prune,
            "barrier": lambda event, notifications: None,
        }

        while True:
            event = self._events.get()
            if event.kind == "stop":
                break

            notifications: List[Job] = []
            try:
                with self._changed:
                    try:
                        value = handlers[event.kind](event, notifications)
                    finally:
                        self._dispatch()
                        self._changed.notify_all()
            except (JobNotFoundError, JobStateError, QueueFullError) as e:
                event.reply.set_exception(e)
                continue
            except Exception as e:
                logger.exception(f"Dispatcher failed handling '{event.kind}' event")
                if event.reply is not None:
                    event.reply.set_exception(e)
                continue

            if event.reply is not None:
                event.reply.set_result(value)
            for job in notifications:
                self._notify(job)

    def _dispatch(self) -> None:
        """Fill free slots from the waiting list, oldest first.

        Called with the lock held, from the dispatcher thread only.
        """
        if self._paused or not self._running:
            return

        while self._waiting and len(self._active) < self.config.concurrency_limit:
            job = self._jobs[self._waiting.popleft()]
            job.status = JobStatus.ACTIVE
            job.started_at = datetime.now(UTC)
            job.progress = 0

            attempt = _ActiveAttempt(number=job.attempts + 1, token=CancellationToken())
            self._active[job.id] = attempt
            attempt.future = self._executor.submit(
                self._run_attempt, job.id, job.payload, attempt.number, attempt.token
            )
            logger.info(
                f"Job {job.id} started (attempt {attempt.number}/{job.max_attempts})"
            )

    def _run_attempt(
        self,
        job_id: str,
        payload: JobPayload,
        number: int,
        token: CancellationToken,
    ) -> None:
        """Worker-thread body: run the pipeline and post the outcome."""
        reporter = CallbackReporter(
            lambda percent: self._post("progress", job_id, attempt=number, percent=percent)
        )
        try:
            result = self.pipeline.run(job_id, payload, reporter, token)
        except Exception as e:
            self._post("finished", job_id, attempt=number, result=None, error=e)
            return
        self._post("finished", job_id, attempt=number, result=result, error=None)

    def _on_submit(self, event: _Event, notifications: List[Job]) -> SubmitReceipt:
        job: Job = event.data["job"]
        if job.id in self._jobs:
            raise JobStateError(f"Job {job.id} already exists")

        stats = self._count()
        if stats.pending >= self.config.max_queue_size:
            raise QueueFullError(stats.waiting, stats.active, self.config.max_queue_size)

        self._jobs[job.id] = job
        self._waiting.append(job.id)
        logger.info(f"Job {job.id} submitted for {job.payload.url}")
        return SubmitReceipt(job.id, JobStatus.WAITING, stats.waiting + 1)

    def _on_progress(self, event: _Event, notifications: List[Job]) -> None:
        attempt = self._active.get(event.job_id)
        if attempt is None or attempt.number != event.data["attempt"]:
            return
        job = self._jobs[event.job_id]
        job.progress = max(job.progress, min(int(event.data["percent"]), 100))

    def _on_finished(self, event: _Event, notifications: List[Job]) -> None:
        attempt = self._active.get(event.job_id)
        if attempt is None or attempt.number != event.data["attempt"]:
            return
        del self._active[event.job_id]

        job = self._jobs[event.job_id]
        error: Optional[Exception] = event.data["error"]

        if error is None:
            job.status = JobStatus.COMPLETED
            job.result = event.data["result"]
            job.progress = 100
            job.completed_at = datetime.now(UTC)
            logger.info(f"Job {job.id} completed in {job.duration_seconds:.1f}s")
            notifications.append(job.snapshot())
            return

        job.attempts += 1
        if attempt.token.cancelled and not isinstance(error, JobCancelledError):
            error = JobCancelledError(f"Cancelled: {attempt.token.reason}")
        job.last_error = str(error) or type(error).__name__

        retryable = getattr(error, "retryable", True)
        if retryable and job.attempts < job.max_attempts:
            job.status = JobStatus.WAITING
            job.progress = 0
            delay = self.config.retry_delay_for(job.attempts)
            logger.warning(
                f"Job {job.id} failed (attempt {job.attempts}/{job.max_attempts}), "
                f"retrying{f' in {delay:.1f}s' if delay else ''}: {job.last_error}"
            )
            if delay > 0:
                timer = threading.Timer(delay, self._post, args=("requeue", job.id))
                timer.daemon = True
                self._retry_timers[job.id] = timer
                timer.start()
            else:
                self._waiting.append(job.id)
            return

        self._fail(job, notifications)
        logger.error(
            f"Job {job.id} permanently failed after {job.attempts} attempt(s): "
            f"{job.last_error}"
        )

    def _fail(self, job: Job, notifications: List[Job]) -> None:
        job.status = JobStatus.FAILED
        job.failed_at = datetime.now(UTC)
        notifications.append(job.snapshot())

    def _on_requeue(self, event: _Event, notifications: List[Job]) -> None:
        self._retry_timers.pop(event.job_id, None)
        job = self._jobs.get(event.job_id)
        if job is None or job.status != JobStatus.WAITING or event.job_id in self._waiting:
            return
        self._waiting.append(job.id)

    def _on_cancel(self, event: _Event, notifications: List[Job]) -> Job:
        job = self._jobs.get(event.job_id)
        if job is None:
            raise JobNotFoundError(event.job_id)
        if job.status.is_terminal:
            raise JobStateError(f"Cannot cancel job in status '{job.status.value}'")

        reason = event.data["reason"]
        if job.status == JobStatus.ACTIVE:
            logger.info(f"Job {job.id} cancellation requested: {reason}")
            self._active[job.id].token.cancel(reason)
            return job.snapshot()

        if job.id in self._waiting:
            self._waiting.remove(job.id)
        timer = self._retry_timers.pop(job.id, None)
        if timer is not None:
            timer.cancel()
        job.last_error = f"Cancelled: {reason}"
        self._fail(job, notifications)
        logger.info(f"Job {job.id} cancelled while waiting: {reason}")
        return job.snapshot()

    def _on_pause(self, event: _Event, notifications: List[Job]) -> None:
        self._paused = True
        logger.info("JobQueue paused")

    def _on_resume(self, event: _Event, notifications: List[Job]) -> None:
        self._paused = False
        logger.info("JobQueue resumed")

    def _on_prune(self, event: _Event, notifications: List[Job]) -> int:
        cutoff = datetime.now(UTC) - timedelta(seconds=event.data["older_than"])
        stale = [
            job.id
            for job in self._jobs.values()
            if job.status.is_terminal and job.finished_at is not None and job.finished_at < cutoff
        ]
        for job_id in stale:
            del self._jobs[job_id]
        if stale:
            logger.info(f"Pruned {len(stale)} finished job(s)")
        return len(stale)

    def _notify(self, job: Job) -> None:
        for listener in list(self._listeners):
            try:
                listener(job)
            except Exception:
                logger.exception(f"Job listener failed for {job.id}")
