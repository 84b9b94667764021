"""JobOrchestrator — owns the job lifecycle, retries and timeouts.

queued -> transcribing -> summarizing -> done | failed, plus cancelled from
any non-terminal state. Every status change goes through the result store's
per-job lock, so a cancel or timeout that lands first always wins over a
late-finishing stage.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from domain.cancellation import CancelToken
from domain.errors import (
    FatalProcessingError,
    InvalidTransitionError,
    JobCancelledError,
    JobNotFoundError,
    JobNotReadyError,
    PipelineError,
    TransientBackendError,
    ValidationError,
)
from domain.models import Job, JobState, JobStatus, Result, Transcript, utcnow
from ports.job_queue import JobQueuePort
from ports.progress import ProgressPort
from ports.result_store import JobRecord, ResultStorePort
from use_cases.ingest import IngestionGateway
from use_cases.post_process import PostProcessor
from use_cases.transcribe import TranscriptionWorker, WorkerOutput

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """Exponential backoff for transient worker failures."""
    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0

    def delay(self, failed_attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        return min(self.base_delay * self.multiplier ** (failed_attempt - 1), self.max_delay)


class JobOrchestrator:
    def __init__(
        self,
        gateway: IngestionGateway,
        store: ResultStorePort,
        queue: JobQueuePort,
        worker: TranscriptionWorker,
        post_processor: PostProcessor,
        progress: ProgressPort,
        retry: Optional[RetryPolicy] = None,
        attempt_timeout: Optional[float] = None,
        pipeline_timeout: Optional[float] = None,
        result_ttl: float = 3600.0,
    ):
        self._gateway = gateway
        self._store = store
        self._queue = queue
        self._worker = worker
        self._post = post_processor
        self._progress = progress
        self._retry = retry or RetryPolicy()
        self._attempt_timeout = attempt_timeout
        self._pipeline_timeout = pipeline_timeout
        self._result_ttl = result_ttl
        self._tokens: dict[str, CancelToken] = {}
        self._active: set[str] = set()
        self._lock = threading.Lock()
        self._closed = False

    # -- public API ---------------------------------------------------------

    def submit(
        self,
        data: bytes,
        mime_type: str,
        filename: Optional[str] = None,
        duration: Optional[float] = None,
    ) -> str:
        """Ingest audio and schedule the pipeline. Returns the job id without waiting."""
        if self._closed:
            raise RuntimeError("Orchestrator is shut down")
        self.purge_expired()

        job = self._gateway.accept(data, mime_type, filename=filename, duration=duration)
        self._store.add(job)
        with self._lock:
            self._tokens[job.job_id] = CancelToken.with_timeout(self._pipeline_timeout)
        self._progress.report(job.job_id, JobStatus.QUEUED.value, detail=job.source.filename)

        try:
            self._queue.submit(job.job_id, self._run, job.job_id)
        except RuntimeError as e:
            # Executor already shut down.
            self._fail(job.job_id, f"Could not schedule job: {e}")
        return job.job_id

    def status(self, job_id: str) -> JobState:
        record = self._store.get(job_id)
        if record is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        if self._enforce_deadline(job_id):
            record = self._store.get(job_id) or record
        return self._snapshot(record)

    def result(self, job_id: str) -> Result:
        state = self.status(job_id)
        if state.status is not JobStatus.DONE:
            raise JobNotReadyError(f"Job {job_id} is {state.status.value}")
        return state.result

    def cancel(self, job_id: str) -> bool:
        """Best-effort cancel. Returns False if the job already finished."""
        def _cancel(record: JobRecord) -> bool:
            if record.job.status.is_terminal:
                return False
            record.job.advance(JobStatus.CANCELLED, error="Cancelled by user")
            return True

        cancelled = self._store.update(job_id, _cancel)
        if cancelled:
            token = self._tokens.get(job_id)
            if token:
                token.cancel()
            self._progress.report(job_id, JobStatus.CANCELLED.value)
        return cancelled

    @property
    def max_upload_bytes(self) -> int:
        return self._gateway.max_bytes

    def model_name(self) -> str:
        return self._worker.model_name()

    def is_ready(self) -> bool:
        return self._worker.is_ready()

    def wait(self, job_id: str, timeout: Optional[float] = None, poll_interval: float = 0.05) -> JobState:
        """Poll until the job is terminal or ``timeout`` seconds pass."""
        deadline = time.monotonic() + timeout if timeout is not None else None
        state = self.status(job_id)
        while not state.status.is_terminal:
            if deadline is not None and time.monotonic() >= deadline:
                break
            time.sleep(poll_interval)
            state = self.status(job_id)
        return state

    def purge_expired(self) -> int:
        """Drop terminal jobs older than the retention window and their audio."""
        cutoff = utcnow() - timedelta(seconds=self._result_ttl)
        purged = 0
        for job_id in self._store.expired(cutoff):
            with self._lock:
                if job_id in self._active:
                    continue
                self._tokens.pop(job_id, None)
            self._queue.forget(job_id)
            record = self._store.remove(job_id)
            if record is not None:
                self._gateway.discard(record.job.source)
                purged += 1
        if purged:
            logger.info(f"Purged {purged} expired jobs")
        return purged

    def shutdown(self, wait: bool = False) -> None:
        self._closed = True
        with self._lock:
            pending = list(self._tokens)
        for job_id in pending:
            try:
                self.cancel(job_id)
            except JobNotFoundError:
                pass
        self._queue.shutdown(wait=wait)

    # -- pipeline -----------------------------------------------------------

    def _run(self, job_id: str) -> None:
        with self._lock:
            if job_id in self._active:
                logger.warning(f"[{job_id}] already running, ignoring duplicate run")
                return
            self._active.add(job_id)
            token = self._tokens.get(job_id)
        try:
            record = self._store.get(job_id)
            if record is None or record.job.status.is_terminal or token is None:
                return
            self._execute(record.job, token)
        finally:
            with self._lock:
                self._active.discard(job_id)

    def _execute(self, job: Job, token: CancelToken) -> None:
        job_id = job.job_id
        try:
            output = self._transcribe_with_retry(job, token)
        except JobCancelledError:
            logger.info(f"[{job_id}] stopped during transcription")
            return
        except TransientBackendError as e:
            if token.expired:
                self._fail(job_id, self._timeout_message())
            else:
                self._fail(job_id, f"Transcription backend unavailable: {e}")
            return
        except (FatalProcessingError, ValidationError) as e:
            self._fail(job_id, str(e))
            return
        except Exception as e:
            logger.error(f"[{job_id}] unexpected transcription error: {e}", exc_info=True)
            self._fail(job_id, f"Internal error during transcription: {e}")
            return

        # The transcript is stored now so it survives a post-processing failure.
        if not self._transition(job_id, JobStatus.SUMMARIZING, transcript=output.transcript):
            return

        try:
            result = self._post.run(output.transcript, output.duration, model=self._worker.model_name())
        except PipelineError as e:
            self._fail(job_id, f"Post-processing failed: {e}")
            return
        except Exception as e:
            logger.error(f"[{job_id}] unexpected post-processing error: {e}", exc_info=True)
            self._fail(job_id, f"Post-processing failed: {e}")
            return

        if token.cancelled:
            return
        if self._transition(job_id, JobStatus.DONE, result=result):
            logger.info(f"[{job_id}] done: {len(result.transcript.segments)} segments")

    def _transcribe_with_retry(self, job: Job, token: CancelToken) -> WorkerOutput:
        attempt = 0
        while True:
            attempt += 1
            if not self._transition(job.job_id, JobStatus.TRANSCRIBING, attempts=attempt):
                raise JobCancelledError("Job is no longer active")
            token.raise_if_stopped()

            attempt_token = token.child(self._attempt_timeout)
            try:
                output = self._worker.run(job, attempt_token)
                if attempt_token.expired or token.cancelled:
                    # Partial or late output is never used.
                    attempt_token.raise_if_stopped()
                return output
            except TransientBackendError as e:
                if token.cancelled:
                    raise JobCancelledError("Job was cancelled") from e
                if token.expired or attempt >= self._retry.max_attempts:
                    raise
                delay = self._retry.delay(attempt)
                logger.warning(
                    f"[{job.job_id}] attempt {attempt}/{self._retry.max_attempts} failed: {e}; "
                    f"retrying in {delay:.1f}s"
                )
                self._progress.report(job.job_id, "retrying", detail=f"attempt {attempt} failed: {e}")
                if token.sleep(delay):
                    raise JobCancelledError("Job was cancelled") from e

    # -- state helpers ------------------------------------------------------

    def _transition(
        self,
        job_id: str,
        status: JobStatus,
        error: Optional[str] = None,
        attempts: Optional[int] = None,
        result: Optional[Result] = None,
        transcript: Optional[Transcript] = None,
    ) -> bool:
        """Apply a status change atomically. False if the job moved on (cancelled, expired)."""
        def _apply(record: JobRecord) -> None:
            record.job.advance(status, error=error)
            if attempts is not None:
                record.job.attempts = attempts
            if transcript is not None:
                record.transcript = transcript
            if result is not None:
                record.result = result

        try:
            self._store.update(job_id, _apply)
        except (InvalidTransitionError, JobNotFoundError) as e:
            logger.info(f"[{job_id}] not moving to {status.value}: {e}")
            return False
        self._progress.report(job_id, status.value, detail=error)
        return True

    def _fail(self, job_id: str, message: str) -> None:
        if self._transition(job_id, JobStatus.FAILED, error=message):
            logger.error(f"[{job_id}] failed: {message}")

    def _timeout_message(self) -> str:
        return f"Pipeline timed out after {self._pipeline_timeout:g}s"

    def _enforce_deadline(self, job_id: str) -> bool:
        """Fail a job whose pipeline deadline has passed, even if a backend call is still hanging."""
        token = self._tokens.get(job_id)
        if token is None or not token.expired:
            return False

        def _expire(record: JobRecord) -> bool:
            if record.job.status.is_terminal:
                return False
            record.job.advance(JobStatus.FAILED, error=self._timeout_message())
            return True

        try:
            expired = self._store.update(job_id, _expire)
        except JobNotFoundError:
            return False
        if expired:
            token.cancel()
            logger.warning(f"[{job_id}] {self._timeout_message()}")
            self._progress.report(job_id, JobStatus.FAILED.value, detail="timeout")
        return expired

    @staticmethod
    def _snapshot(record: JobRecord) -> JobState:
        job = record.job
        done = job.status is JobStatus.DONE
        return JobState(
            job_id=job.job_id,
            status=job.status,
            created_at=job.created_at,
            updated_at=job.updated_at,
            filename=job.source.filename,
            attempts=job.attempts,
            error=job.error,
            result=record.result if done else None,
            transcript=None if done else record.transcript,
        )
