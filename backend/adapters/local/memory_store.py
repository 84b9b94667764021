"""InMemoryResultStore — process-local job and result storage with per-job locks."""

import copy
import logging
import threading
from datetime import datetime
from typing import Callable, Optional, TypeVar

from domain.errors import JobNotFoundError
from domain.models import Job
from ports.result_store import JobRecord, ResultStorePort

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InMemoryResultStore(ResultStorePort):
    def __init__(self):
        self._records: dict[str, JobRecord] = {}
        self._locks: dict[str, threading.Lock] = {}
        # Guards the two dicts above, never held while a job lock is.
        self._index_lock = threading.Lock()

    def add(self, job: Job) -> None:
        with self._index_lock:
            if job.job_id in self._records:
                raise ValueError(f"Job {job.job_id} already exists")
            self._records[job.job_id] = JobRecord(job=job)
            self._locks[job.job_id] = threading.Lock()

    def _lookup(self, job_id: str) -> tuple[Optional[JobRecord], Optional[threading.Lock]]:
        with self._index_lock:
            return self._records.get(job_id), self._locks.get(job_id)

    def get(self, job_id: str) -> Optional[JobRecord]:
        record, lock = self._lookup(job_id)
        if record is None:
            return None
        with lock:
            # Result and transcript are frozen; only the Job needs copying.
            return JobRecord(job=copy.copy(record.job), result=record.result, transcript=record.transcript)

    def update(self, job_id: str, fn: Callable[[JobRecord], T]) -> T:
        record, lock = self._lookup(job_id)
        if record is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        with lock:
            return fn(record)

    def remove(self, job_id: str) -> Optional[JobRecord]:
        with self._index_lock:
            self._locks.pop(job_id, None)
            return self._records.pop(job_id, None)

    def expired(self, cutoff: datetime) -> list[str]:
        with self._index_lock:
            records = list(self._records.values())
        return [
            r.job.job_id for r in records
            if r.job.status.is_terminal and r.job.updated_at < cutoff
        ]

    def __len__(self) -> int:
        with self._index_lock:
            return len(self._records)
