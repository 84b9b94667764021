"""SyncJobAdapter — runs jobs inline (INFRA=sync, used by tests and one-shot CLIs)."""

import logging
from typing import Any, Optional

from ports.job_queue import JobQueuePort

logger = logging.getLogger(__name__)


class SyncJobAdapter(JobQueuePort):
    """Executes jobs synchronously. No queue, no background processing."""

    def __init__(self):
        self._results: dict[str, Any] = {}
        self._failed: set[str] = set()

    def submit(self, job_id: str, func: Any, *args, **kwargs) -> str:
        try:
            self._results[job_id] = func(*args, **kwargs)
        except Exception:
            logger.exception(f"Job {job_id} raised")
            self._failed.add(job_id)
            raise
        return job_id

    def status(self, job_id: str) -> str:
        if job_id in self._failed:
            return "failed"
        return "completed" if job_id in self._results else "unknown"

    def result(self, job_id: str) -> Optional[Any]:
        return self._results.get(job_id)

    def forget(self, job_id: str) -> None:
        self._results.pop(job_id, None)
        self._failed.discard(job_id)

    def shutdown(self, wait: bool = True) -> None:
        pass
