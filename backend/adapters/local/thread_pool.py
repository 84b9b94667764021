"""ThreadPoolJobAdapter — runs jobs on a bounded pool of worker threads.

Backend calls release the GIL inside native code, so threads give real
overlap between jobs without a separate broker process.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Optional

from ports.job_queue import JobQueuePort

logger = logging.getLogger(__name__)


class ThreadPoolJobAdapter(JobQueuePort):
    def __init__(self, max_workers: int = 2):
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="scribe-job")
        self._futures: dict[str, Future] = {}
        self._running: set[str] = set()
        self._lock = threading.Lock()

    def submit(self, job_id: str, func: Any, *args, **kwargs) -> str:
        with self._lock:
            existing = self._futures.get(job_id)
            if existing is not None and not existing.done():
                raise RuntimeError(f"Job {job_id} is already scheduled")
            self._futures[job_id] = self._pool.submit(self._call, job_id, func, *args, **kwargs)
        return job_id

    def _call(self, job_id: str, func: Any, *args, **kwargs) -> Any:
        with self._lock:
            self._running.add(job_id)
        try:
            return func(*args, **kwargs)
        except Exception:
            logger.exception(f"Job {job_id} raised")
            raise
        finally:
            with self._lock:
                self._running.discard(job_id)

    def status(self, job_id: str) -> str:
        with self._lock:
            future = self._futures.get(job_id)
            running = job_id in self._running
        if future is None:
            return "unknown"
        if not future.done():
            return "running" if running else "pending"
        return "failed" if future.exception() is not None else "completed"

    def result(self, job_id: str) -> Optional[Any]:
        with self._lock:
            future = self._futures.get(job_id)
        if future is None or not future.done() or future.exception() is not None:
            return None
        return future.result()

    def wait(self, job_id: str, timeout: Optional[float] = None) -> None:
        """Block until the job's callable returns. Meant for tests and shutdown."""
        with self._lock:
            future = self._futures.get(job_id)
        if future is not None:
            future.exception(timeout=timeout)

    def forget(self, job_id: str) -> None:
        with self._lock:
            future = self._futures.get(job_id)
        if future is not None:
            # Runs immediately if the future is already done.
            future.add_done_callback(lambda f: self._drop(job_id, f))

    def _drop(self, job_id: str, future: Future) -> None:
        with self._lock:
            if self._futures.get(job_id) is future:
                del self._futures[job_id]

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait, cancel_futures=True)
