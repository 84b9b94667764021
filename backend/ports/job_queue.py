"""JobQueuePort — abstract interface for job submission and tracking."""

from abc import ABC, abstractmethod
from typing import Any, Optional


class JobQueuePort(ABC):
    @abstractmethod
    def submit(self, job_id: str, func: Any, *args, **kwargs) -> str:
        """Schedule ``func`` for the given job id. Returns the job id."""

    @abstractmethod
    def status(self, job_id: str) -> str:
        """Return execution status: 'pending', 'running', 'completed', 'failed', 'unknown'."""

    @abstractmethod
    def result(self, job_id: str) -> Optional[Any]:
        """Return the callable's return value if completed, None otherwise."""

    @abstractmethod
    def forget(self, job_id: str) -> None:
        """Drop bookkeeping for a job once it has finished."""

    @abstractmethod
    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work."""
