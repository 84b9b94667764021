"""ResultStorePort — the single point of state shared across jobs."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, TypeVar

from domain.models import Job, Result, Transcript

T = TypeVar("T")


@dataclass
class JobRecord:
    """Everything stored for one job id."""
    job: Job
    result: Optional[Result] = None
    transcript: Optional[Transcript] = None


class ResultStorePort(ABC):
    @abstractmethod
    def add(self, job: Job) -> None:
        """Register a new job. Raises ValueError if the id already exists."""

    @abstractmethod
    def get(self, job_id: str) -> Optional[JobRecord]:
        """Return a copy of the record, or None if unknown or expired."""

    @abstractmethod
    def update(self, job_id: str, fn: Callable[[JobRecord], T]) -> T:
        """Apply ``fn`` to the live record while holding that job's lock.

        Writes for the same job id are serialised; different ids never block
        each other. Raises JobNotFoundError for unknown ids.
        """

    @abstractmethod
    def remove(self, job_id: str) -> Optional[JobRecord]:
        """Drop a record. Returns it, or None if it was not present."""

    @abstractmethod
    def expired(self, cutoff: datetime) -> list[str]:
        """Ids of terminal jobs last updated before ``cutoff``."""
