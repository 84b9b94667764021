"""Framework-agnostic domain models for WhisperLens Scribe.

The API layer never sees these directly; pydantic DTOs in models.py are
produced from them by mappers.py at the boundary.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.errors import InvalidTransitionError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    QUEUED = "queued"
    TRANSCRIBING = "transcribing"
    SUMMARIZING = "summarizing"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.DONE, JobStatus.FAILED, JobStatus.CANCELLED})

# Allowed moves. TRANSCRIBING -> TRANSCRIBING is a retry of the worker stage.
TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.TRANSCRIBING, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.TRANSCRIBING: frozenset({
        JobStatus.TRANSCRIBING, JobStatus.SUMMARIZING, JobStatus.FAILED, JobStatus.CANCELLED,
    }),
    JobStatus.SUMMARIZING: frozenset({JobStatus.DONE, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.DONE: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class TranscriptSegment:
    """A single transcribed speech segment with timing and optional speaker."""
    start: float
    end: float
    text: str
    speaker: Optional[str] = None
    confidence: Optional[float] = None


@dataclass
class DiarizationSegment:
    """A speaker turn from the diarization pipeline."""
    start: float
    end: float
    speaker: str


@dataclass
class DiarizationResult:
    """Complete diarization output for an audio file."""
    segments: list[DiarizationSegment] = field(default_factory=list)
    num_speakers: int = 0


@dataclass(frozen=True)
class Transcript:
    """Ordered, non-overlapping segments plus what the backend detected."""
    segments: tuple[TranscriptSegment, ...] = ()
    language: Optional[str] = None
    language_probability: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return not self.segments

    @property
    def text(self) -> str:
        return " ".join(seg.text.strip() for seg in self.segments)


@dataclass(frozen=True)
class AudioInfo:
    duration: float
    sample_rate: int
    rms_dbfs: float


@dataclass(frozen=True)
class AudioSource:
    """Reference to the raw audio persisted at ingestion."""
    path: str
    mime_type: str
    filename: str
    size: int
    duration: Optional[float] = None


@dataclass(frozen=True)
class SpeakerShare:
    label: str
    percentage: float
    accent: Optional[str] = None


@dataclass(frozen=True)
class AccentAnnotation:
    language: Optional[str]
    confidence: Optional[float]
    description: str


@dataclass(frozen=True)
class Summary:
    text: str
    highlights: tuple[str, ...] = ()


@dataclass(frozen=True)
class Result:
    transcript: Transcript
    full_text: str
    summary: str
    highlights: tuple[str, ...]
    speakers: tuple[SpeakerShare, ...]
    accent: AccentAnnotation
    duration: float = 0.0
    model: Optional[str] = None


@dataclass
class Job:
    """One end-to-end transcription request. Mutated only by the orchestrator."""
    job_id: str
    source: AudioSource
    status: JobStatus = JobStatus.QUEUED
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    error: Optional[str] = None
    attempts: int = 0

    def advance(self, status: JobStatus, error: Optional[str] = None) -> None:
        if status not in TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Job {self.job_id}: cannot move from {self.status.value} to {status.value}"
            )
        self.status = status
        self.updated_at = utcnow()
        if error is not None:
            self.error = error


@dataclass(frozen=True)
class JobState:
    """Read-only snapshot handed to pollers."""
    job_id: str
    status: JobStatus
    created_at: datetime
    updated_at: datetime
    filename: str
    attempts: int = 0
    error: Optional[str] = None
    result: Optional[Result] = None
    transcript: Optional[Transcript] = None
