from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel


class Segment(BaseModel):
    """A transcript segment as returned to the interface."""
    id: int
    start: float
    end: float
    text: str
    speaker: Optional[str] = None
    confidence: Optional[float] = None


class SpeakerShare(BaseModel):
    name: str
    percentage: float
    accent: Optional[str] = None


class AccentInfo(BaseModel):
    language: Optional[str] = None
    confidence: Optional[float] = None
    description: str


class TranscriptionResult(BaseModel):
    """Everything the interface renders once a job is done."""
    full_transcript: str
    segments: List[Segment] = []
    summary: str
    highlights: List[str] = []
    speakers: List[SpeakerShare] = []
    accent: AccentInfo
    language: Optional[str] = None
    duration: float = 0.0
    model: Optional[str] = None


class JobCreated(BaseModel):
    job_id: str
    status: str


class JobStatusResponse(BaseModel):
    job_id: str
    status: str
    filename: str
    attempts: int = 0
    created_at: datetime
    updated_at: datetime
    error: Optional[str] = None
    result: Optional[TranscriptionResult] = None
    # Kept when summarization failed after a successful transcription.
    partial_transcript: Optional[List[Segment]] = None


class CancelResponse(BaseModel):
    job_id: str
    cancelled: bool
    status: str


class HealthResponse(BaseModel):
    status: str
    engine: str
    model: Optional[str] = None
    model_loaded: bool


class ApiError(BaseModel):
    error: str
    message: str
    details: Optional[Any] = None
