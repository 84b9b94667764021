"""Domain <-> DTO mappers.

Converts the frozen domain dataclasses into the pydantic models the API
serialises. Nothing in the pipeline imports models.py.
"""

from domain.models import JobState, Result, TranscriptSegment
from models import AccentInfo, JobStatusResponse, Segment, SpeakerShare, TranscriptionResult


def segment_to_dto(seg: TranscriptSegment, index: int = 0) -> Segment:
    """Convert a domain TranscriptSegment to a Segment DTO."""
    return Segment(
        id=index,
        start=seg.start,
        end=seg.end,
        text=seg.text,
        speaker=seg.speaker,
        confidence=seg.confidence,
    )


def segments_to_dtos(segments) -> list[Segment]:
    """Convert a sequence of domain segments to DTOs, preserving order."""
    return [segment_to_dto(seg, i) for i, seg in enumerate(segments)]


def result_to_dto(result: Result) -> TranscriptionResult:
    return TranscriptionResult(
        full_transcript=result.full_text,
        segments=segments_to_dtos(result.transcript.segments),
        summary=result.summary,
        highlights=list(result.highlights),
        speakers=[SpeakerShare(name=s.label, percentage=s.percentage, accent=s.accent) for s in result.speakers],
        accent=AccentInfo(
            language=result.accent.language,
            confidence=result.accent.confidence,
            description=result.accent.description,
        ),
        language=result.transcript.language,
        duration=result.duration,
        model=result.model,
    )


def state_to_dto(state: JobState) -> JobStatusResponse:
    return JobStatusResponse(
        job_id=state.job_id,
        status=state.status.value,
        filename=state.filename,
        attempts=state.attempts,
        created_at=state.created_at,
        updated_at=state.updated_at,
        error=state.error,
        result=result_to_dto(state.result) if state.result else None,
        partial_transcript=segments_to_dtos(state.transcript.segments) if state.transcript else None,
    )
