"""DiarizationPort — abstract interface for speaker diarization."""

from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Optional

from domain.models import DiarizationResult, DiarizationSegment, TranscriptSegment


class DiarizationPort(ABC):
    @abstractmethod
    def load(self, **kwargs) -> None:
        """Load the diarization pipeline."""

    @abstractmethod
    def diarize(
        self,
        audio_path: str,
        num_speakers: Optional[int] = None,
        min_speakers: Optional[int] = None,
        max_speakers: Optional[int] = None,
    ) -> DiarizationResult:
        """Run speaker diarization on an audio file."""

    @abstractmethod
    def is_loaded(self) -> bool:
        """Whether the diarization pipeline is loaded and ready."""

    def merge_with_transcription(
        self,
        diarization: DiarizationResult,
        segments: list[TranscriptSegment],
    ) -> list[TranscriptSegment]:
        """Overlay speaker labels onto transcription segments by largest time overlap."""
        if not diarization.segments:
            return segments
        return [replace(seg, speaker=_best_speaker(seg, diarization.segments)) for seg in segments]


def _best_speaker(segment: TranscriptSegment, turns: list[DiarizationSegment]) -> str:
    overlapping: list[tuple[str, float]] = []
    for spk in turns:
        overlap_start = max(segment.start, spk.start)
        overlap_end = min(segment.end, spk.end)
        if overlap_end > overlap_start:
            overlapping.append((spk.speaker, overlap_end - overlap_start))

    if not overlapping:
        return "unknown"
    # Stable sort keeps the earliest turn on ties.
    overlapping.sort(key=lambda x: x[1], reverse=True)
    return overlapping[0][0]
