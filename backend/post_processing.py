"""Post-processing functions for transcription segments.

Segment normalisation, filler removal, speaker relabelling, paragraph
detection, speaker shares, accent annotation and transcript rendering.
All functions are pure: they return new segment lists and never mutate
their input, so running them twice on the same transcript gives the
same output.
"""

import math
import re
import logging
from dataclasses import replace
from typing import List, Optional

from domain.models import AccentAnnotation, SpeakerShare, Transcript, TranscriptSegment

logger = logging.getLogger(__name__)

NO_SPEECH_SUMMARY = "No speech detected."
FALLBACK_SPEAKER = "Speaker 1"
UNKNOWN_SPEAKER = "unknown"


def normalize_segments(segments: list[TranscriptSegment]) -> list[TranscriptSegment]:
    """Drop empty segments and make the sequence time-ordered and non-overlapping.

    A segment that starts before its predecessor ends is clipped to start at
    the predecessor's end.
    """
    ordered = sorted(
        (seg for seg in segments if seg.text.strip()),
        key=lambda s: (s.start, s.end),
    )
    result: list[TranscriptSegment] = []
    for seg in ordered:
        start = max(seg.start, 0.0)
        end = max(seg.end, start)
        if result and start < result[-1].end:
            start = result[-1].end
            end = max(end, start)
        if (start, end) != (seg.start, seg.end):
            seg = replace(seg, start=start, end=end)
        result.append(seg)
    return result


# Filler word pattern: whole-word match, case-insensitive.
# Ordered longest-first so "you know" matches before "you".
_FILLER_PHRASES = [
    r"you know",
    r"i mean",
    r"sort of",
    r"kind of",
    r"um+",
    r"uh+",
    r"erm",
]
_FILLER_PATTERN = re.compile(
    r"\b(?:" + "|".join(_FILLER_PHRASES) + r")\b,?",
    re.IGNORECASE,
)
_MULTI_SPACE = re.compile(r"  +")


def remove_filler_words(segments: list[TranscriptSegment]) -> list[TranscriptSegment]:
    """Strip filler words from segment text.

    Handles: uh, um, erm, you know, I mean, sort of, kind of. Segments left
    empty by the removal are dropped.
    """
    cleaned_segments = []
    for seg in segments:
        cleaned = _FILLER_PATTERN.sub("", seg.text)
        cleaned = _MULTI_SPACE.sub(" ", cleaned).strip()
        cleaned = re.sub(r",\s*,", ",", cleaned)
        cleaned = re.sub(r"\s+([,.!?])", r"\1", cleaned).lstrip(", ")
        if cleaned:
            cleaned_segments.append(replace(seg, text=cleaned))
    return cleaned_segments


def relabel_speakers(segments: list[TranscriptSegment]) -> list[TranscriptSegment]:
    """Rename raw diarization ids to "Speaker N" in order of first appearance.

    Without any diarization labels the whole transcript belongs to
    "Speaker 1". Segments the diarizer could not attribute stay "unknown".
    """
    if not any(seg.speaker for seg in segments):
        return [replace(seg, speaker=FALLBACK_SPEAKER) for seg in segments]

    mapping: dict[str, str] = {}
    relabelled = []
    for seg in segments:
        speaker = seg.speaker
        if speaker and speaker != UNKNOWN_SPEAKER:
            if speaker not in mapping:
                mapping[speaker] = f"Speaker {len(mapping) + 1}"
            speaker = mapping[speaker]
        else:
            speaker = UNKNOWN_SPEAKER
        relabelled.append(replace(seg, speaker=speaker))
    return relabelled


def detect_paragraphs(segments: list[TranscriptSegment], silence_threshold: float = 0.8) -> List[dict]:
    """Group consecutive same-speaker segments into paragraphs.

    Breaks on speaker change or silence gap exceeding threshold.

    Returns:
        List of paragraph dicts with speaker, start, end, text, segment_count.
    """
    if not segments:
        return []

    paragraphs = []
    current = None

    for seg in segments:
        if current is not None:
            silence_gap = seg.start - current["end"]
            if seg.speaker == current["speaker"] and silence_gap <= silence_threshold:
                current["end"] = seg.end
                current["texts"].append(seg.text.strip())
                current["segment_count"] += 1
                continue
            paragraphs.append(_close_paragraph(current))

        current = {
            "speaker": seg.speaker,
            "start": seg.start,
            "end": seg.end,
            "texts": [seg.text.strip()],
            "segment_count": 1,
        }

    paragraphs.append(_close_paragraph(current))
    return paragraphs


def _close_paragraph(current: dict) -> dict:
    return {
        "speaker": current["speaker"],
        "start": current["start"],
        "end": current["end"],
        "text": " ".join(current["texts"]),
        "segment_count": current["segment_count"],
    }


def format_timestamp(seconds: float) -> str:
    """Format seconds as mm:ss, or h:mm:ss past the hour."""
    total = int(seconds)
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def render_transcript(paragraphs: List[dict]) -> str:
    """Render paragraphs as blank-line separated "[mm:ss] Speaker N: text" blocks.

    The speaker prefix is only written when more than one speaker is present.
    """
    speakers = {p["speaker"] for p in paragraphs}
    show_speaker = len(speakers) > 1
    blocks = []
    for p in paragraphs:
        prefix = f"[{format_timestamp(p['start'])}] "
        if show_speaker and p["speaker"]:
            prefix += f"{p['speaker']}: "
        blocks.append(prefix + p["text"])
    return "\n\n".join(blocks)


def compute_speaker_shares(segments: list[TranscriptSegment], accent: Optional[str] = None) -> list[SpeakerShare]:
    """Per-speaker share of talk time, in order of first appearance.

    Percentages are taken over all speech, including segments attributed to
    no one, and floored to one decimal place so they never sum past 100.
    ``accent`` is attached to every share when given.
    """
    durations: dict[str, float] = {}
    total_talk = 0.0

    for seg in segments:
        talk = max(seg.end - seg.start, 0.0)
        total_talk += talk
        if not seg.speaker or seg.speaker == UNKNOWN_SPEAKER:
            continue
        durations[seg.speaker] = durations.get(seg.speaker, 0.0) + talk

    if not durations:
        return []

    tenths: dict[str, int] = {}
    for speaker, talk in durations.items():
        if total_talk > 0:
            # Epsilon absorbs float error such as 0.6 * 1000 == 599.999...
            tenths[speaker] = math.floor(talk / total_talk * 1000 + 1e-9)
        else:
            # Zero-length segments only: split evenly.
            tenths[speaker] = 1000 // len(durations)

    # Tenths sum to at most 1000, but the float sum can still land a hair over
    # 100 (99.4 + 0.4 + 0.2). Take the excess off the largest share.
    while sum(t / 10 for t in tenths.values()) > 100:
        largest = max(tenths, key=tenths.get)
        tenths[largest] -= 1

    return [
        SpeakerShare(label=speaker, percentage=t / 10, accent=accent)
        for speaker, t in tenths.items()
    ]


LANGUAGE_NAMES = {
    "en": "English",
    "hi": "Hindi",
    "bn": "Bengali",
    "ta": "Tamil",
    "te": "Telugu",
    "ur": "Urdu",
    "sw": "Swahili",
    "yo": "Yoruba",
    "ha": "Hausa",
    "am": "Amharic",
    "af": "Afrikaans",
    "fr": "French",
    "de": "German",
    "es": "Spanish",
    "it": "Italian",
    "pt": "Portuguese",
    "nl": "Dutch",
    "pl": "Polish",
    "ru": "Russian",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "vi": "Vietnamese",
    "th": "Thai",
    "id": "Indonesian",
    "ar": "Arabic",
}


def language_name(code: Optional[str]) -> Optional[str]:
    if not code:
        return None
    return LANGUAGE_NAMES.get(code.lower(), code)


def describe_accent(transcript: Transcript) -> AccentAnnotation:
    """Build the accent/confidence annotation shown alongside the transcript.

    Confidence is the backend's language probability when it reports one,
    otherwise the mean per-segment confidence.
    """
    segments = transcript.segments
    if not segments:
        return AccentAnnotation(
            language=transcript.language,
            confidence=None,
            description="No speech detected; accent analysis unavailable.",
        )

    confidence = transcript.language_probability
    if confidence is None:
        scored = [seg.confidence for seg in segments if seg.confidence is not None]
        confidence = sum(scored) / len(scored) if scored else None

    name = language_name(transcript.language)
    parts = []
    if name:
        parts.append(f"Detected language: {name}.")
    parts.append("The transcription has been normalized for readability while preserving the speaker's wording.")
    if confidence is not None:
        parts.append(f"Confidence: {round(confidence * 100)}%")
    return AccentAnnotation(language=transcript.language, confidence=confidence, description=" ".join(parts))
