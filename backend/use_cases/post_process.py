"""PostProcessor — derives summary, highlights, speakers and accent from a transcript.

Deterministic: re-running on an identical transcript yields an identical Result.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from domain.models import Result, Transcript
from ports.summarization import SummarizationPort
from post_processing import (
    NO_SPEECH_SUMMARY,
    compute_speaker_shares,
    describe_accent,
    detect_paragraphs,
    language_name,
    relabel_speakers,
    remove_filler_words,
    render_transcript,
)

logger = logging.getLogger(__name__)


@dataclass
class PostProcessOptions:
    remove_fillers: bool = True
    paragraph_silence: float = 0.8


class PostProcessor:
    def __init__(self, summarizer: SummarizationPort, options: Optional[PostProcessOptions] = None):
        self._summarizer = summarizer
        self._options = options or PostProcessOptions()

    def run(self, transcript: Transcript, duration: float = 0.0, model: Optional[str] = None) -> Result:
        segments = list(transcript.segments)
        if self._options.remove_fillers:
            segments = remove_filler_words(segments)
        segments = relabel_speakers(segments)

        cleaned = Transcript(
            segments=tuple(segments),
            language=transcript.language,
            language_probability=transcript.language_probability,
        )
        accent = describe_accent(cleaned)

        if cleaned.is_empty:
            logger.info("Empty transcript, skipping summarization")
            return Result(
                transcript=cleaned,
                full_text="",
                summary=NO_SPEECH_SUMMARY,
                highlights=(),
                speakers=(),
                accent=accent,
                duration=duration,
                model=model,
            )

        summary = self._summarizer.summarize(segments)
        paragraphs = detect_paragraphs(segments, self._options.paragraph_silence)
        speakers = compute_speaker_shares(segments, accent=language_name(cleaned.language))
        logger.info(
            f"Post-processed {len(segments)} segments into {len(paragraphs)} paragraphs, "
            f"{len(speakers)} speakers, {len(summary.highlights)} highlights ({self._summarizer.name()})"
        )
        return Result(
            transcript=cleaned,
            full_text=render_transcript(paragraphs),
            summary=summary.text,
            highlights=tuple(summary.highlights),
            speakers=tuple(speakers),
            accent=accent,
            duration=duration,
            model=model,
        )
