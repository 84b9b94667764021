"""PyannoteDiarizationAdapter — wraps Pyannote 3.1 for speaker diarization.

Diarization only enriches the transcript, so a failure here is logged and
yields an empty result rather than failing the job.
"""

import os
import logging
from typing import Optional

from domain.models import DiarizationSegment, DiarizationResult
from ports.diarization import DiarizationPort

logger = logging.getLogger(__name__)

PIPELINE_ID = "pyannote/speaker-diarization-3.1"


class PyannoteDiarizationAdapter(DiarizationPort):
    def __init__(self):
        self._pipeline = None

    def load(self, access_token: Optional[str] = None, device: str = "cuda", **kwargs) -> None:
        import torch
        from pyannote.audio import Pipeline

        token = access_token or os.environ.get("HF_TOKEN") or os.environ.get("HUGGINGFACE_ACCESS_TOKEN")
        if not token:
            logger.error("No HuggingFace token available. Diarization disabled.")
            return

        self._pipeline = Pipeline.from_pretrained(PIPELINE_ID, use_auth_token=token)
        actual_device = device if device == "cuda" and torch.cuda.is_available() else "cpu"
        self._pipeline.to(torch.device(actual_device))
        logger.info(f"Diarization pipeline initialized on {actual_device}")

    def diarize(
        self,
        audio_path: str,
        num_speakers: Optional[int] = None,
        min_speakers: Optional[int] = None,
        max_speakers: Optional[int] = None,
    ) -> DiarizationResult:
        if self._pipeline is None:
            return DiarizationResult()

        try:
            diarization = self._pipeline(
                audio_path,
                num_speakers=num_speakers,
                min_speakers=min_speakers,
                max_speakers=max_speakers,
            )
        except Exception as e:
            logger.error(f"Diarization failed: {e}", exc_info=True)
            return DiarizationResult()

        segments: list[DiarizationSegment] = []
        speakers: set[str] = set()
        for turn, _, speaker in diarization.itertracks(yield_label=True):
            speaker_id = speaker if isinstance(speaker, str) and speaker.startswith("SPEAKER_") else f"SPEAKER_{speaker}"
            segments.append(DiarizationSegment(start=turn.start, end=turn.end, speaker=speaker_id))
            speakers.add(speaker_id)

        segments.sort(key=lambda x: x.start)
        logger.info(f"Found {len(speakers)} speakers in {len(segments)} turns")
        return DiarizationResult(segments=segments, num_speakers=len(speakers))

    def is_loaded(self) -> bool:
        return self._pipeline is not None
