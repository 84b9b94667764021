"""FasterWhisperTranscriptionAdapter — CTranslate2 Whisper with language detection.

Segments are decoded lazily by faster-whisper, so the cancel token is
checked between segments and a cancelled or overdue job stops decoding
at the next segment boundary.
"""

import logging
from typing import Optional

from domain.cancellation import CancelToken
from domain.errors import FatalProcessingError, TransientBackendError
from domain.models import Transcript, TranscriptSegment
from ports.transcription import TranscriptionPort

logger = logging.getLogger(__name__)

DEFAULT_MODEL_SIZE = "small"


class FasterWhisperTranscriptionAdapter(TranscriptionPort):
    def __init__(self):
        self._model = None
        self._model_id = DEFAULT_MODEL_SIZE

    def load(self, model_id: str = DEFAULT_MODEL_SIZE, device: str = "cpu") -> None:
        from faster_whisper import WhisperModel

        compute_type = "float16" if device == "cuda" else "int8"
        logger.info(f"Loading faster-whisper model {model_id} on {device} ({compute_type})")
        self._model = WhisperModel(model_id, device=device, compute_type=compute_type)
        self._model_id = model_id

    def transcribe(
        self,
        audio_path: str,
        language: Optional[str] = None,
        token: Optional[CancelToken] = None,
    ) -> Transcript:
        if self._model is None:
            raise TransientBackendError("Whisper model is not loaded")

        try:
            raw_segments, info = self._model.transcribe(
                audio_path, language=language, vad_filter=True,
            )
            segments: list[TranscriptSegment] = []
            for seg in raw_segments:
                if token:
                    token.raise_if_stopped()
                text = seg.text.strip()
                if not text:
                    continue
                segments.append(TranscriptSegment(
                    start=seg.start,
                    end=seg.end,
                    text=text,
                    confidence=1.0 - seg.no_speech_prob,
                ))
        except (ValueError, IndexError) as e:
            # Raised by the decoder front-end on empty or malformed input.
            raise FatalProcessingError(f"Could not decode audio: {e}") from e
        except RuntimeError as e:
            raise TransientBackendError(f"Whisper backend error: {e}") from e

        logger.info(
            f"Detected language {info.language} ({info.language_probability:.0%}), "
            f"{len(segments)} segments"
        )
        return Transcript(
            segments=tuple(segments),
            language=info.language,
            language_probability=info.language_probability,
        )

    def model_name(self) -> str:
        return f"faster-whisper-{self._model_id}"

    def is_loaded(self) -> bool:
        return self._model is not None
