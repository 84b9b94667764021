"""SherpaTranscriptionAdapter — batch ASR with token timestamps.

Splits audio into sub-chunks that fit the encoder's attention window (~100s max),
creates a stream per sub-chunk, then batch-decodes all streams in one call.
Token timestamps from each sub-chunk are offset-corrected and merged, then grouped
into sentence-like segments based on silence gaps.

Parakeet is English-only, so the transcript always reports language "en".
"""

import logging
import os
from typing import Optional

import numpy as np
import soundfile

from domain.cancellation import CancelToken
from domain.errors import FatalProcessingError, TransientBackendError
from domain.models import Transcript, TranscriptSegment
from ports.transcription import TranscriptionPort

logger = logging.getLogger(__name__)

REQUIRED_FILES = {
    "asr": ["encoder.int8.onnx", "decoder.int8.onnx", "joiner.int8.onnx", "tokens.txt"],
}

DEFAULT_MODEL_DIR = "/models/sherpa-onnx"

# Parakeet TDT's self-attention supports ~1250 frames at 12.5 fps = 100s.
MAX_CHUNK_SECONDS = 80

# Silence gap (seconds) between tokens that starts a new segment.
SEGMENT_SILENCE_THRESHOLD = 0.25

# Long segments span several speaker turns and confuse the diarization merge.
MAX_SEGMENT_DURATION = 6.0


class SherpaTranscriptionAdapter(TranscriptionPort):
    def __init__(self):
        self._model_dir = DEFAULT_MODEL_DIR
        self._recognizer = None
        self._ready = False

    def load(self, model_id: str = DEFAULT_MODEL_DIR, device: str = "cuda") -> None:
        """Load ASR model."""
        import sherpa_onnx

        self._model_dir = model_id
        self._ensure_models()

        logger.info(f"Loading Sherpa-ONNX ASR model (provider={device})...")
        self._recognizer = sherpa_onnx.OfflineRecognizer.from_transducer(
            encoder=os.path.join(self._model_dir, "encoder.int8.onnx"),
            decoder=os.path.join(self._model_dir, "decoder.int8.onnx"),
            joiner=os.path.join(self._model_dir, "joiner.int8.onnx"),
            tokens=os.path.join(self._model_dir, "tokens.txt"),
            model_type="nemo_transducer",
            provider=device,
            num_threads=4,
        )
        self._ready = True
        logger.info(f"Sherpa transcription adapter ready: {self._model_dir}")

    def transcribe(
        self,
        audio_path: str,
        language: Optional[str] = None,
        token: Optional[CancelToken] = None,
    ) -> Transcript:
        """Sub-chunk audio, create streams, batch decode, merge tokens."""
        if not self._ready:
            raise TransientBackendError("Sherpa model is not loaded")

        try:
            audio, sample_rate = soundfile.read(audio_path, dtype="float32")
        except RuntimeError as e:
            raise FatalProcessingError(f"Could not decode audio: {e}") from e

        if len(audio.shape) > 1:
            audio = audio.mean(axis=1)

        duration = len(audio) / sample_rate
        logger.info(f"Audio loaded: {duration:.2f}s @ {sample_rate}Hz")

        if sample_rate != 16000:
            logger.warning(f"Audio is {sample_rate}Hz, expected 16000Hz")
            target_len = int(len(audio) * 16000 / sample_rate)
            indices = np.linspace(0, len(audio) - 1, target_len)
            audio = np.interp(indices, np.arange(len(audio)), audio).astype(np.float32)
            sample_rate = 16000

        chunk_samples = MAX_CHUNK_SECONDS * sample_rate
        num_chunks = max(1, int(np.ceil(len(audio) / chunk_samples)))

        streams = []
        chunk_offsets = []
        for i in range(num_chunks):
            if token:
                token.raise_if_stopped()
            start_sample = i * chunk_samples
            end_sample = min((i + 1) * chunk_samples, len(audio))

            stream = self._recognizer.create_stream()
            stream.accept_waveform(sample_rate, audio[start_sample:end_sample])
            streams.append(stream)
            chunk_offsets.append(start_sample / sample_rate)

        logger.info(f"Created {num_chunks} streams ({MAX_CHUNK_SECONDS}s sub-chunks)")

        try:
            self._recognizer.decode_streams(streams)
        except RuntimeError as e:
            raise TransientBackendError(f"Sherpa decode failed: {e}") from e

        # Output produced after the deadline or a cancel is never used.
        if token:
            token.raise_if_stopped()

        all_tokens = []
        all_timestamps = []
        for stream, offset in zip(streams, chunk_offsets):
            result = stream.result
            if result.tokens:
                all_tokens.extend(result.tokens)
                all_timestamps.extend(t + offset for t in result.timestamps)

        if not all_tokens:
            logger.warning("No speech detected")
            return Transcript(language="en")

        segments = self._group_tokens_into_segments(all_tokens, all_timestamps, duration)
        logger.info(f"Grouped {len(all_tokens)} tokens into {len(segments)} segments")
        return Transcript(segments=tuple(segments), language="en")

    def _group_tokens_into_segments(
        self,
        tokens: list,
        timestamps: list,
        audio_duration: float,
    ) -> list[TranscriptSegment]:
        """Group tokens into segments by detecting silence gaps between them.

        When the gap between consecutive tokens exceeds SEGMENT_SILENCE_THRESHOLD,
        or the running segment passes MAX_SEGMENT_DURATION, a new segment starts.
        """
        if not tokens:
            return []

        segments: list[TranscriptSegment] = []
        current_tokens: list[str] = [tokens[0]]
        current_start: float = timestamps[0]
        prev_timestamp: float = timestamps[0]

        for i in range(1, len(tokens)):
            gap = timestamps[i] - prev_timestamp
            segment_duration = timestamps[i] - current_start
            if gap > SEGMENT_SILENCE_THRESHOLD or segment_duration > MAX_SEGMENT_DURATION:
                text = "".join(current_tokens).strip()
                if text:
                    segments.append(TranscriptSegment(
                        start=current_start,
                        end=min(prev_timestamp + 0.1, timestamps[i]),
                        text=text,
                    ))
                current_tokens = [tokens[i]]
                current_start = timestamps[i]
            else:
                current_tokens.append(tokens[i])
            prev_timestamp = timestamps[i]

        text = "".join(current_tokens).strip()
        if text:
            segments.append(TranscriptSegment(
                start=current_start,
                end=min(prev_timestamp + 0.1, audio_duration),
                text=text,
            ))

        return segments

    def model_name(self) -> str:
        return "parakeet-tdt-0.6b-v2-int8"

    def is_loaded(self) -> bool:
        return self._ready

    def _ensure_models(self):
        """Verify all required model files are present."""
        missing = []
        for group, files in REQUIRED_FILES.items():
            for f in files:
                path = os.path.join(self._model_dir, f)
                if os.path.exists(path):
                    size_mb = os.path.getsize(path) / (1024 * 1024)
                    logger.info(f"  {group}: {f} ({size_mb:.1f} MB)")
                else:
                    missing.append(f)
                    logger.error(f"  {group}: {f} MISSING")

        if missing:
            raise FileNotFoundError(f"Missing model files in {self._model_dir}: {missing}")
