"""faster-whisper adapter for CPU/GPU transcription with language detection."""

from .transcription import FasterWhisperTranscriptionAdapter

__all__ = ["FasterWhisperTranscriptionAdapter"]
