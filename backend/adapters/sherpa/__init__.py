"""Sherpa-ONNX adapter for GPU-accelerated transcription with diarization."""

from .transcription import SherpaTranscriptionAdapter

__all__ = ["SherpaTranscriptionAdapter"]
