"""TranscriptionPort — abstract interface for ASR engines."""

from abc import ABC, abstractmethod
from typing import Optional

from domain.cancellation import CancelToken
from domain.models import Transcript


class TranscriptionPort(ABC):
    @abstractmethod
    def load(self, model_id: str, device: str = "cuda") -> None:
        """Load the ASR model onto the specified device."""

    @abstractmethod
    def transcribe(
        self,
        audio_path: str,
        language: Optional[str] = None,
        token: Optional[CancelToken] = None,
    ) -> Transcript:
        """Transcribe a 16kHz mono WAV file.

        Raises TransientBackendError when the backend is unavailable and
        FatalProcessingError when the audio cannot be decoded. Implementations
        should call ``token.raise_if_stopped()`` between units of work.
        """

    @abstractmethod
    def model_name(self) -> str:
        """Return the human-readable model name for API responses."""

    @abstractmethod
    def is_loaded(self) -> bool:
        """Whether the model has been loaded and is ready for inference."""
