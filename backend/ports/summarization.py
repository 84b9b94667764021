"""SummarizationPort — abstract interface for summary and highlight extraction."""

from abc import ABC, abstractmethod

from domain.models import Summary, TranscriptSegment


class SummarizationPort(ABC):
    @abstractmethod
    def summarize(self, segments: list[TranscriptSegment]) -> Summary:
        """Return summary text and ordered highlights.

        Must be deterministic: the same segments always give the same Summary.
        """

    @abstractmethod
    def name(self) -> str:
        """Backend name for logging."""
