"""IngestionGateway — validates an uploaded or recorded clip and persists it once."""

import logging
import mimetypes
import uuid
from pathlib import Path
from typing import Iterable, Optional

from domain.errors import PayloadTooLargeError, UnsupportedFormatError, ValidationError
from domain.models import AudioSource, Job

logger = logging.getLogger(__name__)

# Name the browser recorder gives its blob.
RECORDED_FILENAME = "recorded-audio.wav"

# mimetypes has no entry for several browser recorder formats.
_EXTENSIONS = {
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/wave": ".wav",
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/mp4": ".m4a",
    "audio/x-m4a": ".m4a",
    "audio/aac": ".aac",
    "audio/ogg": ".ogg",
    "audio/webm": ".webm",
    "audio/flac": ".flac",
    "audio/x-flac": ".flac",
}


def normalize_mime_type(mime_type: Optional[str]) -> str:
    """Lower-case and strip parameters: 'Audio/WebM;codecs=opus' -> 'audio/webm'."""
    return (mime_type or "").split(";", 1)[0].strip().lower()


def new_job_id() -> str:
    return uuid.uuid4().hex[:12]


class IngestionGateway:
    def __init__(
        self,
        upload_dir: str,
        max_bytes: int,
        allowed_mime_types: Iterable[str],
        max_audio_seconds: Optional[float] = None,
    ):
        self._upload_dir = Path(upload_dir)
        self._max_bytes = max_bytes
        self._allowed = frozenset(normalize_mime_type(m) for m in allowed_mime_types)
        self._max_audio_seconds = max_audio_seconds

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def validate(self, size: int, mime_type: str, duration: Optional[float] = None) -> str:
        """Check payload metadata. Returns the normalised mime type."""
        if size <= 0:
            raise ValidationError("Audio payload is empty")
        if size > self._max_bytes:
            raise PayloadTooLargeError(
                f"Audio payload is {size} bytes; the limit is {self._max_bytes} bytes"
            )
        mime = normalize_mime_type(mime_type)
        if mime not in self._allowed:
            raise UnsupportedFormatError(f"Unsupported audio format: {mime or 'unknown'}")
        if duration is not None:
            if duration < 0:
                raise ValidationError("Declared duration must not be negative")
            if self._max_audio_seconds and duration > self._max_audio_seconds:
                raise ValidationError(
                    f"Audio is {duration:.0f}s long; the limit is {self._max_audio_seconds:.0f}s"
                )
        return mime

    def accept(
        self,
        data: bytes,
        mime_type: str,
        filename: Optional[str] = None,
        duration: Optional[float] = None,
    ) -> Job:
        """Validate and store the payload. Returns a new Job in ``queued``."""
        mime = self.validate(len(data), mime_type, duration)

        job_id = new_job_id()
        filename = Path(filename).name if filename else RECORDED_FILENAME
        ext = Path(filename).suffix.lower() or _EXTENSIONS.get(mime) or mimetypes.guess_extension(mime) or ".bin"

        self._upload_dir.mkdir(parents=True, exist_ok=True)
        path = self._upload_dir / f"{job_id}{ext}"
        path.write_bytes(data)
        logger.info(f"[{job_id}] accepted {filename} ({mime}, {len(data)} bytes)")

        source = AudioSource(
            path=str(path),
            mime_type=mime,
            filename=filename,
            size=len(data),
            duration=duration,
        )
        return Job(job_id=job_id, source=source)

    def discard(self, source: AudioSource) -> None:
        Path(source.path).unlink(missing_ok=True)
