from pathlib import Path

import pytest

from domain.errors import PayloadTooLargeError, UnsupportedFormatError, ValidationError
from domain.models import JobStatus
from use_cases.ingest import RECORDED_FILENAME, IngestionGateway, normalize_mime_type


@pytest.fixture()
def gateway(tmp_path):
    return IngestionGateway(
        upload_dir=str(tmp_path / "uploads"),
        max_bytes=100,
        allowed_mime_types=["audio/wav", "audio/webm", "audio/mpeg"],
        max_audio_seconds=60,
    )


def test_accept_persists_audio_and_queues_job(gateway):
    job = gateway.accept(b"RIFF" + b"\0" * 20, "audio/wav", filename="../../meeting.WAV")

    assert job.status is JobStatus.QUEUED
    assert job.attempts == 0
    assert job.source.filename == "meeting.WAV"
    assert job.source.size == 24
    path = Path(job.source.path)
    assert path.suffix == ".wav"
    assert path.read_bytes().startswith(b"RIFF")


def test_recorded_audio_gets_default_name(gateway):
    job = gateway.accept(b"\x1a\x45\xdf\xa3", "audio/webm;codecs=opus")

    assert job.source.filename == RECORDED_FILENAME
    assert job.source.mime_type == "audio/webm"


def test_extension_falls_back_to_mime_type(gateway):
    job = gateway.accept(b"ID3", "audio/mpeg", filename="voice-memo")

    assert job.source.path.endswith(".mp3")


def test_oversized_payload_rejected_before_writing(gateway, tmp_path):
    with pytest.raises(PayloadTooLargeError):
        gateway.accept(b"\0" * 101, "audio/wav")

    assert not (tmp_path / "uploads").exists()


@pytest.mark.parametrize("mime", ["video/mp4", "text/plain", "", None])
def test_unsupported_mime_rejected(gateway, mime):
    with pytest.raises(UnsupportedFormatError):
        gateway.accept(b"abc", mime)


def test_empty_payload_rejected(gateway):
    with pytest.raises(ValidationError):
        gateway.accept(b"", "audio/wav")


def test_declared_duration_limits(gateway):
    with pytest.raises(ValidationError):
        gateway.accept(b"abc", "audio/wav", duration=61)
    with pytest.raises(ValidationError):
        gateway.accept(b"abc", "audio/wav", duration=-1)


def test_normalize_mime_type():
    assert normalize_mime_type(" Audio/WebM; codecs=opus ") == "audio/webm"
    assert normalize_mime_type(None) == ""


def test_discard_removes_stored_audio(gateway):
    job = gateway.accept(b"abc", "audio/wav")

    gateway.discard(job.source)
    gateway.discard(job.source)

    assert not Path(job.source.path).exists()
