from __future__ import annotations

import io
import threading
import time
from typing import Optional

import numpy as np
import pytest
import soundfile

from adapters.ffmpeg.audio import FFmpegAudioAdapter
from adapters.local.extractive_summary import ExtractiveSummaryAdapter
from adapters.local.log_progress import LogProgressAdapter
from adapters.local.memory_store import InMemoryResultStore
from adapters.local.sync_job import SyncJobAdapter
from adapters.local.thread_pool import ThreadPoolJobAdapter
from domain.cancellation import CancelToken
from domain.models import Transcript, TranscriptSegment
from ports.diarization import DiarizationPort
from ports.transcription import TranscriptionPort
from use_cases.ingest import IngestionGateway
from use_cases.orchestrator import JobOrchestrator, RetryPolicy
from use_cases.post_process import PostProcessor
from use_cases.transcribe import TranscriptionWorker, WorkerOptions

SAMPLE_RATE = 16000


def wav_bytes(samples: np.ndarray, sample_rate: int = SAMPLE_RATE) -> bytes:
    buf = io.BytesIO()
    soundfile.write(buf, samples, sample_rate, format="WAV", subtype="PCM_16")
    return buf.getvalue()


@pytest.fixture()
def speech_wav() -> bytes:
    """One second of a 440 Hz tone, loud enough to pass the silence gate."""
    t = np.arange(SAMPLE_RATE) / SAMPLE_RATE
    return wav_bytes((0.3 * np.sin(2 * np.pi * 440 * t)).astype(np.float32))


@pytest.fixture()
def silent_wav() -> bytes:
    return wav_bytes(np.zeros(SAMPLE_RATE * 10, dtype=np.float32))


MEETING = Transcript(
    segments=(
        TranscriptSegment(0.0, 2.0, "Revenue increased by twenty three percent this quarter.", "SPEAKER_00", 0.9),
        TranscriptSegment(2.5, 4.0, "Um, customer retention improved to ninety four percent.", "SPEAKER_01", 0.8),
        TranscriptSegment(4.2, 6.0, "Revenue growth came from three new markets.", "SPEAKER_00", 0.95),
    ),
    language="en",
    language_probability=0.97,
)


class FakeTranscription(TranscriptionPort):
    """Replays a script of outcomes: a Transcript to return or an exception to raise."""

    def __init__(self, *outcomes, default: Transcript = MEETING):
        self._outcomes = list(outcomes)
        self._default = default
        self.calls = 0

    def load(self, model_id: str, device: str = "cuda") -> None:
        pass

    def transcribe(self, audio_path: str, language: Optional[str] = None, token: Optional[CancelToken] = None) -> Transcript:
        self.calls += 1
        outcome = self._outcomes.pop(0) if self._outcomes else self._default
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return outcome(token)
        return outcome

    def model_name(self) -> str:
        return "fake-asr"

    def is_loaded(self) -> bool:
        return True


class BlockingTranscription(FakeTranscription):
    """Hangs until released. With honor_token=False it ignores cancellation like a stuck backend."""

    def __init__(self, honor_token: bool = True):
        super().__init__()
        self.honor_token = honor_token
        self.started = threading.Event()
        self.release = threading.Event()

    def transcribe(self, audio_path: str, language: Optional[str] = None, token: Optional[CancelToken] = None) -> Transcript:
        self.calls += 1
        self.started.set()
        while not self.release.wait(0.01):
            if self.honor_token and token is not None:
                token.raise_if_stopped()
        return self._default


def slow_then(seconds: float, transcript: Transcript = MEETING):
    """Outcome that overruns any short deadline, ignoring the token."""
    def _run(token):
        time.sleep(seconds)
        return transcript
    return _run


class PassthroughAudio(FFmpegAudioAdapter):
    """Real level measurement, no ffmpeg: uploads in tests are already 16kHz WAV."""

    def convert_to_wav(self, input_path: str, sample_rate: int = 16000) -> str:
        return input_path

    def split_into_chunks(self, audio_path: str, chunk_duration: int = 500) -> list[str]:
        return [audio_path]


@pytest.fixture()
def make_orchestrator(tmp_path):
    """Build an orchestrator around fakes. Thread-pool queues are shut down afterwards."""
    queues = []

    def _make(
        transcription: Optional[TranscriptionPort] = None,
        summarizer=None,
        threaded: bool = False,
        max_bytes: int = 1024 * 1024,
        retry: Optional[RetryPolicy] = None,
        attempt_timeout: Optional[float] = None,
        pipeline_timeout: Optional[float] = None,
        result_ttl: float = 3600.0,
        diarization: Optional[DiarizationPort] = None,
        audio: Optional[FFmpegAudioAdapter] = None,
        options: Optional[WorkerOptions] = None,
    ) -> JobOrchestrator:
        progress = LogProgressAdapter()
        queue = ThreadPoolJobAdapter(max_workers=2) if threaded else SyncJobAdapter()
        queues.append(queue)
        worker = TranscriptionWorker(
            transcription=transcription or FakeTranscription(),
            diarization=diarization,
            audio=audio or PassthroughAudio(temp_dir=str(tmp_path)),
            progress=progress,
            options=options or WorkerOptions(silence_threshold_db=-60.0),
        )
        return JobOrchestrator(
            gateway=IngestionGateway(
                upload_dir=str(tmp_path / "uploads"),
                max_bytes=max_bytes,
                allowed_mime_types=["audio/wav", "audio/webm", "audio/mpeg"],
            ),
            store=InMemoryResultStore(),
            queue=queue,
            worker=worker,
            post_processor=PostProcessor(summarizer or ExtractiveSummaryAdapter()),
            progress=progress,
            retry=retry or RetryPolicy(max_attempts=3, base_delay=0.0),
            attempt_timeout=attempt_timeout,
            pipeline_timeout=pipeline_timeout,
            result_ttl=result_ttl,
        )

    yield _make

    for queue in queues:
        queue.shutdown(wait=False)
