import pytest

from conftest import BlockingTranscription, FakeTranscription, slow_then
from domain.errors import (
    FatalProcessingError,
    JobNotFoundError,
    JobNotReadyError,
    PayloadTooLargeError,
    TransientBackendError,
)
from domain.models import JobStatus
from ports.summarization import SummarizationPort
from use_cases.orchestrator import RetryPolicy


class BrokenSummarizer(SummarizationPort):
    def summarize(self, segments):
        raise TransientBackendError("summarizer unavailable")

    def name(self) -> str:
        return "broken"


def test_submit_runs_to_done(make_orchestrator, speech_wav):
    orch = make_orchestrator()

    job_id = orch.submit(speech_wav, "audio/wav", filename="meeting.wav")
    state = orch.status(job_id)

    assert state.status is JobStatus.DONE
    assert state.attempts == 1
    assert state.filename == "meeting.wav"
    result = orch.result(job_id)
    assert [s.speaker for s in result.transcript.segments] == ["Speaker 1", "Speaker 2", "Speaker 1"]
    assert result.summary.startswith("Meeting Summary:")
    assert result.highlights
    assert result.model == "fake-asr"
    assert result.accent.description.endswith("Confidence: 97%")


def test_transient_failures_then_success(make_orchestrator, speech_wav):
    asr = FakeTranscription(TransientBackendError("timeout"), TransientBackendError("timeout"))
    orch = make_orchestrator(transcription=asr)

    job_id = orch.submit(speech_wav, "audio/wav")
    state = orch.status(job_id)

    assert state.status is JobStatus.DONE
    assert state.attempts == 3
    assert asr.calls == 3
    assert len(state.result.transcript.segments) == 3


def test_retry_budget_exhausted_fails(make_orchestrator, speech_wav):
    asr = FakeTranscription(*[TransientBackendError("backend down")] * 5)
    orch = make_orchestrator(transcription=asr, retry=RetryPolicy(max_attempts=2, base_delay=0.0))

    state = orch.status(orch.submit(speech_wav, "audio/wav"))

    assert state.status is JobStatus.FAILED
    assert state.attempts == 2
    assert "backend down" in state.error
    assert state.result is None


def test_fatal_error_is_not_retried(make_orchestrator, speech_wav):
    asr = FakeTranscription(FatalProcessingError("Unsupported audio content"))
    orch = make_orchestrator(transcription=asr)

    state = orch.status(orch.submit(speech_wav, "audio/wav"))

    assert state.status is JobStatus.FAILED
    assert state.error == "Unsupported audio content"
    assert asr.calls == 1


def test_undecodable_audio_fails_without_retry(make_orchestrator):
    asr = FakeTranscription()
    orch = make_orchestrator(transcription=asr)

    state = orch.status(orch.submit(b"definitely not a wav file", "audio/wav"))

    assert state.status is JobStatus.FAILED
    assert "decode" in state.error
    assert state.attempts == 1
    assert asr.calls == 0


def test_silent_clip_yields_no_speech(make_orchestrator, silent_wav):
    asr = FakeTranscription()
    orch = make_orchestrator(transcription=asr)

    result = orch.result(orch.submit(silent_wav, "audio/wav"))

    assert result.transcript.segments == ()
    assert result.full_text == ""
    assert result.summary == "No speech detected."
    assert result.highlights == ()
    assert result.speakers == ()
    assert result.duration == pytest.approx(10.0)
    assert asr.calls == 0


def test_oversized_payload_creates_no_job(make_orchestrator, tmp_path):
    orch = make_orchestrator(max_bytes=1000)

    with pytest.raises(PayloadTooLargeError):
        orch.submit(b"\0" * 1001, "audio/wav")

    assert len(orch._store) == 0
    assert not (tmp_path / "uploads").exists() or not any((tmp_path / "uploads").iterdir())


def test_post_processing_failure_preserves_transcript(make_orchestrator, speech_wav):
    orch = make_orchestrator(summarizer=BrokenSummarizer())

    state = orch.status(orch.submit(speech_wav, "audio/wav"))

    assert state.status is JobStatus.FAILED
    assert state.error == "Post-processing failed: summarizer unavailable"
    assert state.result is None
    assert len(state.transcript.segments) == 3


def test_cancel_running_job_never_reaches_done(make_orchestrator, speech_wav):
    asr = BlockingTranscription(honor_token=False)
    orch = make_orchestrator(transcription=asr, threaded=True)

    job_id = orch.submit(speech_wav, "audio/wav")
    assert asr.started.wait(5)
    assert orch.status(job_id).status is JobStatus.TRANSCRIBING

    assert orch.cancel(job_id) is True
    asr.release.set()
    orch._queue.wait(job_id, timeout=5)

    state = orch.status(job_id)
    assert state.status is JobStatus.CANCELLED
    assert state.result is None
    with pytest.raises(JobNotReadyError):
        orch.result(job_id)


def test_cancel_interrupts_backend_honoring_token(make_orchestrator, speech_wav):
    asr = BlockingTranscription(honor_token=True)
    orch = make_orchestrator(transcription=asr, threaded=True)

    job_id = orch.submit(speech_wav, "audio/wav")
    assert asr.started.wait(5)
    orch.cancel(job_id)
    orch._queue.wait(job_id, timeout=5)

    assert orch._queue.status(job_id) == "completed"
    assert orch.status(job_id).status is JobStatus.CANCELLED


def test_cancel_after_done_is_rejected(make_orchestrator, speech_wav):
    orch = make_orchestrator()
    job_id = orch.submit(speech_wav, "audio/wav")

    assert orch.cancel(job_id) is False
    assert orch.status(job_id).status is JobStatus.DONE


def test_pipeline_timeout_reaches_failed(make_orchestrator, speech_wav):
    asr = BlockingTranscription(honor_token=False)
    orch = make_orchestrator(transcription=asr, threaded=True, pipeline_timeout=0.2)

    job_id = orch.submit(speech_wav, "audio/wav")
    state = orch.wait(job_id, timeout=5)

    assert state.status is JobStatus.FAILED
    assert "timed out" in state.error

    asr.release.set()
    orch._queue.wait(job_id, timeout=5)
    assert orch.status(job_id).status is JobStatus.FAILED


def test_overrunning_attempt_is_discarded_and_retried(make_orchestrator, speech_wav):
    asr = FakeTranscription(slow_then(0.3))
    orch = make_orchestrator(transcription=asr, attempt_timeout=0.1)

    state = orch.status(orch.submit(speech_wav, "audio/wav"))

    assert state.status is JobStatus.DONE
    assert state.attempts == 2


def test_unknown_job(make_orchestrator):
    orch = make_orchestrator()

    with pytest.raises(JobNotFoundError):
        orch.status("nope")
    with pytest.raises(JobNotFoundError):
        orch.cancel("nope")


def test_purge_expired_drops_finished_jobs(make_orchestrator, speech_wav):
    orch = make_orchestrator(result_ttl=0.0)
    job_id = orch.submit(speech_wav, "audio/wav")

    assert orch.purge_expired() == 1
    with pytest.raises(JobNotFoundError):
        orch.status(job_id)


def test_concurrent_jobs_are_independent(make_orchestrator, speech_wav):
    orch = make_orchestrator(threaded=True)

    ids = [orch.submit(speech_wav, "audio/wav") for _ in range(4)]
    states = [orch.wait(job_id, timeout=5) for job_id in ids]

    assert len(set(ids)) == 4
    assert all(s.status is JobStatus.DONE for s in states)
    assert all(s.attempts == 1 for s in states)


def test_retry_policy_backoff():
    policy = RetryPolicy(max_attempts=5, base_delay=0.5, multiplier=2.0, max_delay=3.0)

    assert [policy.delay(n) for n in range(1, 6)] == [0.5, 1.0, 2.0, 3.0, 3.0]


@pytest.mark.parametrize("threaded", [False, True])
def test_purge_releases_queue_bookkeeping(make_orchestrator, speech_wav, threaded):
    orch = make_orchestrator(threaded=threaded)
    ids = [orch.submit(speech_wav, "audio/wav") for _ in range(3)]
    for job_id in ids:
        orch.wait(job_id, timeout=5)
        if threaded:
            orch._queue.wait(job_id, timeout=5)

    orch._result_ttl = 0.0

    assert orch.purge_expired() == 3
    assert [orch._queue.status(job_id) for job_id in ids] == ["unknown"] * 3
    assert orch._tokens == {}
