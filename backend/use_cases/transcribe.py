"""TranscriptionWorker — turns a job's stored audio into a normalised Transcript.

Accepts all ports via dependency injection. One call is one attempt; retry
policy belongs to the orchestrator.
"""

import os
import shutil
import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, replace
from typing import Optional

from domain.cancellation import CancelToken
from domain.models import DiarizationResult, Job, Transcript, TranscriptSegment
from ports.audio import AudioProcessingPort
from ports.diarization import DiarizationPort
from ports.progress import ProgressPort
from ports.transcription import TranscriptionPort
from post_processing import normalize_segments

logger = logging.getLogger(__name__)

DIARIZATION_POLL_INTERVAL = 0.1


@dataclass
class WorkerOptions:
    language: Optional[str] = None
    chunk_duration: int = 500
    silence_threshold_db: float = -60.0
    diarize: bool = True
    num_speakers: Optional[int] = None
    min_speakers: Optional[int] = None
    max_speakers: Optional[int] = None


@dataclass
class WorkerOutput:
    transcript: Transcript
    duration: float


class TranscriptionWorker:
    def __init__(
        self,
        transcription: TranscriptionPort,
        diarization: Optional[DiarizationPort],
        audio: AudioProcessingPort,
        progress: ProgressPort,
        options: Optional[WorkerOptions] = None,
    ):
        self._transcription = transcription
        self._diarization = diarization
        self._audio = audio
        self._progress = progress
        self._options = options or WorkerOptions()

    def model_name(self) -> str:
        return self._transcription.model_name()

    def is_ready(self) -> bool:
        return self._transcription.is_loaded()

    def run(self, job: Job, token: CancelToken) -> WorkerOutput:
        opts = self._options
        job_id = job.job_id

        self._progress.report(job_id, "converting")
        wav_file = self._audio.convert_to_wav(job.source.path)
        audio_chunks: list[str] = []
        try:
            token.raise_if_stopped()
            info = self._audio.measure(wav_file)
            if info.rms_dbfs < opts.silence_threshold_db:
                logger.info(f"[{job_id}] signal at {info.rms_dbfs:.1f} dBFS, treating as silence")
                return WorkerOutput(transcript=Transcript(language=opts.language), duration=info.duration)

            audio_chunks = self._audio.split_into_chunks(wav_file, chunk_duration=opts.chunk_duration)

            run_diarization = bool(
                opts.diarize and self._diarization and self._diarization.is_loaded()
            )
            if run_diarization:
                # Diarization and ASR use independent native runtimes and both
                # release the GIL, so a second thread gives real overlap.
                pool = ThreadPoolExecutor(max_workers=1)
                future_diar = pool.submit(self._run_diarization, job_id, wav_file, token)
                try:
                    transcript = self._run_asr(job_id, audio_chunks, token)
                    diarization_result = self._await_diarization(future_diar, token)
                except Exception:
                    # A diarization call cannot be interrupted; leave it behind
                    # instead of holding the job until it returns.
                    pool.shutdown(wait=False, cancel_futures=True)
                    raise
                pool.shutdown()
            else:
                transcript = self._run_asr(job_id, audio_chunks, token)
                diarization_result = None

            segments = list(transcript.segments)
            if diarization_result and diarization_result.segments and segments:
                logger.info(f"[{job_id}] merging diarization speaker labels")
                segments = self._diarization.merge_with_transcription(diarization_result, segments)

            segments = normalize_segments(segments)
            duration = max(info.duration, segments[-1].end if segments else 0.0)
            return WorkerOutput(transcript=replace(transcript, segments=tuple(segments)), duration=duration)
        finally:
            self._cleanup(job.source.path, wav_file, audio_chunks)

    def _run_diarization(self, job_id: str, wav_file: str, token: CancelToken) -> DiarizationResult:
        token.raise_if_stopped()
        self._progress.report(job_id, "diarizing")
        opts = self._options
        result = self._diarization.diarize(
            wav_file,
            num_speakers=opts.num_speakers,
            min_speakers=opts.min_speakers,
            max_speakers=opts.max_speakers,
        )
        token.raise_if_stopped()
        logger.info(f"[{job_id}] found {result.num_speakers} speakers")
        return result

    @staticmethod
    def _await_diarization(future: Future, token: CancelToken) -> DiarizationResult:
        """Wait for diarization, giving up as soon as the job is stopped."""
        while not future.done():
            token.raise_if_stopped()
            wait([future], timeout=DIARIZATION_POLL_INTERVAL)
        return future.result()

    def _run_asr(self, job_id: str, audio_chunks: list[str], token: CancelToken) -> Transcript:
        segments: list[TranscriptSegment] = []
        language = self._options.language
        probability: Optional[float] = None

        for i, chunk_path in enumerate(audio_chunks):
            token.raise_if_stopped()
            self._progress.report(
                job_id, "transcribing",
                progress=(i + 1) / len(audio_chunks),
                detail=f"chunk {i + 1}/{len(audio_chunks)}",
            )
            chunk = self._transcription.transcribe(chunk_path, language=self._options.language, token=token)
            offset = i * self._options.chunk_duration
            for seg in chunk.segments:
                segments.append(replace(seg, start=seg.start + offset, end=seg.end + offset) if offset else seg)
            if language is None and chunk.language:
                language, probability = chunk.language, chunk.language_probability

        return Transcript(segments=tuple(segments), language=language, language_probability=probability)

    @staticmethod
    def _cleanup(source_path: str, wav_file: str, audio_chunks: list[str]) -> None:
        """Remove intermediate files and chunk directories. The uploaded source stays until the job expires."""
        kept_dirs = {os.path.dirname(source_path), os.path.dirname(wav_file)}
        chunk_dirs: set[str] = set()
        try:
            if wav_file != source_path and os.path.exists(wav_file):
                os.unlink(wav_file)
            for chunk in audio_chunks:
                if chunk not in (wav_file, source_path) and os.path.exists(chunk):
                    os.unlink(chunk)
                    chunk_dirs.add(os.path.dirname(chunk))
            for chunk_dir in chunk_dirs - kept_dirs:
                shutil.rmtree(chunk_dir, ignore_errors=True)
        except OSError as e:
            logger.warning(f"Cleanup error: {e}")
