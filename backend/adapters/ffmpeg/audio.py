"""FFmpegAudioAdapter — audio preprocessing via ffmpeg, levels via soundfile."""

import os
import math
import shutil
import logging
import tempfile
import subprocess

import numpy as np
import soundfile

from domain.errors import FatalProcessingError
from domain.models import AudioInfo
from ports.audio import AudioProcessingPort

logger = logging.getLogger(__name__)

# Level reported for digital silence (all-zero samples).
SILENCE_FLOOR_DB = -120.0


class FFmpegAudioAdapter(AudioProcessingPort):
    def __init__(self, temp_dir: str | None = None):
        self._temp_dir = temp_dir

    def _run(self, cmd: list[str], what: str) -> None:
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise FatalProcessingError("ffmpeg is not installed on this host") from e
        if result.returncode != 0:
            logger.error(f"Error {what}: {result.stderr}")
            raise FatalProcessingError(f"Unsupported or corrupt audio ({what} failed)")

    def convert_to_wav(self, input_path: str, sample_rate: int = 16000) -> str:
        temp_file = tempfile.NamedTemporaryFile(suffix=".wav", delete=False, dir=self._temp_dir)
        temp_file.close()
        output_path = temp_file.name

        try:
            cmd = [
                "ffmpeg", "-y",
                "-i", input_path,
                "-c:a", "pcm_s16le",
                "-ar", str(sample_rate),
                "-ac", "1",
                output_path,
            ]
            self._run(cmd, "converting audio")
            return output_path

        except Exception:
            if os.path.exists(output_path):
                os.unlink(output_path)
            raise

    def measure(self, wav_path: str) -> AudioInfo:
        try:
            audio, sample_rate = soundfile.read(wav_path, dtype="float32", always_2d=False)
        except RuntimeError as e:
            raise FatalProcessingError(f"Could not decode audio: {e}") from e

        if audio.ndim > 1:
            audio = audio.mean(axis=1)

        duration = len(audio) / sample_rate if sample_rate else 0.0
        if len(audio) == 0:
            return AudioInfo(duration=0.0, sample_rate=sample_rate, rms_dbfs=SILENCE_FLOOR_DB)

        rms = float(np.sqrt(np.mean(np.square(audio, dtype=np.float64))))
        rms_dbfs = 20 * math.log10(rms) if rms > 0 else SILENCE_FLOOR_DB
        logger.info(f"Audio duration: {duration:.2f} seconds, level {rms_dbfs:.1f} dBFS")
        return AudioInfo(duration=duration, sample_rate=sample_rate, rms_dbfs=max(rms_dbfs, SILENCE_FLOOR_DB))

    def split_into_chunks(self, audio_path: str, chunk_duration: int = 500) -> list[str]:
        duration = soundfile.info(audio_path).duration

        if duration <= chunk_duration:
            return [audio_path]

        num_chunks = math.ceil(duration / chunk_duration)
        logger.info(f"Splitting audio into {num_chunks} chunks of {chunk_duration}s")

        temp_dir = tempfile.mkdtemp(dir=self._temp_dir)
        chunk_paths: list[str] = []

        try:
            for i in range(num_chunks):
                start_time = i * chunk_duration
                output_path = os.path.join(temp_dir, f"chunk_{i}.wav")

                cmd = [
                    "ffmpeg", "-y",
                    "-ss", str(start_time),
                    "-i", audio_path,
                    "-t", str(chunk_duration),
                    "-c:a", "pcm_s16le",
                    "-ar", "16000",
                    "-ac", "1",
                    output_path,
                ]
                self._run(cmd, f"splitting chunk {i}")
                chunk_paths.append(output_path)
        except FatalProcessingError:
            shutil.rmtree(temp_dir, ignore_errors=True)
            raise

        return chunk_paths
