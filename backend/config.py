import os
import logging
from typing import Dict, Optional, Any
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8001
DEFAULT_MODEL_ID_WHISPER = "small"
DEFAULT_MODEL_ID_SHERPA = "/models/sherpa-onnx"
DEFAULT_CHUNK_DURATION = 500
DEFAULT_MAX_UPLOAD_BYTES = 25 * 1024 * 1024
DEFAULT_ALLOWED_MIME_TYPES = (
    "audio/wav,audio/x-wav,audio/wave,audio/mpeg,audio/mp3,audio/mp4,audio/x-m4a,"
    "audio/aac,audio/ogg,audio/webm,audio/flac,audio/x-flac"
)


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


def _env_optional_float(name: str, default: str) -> Optional[float]:
    value = float(os.environ.get(name, default))
    return value if value > 0 else None


class Config:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        self.host = os.environ.get("HOST", DEFAULT_HOST)
        self.port = int(os.environ.get("PORT", DEFAULT_PORT))
        self.debug = os.environ.get("DEBUG", "0") == "1"
        self.engine = os.environ.get("ENGINE", "whisper").lower()
        self.infra = os.environ.get("INFRA", "local").lower()
        self.device = os.environ.get("DEVICE", "cpu")
        self.language = os.environ.get("LANGUAGE") or None
        self.workers = int(os.environ.get("WORKERS", "2"))
        self.temp_dir = os.environ.get("TEMP_DIR", "/tmp/whisperlens")

        # Ingestion
        self.max_upload_bytes = int(os.environ.get("MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES))
        self.max_audio_seconds = _env_optional_float("MAX_AUDIO_SECONDS", "7200")
        self.allowed_mime_types = [
            m.strip() for m in os.environ.get("ALLOWED_MIME_TYPES", DEFAULT_ALLOWED_MIME_TYPES).split(",")
            if m.strip()
        ]

        # Orchestration
        self.max_attempts = int(os.environ.get("MAX_ATTEMPTS", "3"))
        self.retry_base_delay = float(os.environ.get("RETRY_BASE_DELAY", "1.0"))
        self.retry_multiplier = float(os.environ.get("RETRY_MULTIPLIER", "2.0"))
        self.retry_max_delay = float(os.environ.get("RETRY_MAX_DELAY", "30.0"))
        self.attempt_timeout = _env_optional_float("ATTEMPT_TIMEOUT", "900")
        self.pipeline_timeout = _env_optional_float("PIPELINE_TIMEOUT", "3600")
        self.result_ttl = float(os.environ.get("RESULT_TTL", "3600"))

        # Worker
        self.chunk_duration = int(os.environ.get("CHUNK_DURATION", DEFAULT_CHUNK_DURATION))
        self.silence_threshold_db = float(os.environ.get("SILENCE_THRESHOLD_DB", "-60"))
        self.hf_token = os.environ.get("HF_TOKEN") or os.environ.get("HUGGINGFACE_ACCESS_TOKEN")
        self.enable_diarization = _env_bool("ENABLE_DIARIZATION", "true")

        # Post-processing
        self.remove_fillers = _env_bool("REMOVE_FILLERS", "true")
        self.summary_sentences = int(os.environ.get("SUMMARY_SENTENCES", "5"))
        self.highlight_count = int(os.environ.get("HIGHLIGHT_COUNT", "4"))
        self.paragraph_silence = float(os.environ.get("PARAGRAPH_SILENCE", "0.8"))

        # Model ID defaults to engine-appropriate value if not explicitly set
        model_id_env = os.environ.get("MODEL_ID", "").strip()
        if model_id_env:
            self.model_id = model_id_env
        elif self.engine == "sherpa":
            self.model_id = DEFAULT_MODEL_ID_SHERPA
        else:
            self.model_id = DEFAULT_MODEL_ID_WHISPER
        Path(self.temp_dir).mkdir(parents=True, exist_ok=True)

    @property
    def upload_dir(self) -> str:
        return str(Path(self.temp_dir) / "uploads")

    def get_hf_token(self) -> Optional[str]:
        return self.hf_token

    def as_dict(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "engine": self.engine,
            "infra": self.infra,
            "model_id": self.model_id,
            "workers": self.workers,
            "max_upload_bytes": self.max_upload_bytes,
            "max_attempts": self.max_attempts,
            "attempt_timeout": self.attempt_timeout,
            "pipeline_timeout": self.pipeline_timeout,
            "result_ttl": self.result_ttl,
            "chunk_duration": self.chunk_duration,
            "enable_diarization": self.enable_diarization,
            "has_hf_token": self.hf_token is not None,
        }


config = Config()


def get_config() -> Config:
    return config


def create_ml_adapters(cfg: Config):
    """Create transcription and diarization adapters based on ENGINE env var.

    Uses lazy imports so unused frameworks are never loaded.
    """
    engine = cfg.engine

    if engine == "whisper":
        from adapters.whisper.transcription import FasterWhisperTranscriptionAdapter
        transcription = FasterWhisperTranscriptionAdapter()
    elif engine == "sherpa":
        from adapters.sherpa.transcription import SherpaTranscriptionAdapter
        transcription = SherpaTranscriptionAdapter()
    else:
        raise ValueError(f"Unknown ENGINE: {engine!r}. Valid options: whisper, sherpa")

    diarization = None
    if cfg.enable_diarization and cfg.hf_token:
        from adapters.pyannote.diarization import PyannoteDiarizationAdapter
        diarization = PyannoteDiarizationAdapter()

    diar_name = type(diarization).__name__ if diarization else "disabled"
    logger.info(f"ML adapters: engine={engine}, transcription={type(transcription).__name__}, diarization={diar_name}")
    return transcription, diarization


def load_ml_adapters(cfg: Config, transcription, diarization) -> None:
    """Load model weights. Failures leave the adapter unloaded; jobs then fail as transient."""
    try:
        transcription.load(cfg.model_id, device=cfg.device)
    except Exception as e:
        logger.error(f"Failed to load transcription model {cfg.model_id}: {e}", exc_info=True)
    if diarization is not None:
        try:
            diarization.load(access_token=cfg.get_hf_token(), device=cfg.device)
        except Exception as e:
            logger.error(f"Failed to init diarization: {e}", exc_info=True)


def create_audio_adapter(cfg: Config):
    """Create the audio processing adapter (always FFmpeg)."""
    from adapters.ffmpeg.audio import FFmpegAudioAdapter
    return FFmpegAudioAdapter(temp_dir=cfg.temp_dir)


def create_summarizer(cfg: Config):
    from adapters.local.extractive_summary import ExtractiveSummaryAdapter
    return ExtractiveSummaryAdapter(
        summary_sentences=cfg.summary_sentences,
        highlight_count=cfg.highlight_count,
    )


def create_infra_adapters(cfg: Config):
    """Create infrastructure adapters based on INFRA env var."""
    from adapters.local.log_progress import LogProgressAdapter
    from adapters.local.memory_store import InMemoryResultStore
    from adapters.local.sync_job import SyncJobAdapter
    from adapters.local.thread_pool import ThreadPoolJobAdapter

    infra = cfg.infra

    if infra == "local":
        job_queue = ThreadPoolJobAdapter(max_workers=cfg.workers)
    elif infra == "sync":
        job_queue = SyncJobAdapter()
    else:
        raise ValueError(f"Unknown INFRA: {infra!r}. Valid options: local, sync")

    adapters = {
        "job_queue": job_queue,
        "store": InMemoryResultStore(),
        "progress": LogProgressAdapter(),
    }
    logger.info(f"Infra adapters: {infra} -> {', '.join(type(v).__name__ for v in adapters.values())}")
    return adapters


def create_orchestrator(cfg: Config, transcription=None, diarization=None, audio=None, summarizer=None, infra=None):
    """Wire the pipeline. Any adapter can be passed in to replace the configured one."""
    from use_cases.ingest import IngestionGateway
    from use_cases.orchestrator import JobOrchestrator, RetryPolicy
    from use_cases.post_process import PostProcessOptions, PostProcessor
    from use_cases.transcribe import TranscriptionWorker, WorkerOptions

    if transcription is None:
        transcription, diarization = create_ml_adapters(cfg)
        load_ml_adapters(cfg, transcription, diarization)
    infra = infra or create_infra_adapters(cfg)

    worker = TranscriptionWorker(
        transcription=transcription,
        diarization=diarization,
        audio=audio or create_audio_adapter(cfg),
        progress=infra["progress"],
        options=WorkerOptions(
            language=cfg.language,
            chunk_duration=cfg.chunk_duration,
            silence_threshold_db=cfg.silence_threshold_db,
            diarize=cfg.enable_diarization,
        ),
    )
    post_processor = PostProcessor(
        summarizer or create_summarizer(cfg),
        PostProcessOptions(remove_fillers=cfg.remove_fillers, paragraph_silence=cfg.paragraph_silence),
    )
    gateway = IngestionGateway(
        upload_dir=cfg.upload_dir,
        max_bytes=cfg.max_upload_bytes,
        allowed_mime_types=cfg.allowed_mime_types,
        max_audio_seconds=cfg.max_audio_seconds,
    )
    return JobOrchestrator(
        gateway=gateway,
        store=infra["store"],
        queue=infra["job_queue"],
        worker=worker,
        post_processor=post_processor,
        progress=infra["progress"],
        retry=RetryPolicy(
            max_attempts=cfg.max_attempts,
            base_delay=cfg.retry_base_delay,
            multiplier=cfg.retry_multiplier,
            max_delay=cfg.retry_max_delay,
        ),
        attempt_timeout=cfg.attempt_timeout,
        pipeline_timeout=cfg.pipeline_timeout,
        result_ttl=cfg.result_ttl,
    )
