"""HTTP interface: submit, poll, render.

The interface never waits on the pipeline; it submits audio, polls the job
and fetches the finished result or its plain-text report.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from config import Config, create_orchestrator, get_config
from domain.errors import (
    JobNotFoundError,
    JobNotReadyError,
    PayloadTooLargeError,
    PipelineError,
    UnsupportedFormatError,
    ValidationError,
)
from mappers import result_to_dto, state_to_dto
from models import ApiError, CancelResponse, HealthResponse, JobCreated, JobStatusResponse, TranscriptionResult
from report import render_report, report_filename
from use_cases.orchestrator import JobOrchestrator

logger = logging.getLogger(__name__)

UPLOAD_READ_SIZE = 1024 * 1024

# Most specific first.
_ERROR_STATUS = [
    (PayloadTooLargeError, 413),
    (UnsupportedFormatError, 415),
    (ValidationError, 400),
    (JobNotFoundError, 404),
    (JobNotReadyError, 409),
]


def error_response(status_code: int, error: str, message: str, details=None) -> JSONResponse:
    payload = ApiError(error=error, message=message, details=details).model_dump()
    return JSONResponse(status_code=status_code, content=payload)


async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    status_code = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 500)
    logger.warning(f"{request.method} {request.url.path} -> {status_code}: {exc}")
    return error_response(status_code, type(exc).__name__, str(exc))


def _read_upload(file: UploadFile, limit: int) -> bytes:
    """Read the upload in chunks, stopping as soon as it passes ``limit``."""
    chunks = []
    size = 0
    while True:
        chunk = file.file.read(UPLOAD_READ_SIZE)
        if not chunk:
            break
        size += len(chunk)
        if size > limit:
            raise PayloadTooLargeError(f"Audio payload exceeds the limit of {limit} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


def create_app(orchestrator: Optional[JobOrchestrator] = None, cfg: Optional[Config] = None) -> FastAPI:
    cfg = cfg or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.orchestrator.shutdown()

    app = FastAPI(title="WhisperLens Scribe", lifespan=lifespan)
    app.state.orchestrator = orchestrator or create_orchestrator(cfg)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(PipelineError, pipeline_error_handler)

    def _orchestrator(request: Request) -> JobOrchestrator:
        return request.app.state.orchestrator

    @app.get("/health", response_model=HealthResponse)
    def health(request: Request):
        orch = _orchestrator(request)
        ready = orch.is_ready()
        return HealthResponse(
            status="ok" if ready else "degraded",
            engine=cfg.engine,
            model=orch.model_name(),
            model_loaded=ready,
        )

    @app.post("/v1/jobs", response_model=JobCreated, status_code=202)
    def create_job(
        request: Request,
        file: UploadFile = File(...),
        filename: Optional[str] = Form(None),
        duration: Optional[float] = Form(None),
    ):
        # Sync route, so it runs in the threadpool: submit writes to disk and,
        # with INFRA=sync, runs the whole pipeline.
        orch = _orchestrator(request)
        data = _read_upload(file, orch.max_upload_bytes)
        job_id = orch.submit(
            data,
            file.content_type or "",
            filename=filename or file.filename,
            duration=duration,
        )
        return JobCreated(job_id=job_id, status=orch.status(job_id).status.value)

    @app.get("/v1/jobs/{job_id}", response_model=JobStatusResponse)
    def get_job(job_id: str, request: Request):
        return state_to_dto(_orchestrator(request).status(job_id))

    @app.get("/v1/jobs/{job_id}/result", response_model=TranscriptionResult)
    def get_result(job_id: str, request: Request):
        return result_to_dto(_orchestrator(request).result(job_id))

    @app.get("/v1/jobs/{job_id}/report", response_class=PlainTextResponse)
    def get_report(job_id: str, request: Request):
        orch = _orchestrator(request)
        state = orch.status(job_id)
        result = orch.result(job_id)
        generated = datetime.now()
        return PlainTextResponse(
            render_report(result, state.filename, generated),
            headers={"Content-Disposition": f'attachment; filename="{report_filename(generated)}"'},
        )

    @app.get("/v1/jobs/{job_id}/text/{section}", response_class=PlainTextResponse)
    def get_text(job_id: str, section: str, request: Request):
        result = _orchestrator(request).result(job_id)
        if section == "transcript":
            return PlainTextResponse(result.full_text)
        if section == "summary":
            return PlainTextResponse(result.summary)
        return error_response(404, "UnknownSection", f"Unknown section: {section}")

    @app.delete("/v1/jobs/{job_id}", response_model=CancelResponse)
    def cancel_job(job_id: str, request: Request):
        orch = _orchestrator(request)
        cancelled = orch.cancel(job_id)
        return CancelResponse(job_id=job_id, cancelled=cancelled, status=orch.status(job_id).status.value)

    return app
