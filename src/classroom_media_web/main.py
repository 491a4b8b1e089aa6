"""FastAPI app: video upload coordination and playback endpoints."""

import logging

from classroom_media_adapters.config import bootstrap_env
from classroom_media_shared.errors import (
    IncompleteUpload,
    InvalidSession,
    MediaPipelineError,
    ObjectNotFound,
    StoreUnavailable,
    TranscodeFailure,
    UploadTooLarge,
    VideoNotFound,
)
from classroom_media_shared.logging_config import configure_logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .routers import videos_router

# Load .env from CLASSROOM_MEDIA_ENV_FILE if set. Unset in deployed containers.
bootstrap_env()
configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Classroom Media", version="0.1.0")
app.include_router(videos_router)

_STATUS_BY_ERROR: list[tuple[type[MediaPipelineError], int]] = [
    (VideoNotFound, 404),
    (ObjectNotFound, 404),
    (IncompleteUpload, 400),
    (UploadTooLarge, 413),
    (InvalidSession, 409),
    (StoreUnavailable, 503),
    (TranscodeFailure, 500),
]


@app.exception_handler(MediaPipelineError)
async def media_pipeline_error_handler(request: Request, exc: MediaPipelineError) -> JSONResponse:
    """Map the pipeline error taxonomy to HTTP status codes."""
    status = next((code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.get("/health")
async def health() -> dict:
    """Liveness check."""
    return {"status": "ok"}


def run() -> None:
    """Console entrypoint: serve the app with uvicorn."""
    import os

    import uvicorn

    uvicorn.run(
        app,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
    )
