"""FastAPI application for the streaming OCR service.

Provides the batch OCR endpoint, which answers with a server-sent-events
stream of lifecycle events, and a health check covering the rasterizer
and the recognition backend.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, StreamingResponse
from starlette.datastructures import UploadFile

from src.backends.base import RecognitionBackend
from src.backends.factory import create_backend
from src.pipeline.batch import BatchPipeline, UploadedFile
from src.pipeline.cancellation import CancellationToken
from src.utils.config import AppConfig, load_config
from src.utils.logger import get_logger, log_context

from .event_sink import EventSink
from .health import build_health_status
from .schemas import HealthResponse

logger = get_logger(__name__)

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


async def _collect_files(request: Request) -> list[UploadedFile]:
    """Read every non-empty file part of a multipart request into memory.

    Field names are ignored. Parts are read before streaming starts
    because uploads are closed once the endpoint returns.
    """
    form = await request.form()
    files: list[UploadedFile] = []
    for _, value in form.multi_items():
        if not isinstance(value, UploadFile):
            continue
        content = await value.read()
        if content:
            files.append(UploadedFile(filename=value.filename or "", content=content))
    await form.close()
    return files


def create_app(
    config: AppConfig | None = None,
    backend: RecognitionBackend | None = None,
) -> FastAPI:
    """Build the application around one configuration and backend.

    Args:
        config: Application configuration. Loaded from the environment
            and ``configs/config.yaml`` when omitted.
        backend: Recognition backend. Built from ``config`` when omitted.

    Returns:
        Configured FastAPI application.
    """
    config = config or load_config()
    backend = backend or create_backend(config)
    pipeline = BatchPipeline(config, backend)

    app = FastAPI(
        title="Streaming OCR API",
        description="Convert uploaded images and PDFs to markdown, page by page",
        version="1.0.0",
    )
    app.state.config = config
    app.state.pipeline = pipeline

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Report rasterizer availability and backend readiness."""
        return await build_health_status(config, pipeline.backend)

    @app.post("/api/ocr")
    async def run_ocr(request: Request):
        """Process all uploaded files and stream progress as SSE."""
        try:
            files = await _collect_files(request)
        except Exception as exc:
            logger.warning(
                "Failed to parse multipart form data: %s %s",
                exc,
                log_context(path=request.url.path),
            )
            return PlainTextResponse("Expected multipart/form-data", status_code=400)

        if not files:
            logger.warning("OCR request received with no valid files")
            return PlainTextResponse("No files uploaded", status_code=400)

        cancel = CancellationToken()
        sink = EventSink(cancel)
        return StreamingResponse(
            sink.stream(pipeline.run(files, cancel)),
            media_type="text/event-stream",
            headers=_SSE_HEADERS,
        )

    return app


app = create_app()
