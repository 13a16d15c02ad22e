"""Health probe shared by the HTTP endpoint and the CLI."""

from src.backends.base import RecognitionBackend
from src.pipeline.page_source import rasterizer_available
from src.utils.config import AppConfig

from .schemas import HealthResponse


async def build_health_status(
    config: AppConfig, backend: RecognitionBackend
) -> HealthResponse:
    """Check the rasterizer and the recognition backend.

    Never raises: an unreachable backend is reported as not ready.
    """
    backend_health = await backend.health()
    return HealthResponse(
        poppler=rasterizer_available(config),
        backend=config.ocr_backend,
        ollama=backend_health.reachable,
        model=backend.model,
        model_ready=backend_health.model_ready,
        ollama_host=config.backend_host,
    )
