"""Selection of the configured recognition backend."""

import httpx

from src.utils.config import AppConfig

from .base import RecognitionBackend
from .glm_sdk import GlmSdkBackend
from .ollama import OllamaBackend

_BACKENDS: dict[str, type[OllamaBackend] | type[GlmSdkBackend]] = {
    "ollama": OllamaBackend,
    "glm-sdk": GlmSdkBackend,
}


def create_backend(
    config: AppConfig, client: httpx.AsyncClient | None = None
) -> RecognitionBackend:
    """Instantiate the backend named by ``config.ocr_backend``.

    Raises:
        ValueError: If the name is not a known backend.
    """
    try:
        backend_cls = _BACKENDS[config.ocr_backend]
    except KeyError:
        raise ValueError(f"Unknown OCR backend: {config.ocr_backend}") from None
    return backend_cls(config, client=client)
