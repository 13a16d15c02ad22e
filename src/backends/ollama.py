"""Chat-style multimodal backend served by Ollama."""

import asyncio
import base64
from pathlib import Path

import httpx

from src.pipeline.errors import EmptyResultError
from src.utils.config import AppConfig
from src.utils.logger import get_logger

from .base import BackendHealth, RecognitionBackend

logger = get_logger(__name__)

PROMPT = "Text Recognition:"


class OllamaBackend(RecognitionBackend):
    """Sends each page as a base64 image in a single chat message.

    Args:
        config: Application configuration (host, model, context size,
            temperature, timeout).
        client: Optional shared HTTP client.
    """

    name = "Ollama"

    def __init__(self, config: AppConfig, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(config.ollama_host, config.ocr_timeout_ms, client)
        self._model = config.ollama_model
        self.num_ctx = config.num_ctx
        self.temperature = config.temperature

    @property
    def model(self) -> str:
        return self._model

    async def recognize(self, image_path: Path) -> str:
        image_bytes = await asyncio.to_thread(image_path.read_bytes)
        payload = await self._post_json(
            "/api/chat",
            {
                "model": self._model,
                "messages": [
                    {
                        "role": "user",
                        "content": PROMPT,
                        "images": [base64.b64encode(image_bytes).decode("ascii")],
                    }
                ],
                "options": {
                    "num_ctx": self.num_ctx,
                    "temperature": self.temperature,
                },
                "stream": False,
            },
        )

        message = payload.get("message") or {}
        content = (message.get("content") or "").strip()
        if not content:
            raise EmptyResultError("Empty OCR result returned by Ollama")
        return content

    async def health(self) -> BackendHealth:
        """Check that Ollama answers and lists the configured model."""
        try:
            response = await self._get("/api/tags")
        except httpx.HTTPError as exc:
            logger.debug("Ollama health probe failed: %s", exc)
            return BackendHealth(reachable=False, model_ready=False)

        if not response.is_success:
            return BackendHealth(reachable=False, model_ready=False)

        try:
            models = response.json().get("models") or []
        except (ValueError, AttributeError):
            return BackendHealth(reachable=True, model_ready=False)

        return BackendHealth(reachable=True, model_ready=self._has_model(models))

    def _has_model(self, models: list[dict]) -> bool:
        for entry in models:
            candidate = entry.get("name") or entry.get("model") or ""
            if candidate == self._model or candidate.startswith(f"{self._model}:"):
                return True
        return False
