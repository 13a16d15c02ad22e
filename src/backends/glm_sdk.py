"""Document-parsing backend served by a GLM-OCR SDK sidecar.

The sidecar shares the working volume with this service, so pages are
passed by path rather than by content.
"""

from pathlib import Path

import httpx

from src.pipeline.errors import EmptyResultError
from src.utils.config import AppConfig
from src.utils.logger import get_logger

from .base import BackendHealth, RecognitionBackend

logger = get_logger(__name__)


def _flatten_blocks(json_result: list) -> list[str]:
    """Collect block contents from the pages -> regions -> blocks nesting."""
    contents: list[str] = []
    for page in json_result:
        for region in page or []:
            for block in region or []:
                content = block.get("content") if isinstance(block, dict) else None
                if content:
                    contents.append(content)
    return contents


class GlmSdkBackend(RecognitionBackend):
    """Calls ``/glmocr/parse`` and prefers its markdown rendering."""

    name = "GLM-OCR SDK"

    def __init__(self, config: AppConfig, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(config.glm_ocr_host, config.ocr_timeout_ms, client)

    @property
    def model(self) -> str:
        return "glm-ocr-sdk"

    async def recognize(self, image_path: Path) -> str:
        payload = await self._post_json("/glmocr/parse", {"images": [str(image_path)]})

        markdown = (payload.get("markdown_result") or "").strip()
        if markdown:
            return markdown

        blocks = _flatten_blocks(payload.get("json_result") or [])
        if blocks:
            return "\n\n".join(blocks)

        raise EmptyResultError("Empty result returned by GLM-OCR SDK")

    async def health(self) -> BackendHealth:
        try:
            response = await self._get("/")
        except httpx.HTTPError as exc:
            logger.debug("GLM-OCR SDK health probe failed: %s", exc)
            return BackendHealth(reachable=False, model_ready=False)
        ready = response.status_code < 500
        return BackendHealth(reachable=ready, model_ready=ready)
