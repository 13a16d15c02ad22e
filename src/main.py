"""Application entry point for the streaming OCR API server."""

import uvicorn

from src.api.app import create_app
from src.utils.config import load_config
from src.utils.logger import get_logger, log_context, setup_logging

logger = get_logger(__name__)


def main() -> None:
    """Start the FastAPI application server."""
    config = load_config()
    setup_logging(config.log_level)
    logger.info(
        "OCR app listening on http://%s:%d %s",
        config.host,
        config.port,
        log_context(
            backend=config.ocr_backend,
            backendHost=config.backend_host,
            ollamaModel=config.ollama_model,
            pdfDpi=config.pdf_dpi,
            ocrTimeoutMs=config.ocr_timeout_ms,
            maxFileSizeMb=config.max_file_size,
            numCtx=config.num_ctx,
        ),
    )
    uvicorn.run(create_app(config), host=config.host, port=config.port, timeout_keep_alive=255)


if __name__ == "__main__":
    main()
