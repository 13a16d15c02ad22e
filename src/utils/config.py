"""Configuration management for the streaming OCR service.

Settings come from field defaults, then environment variables (``PORT``,
``OLLAMA_HOST``, ``PDF_DPI`` ...), then an optional YAML file. The result
is a single immutable value that is built once at startup and handed to
every component that needs it.
"""

import logging
import tempfile
from pathlib import Path
from typing import Literal

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

BackendName = Literal["ollama", "glm-sdk"]


class AppConfig(BaseSettings):
    """Top-level application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    host: str = "0.0.0.0"
    port: int = Field(default=3000, gt=0)
    log_level: str = "INFO"

    ocr_backend: BackendName = "ollama"
    ollama_host: str = "http://host.docker.internal:11434"
    ollama_model: str = "glm-ocr"
    glm_ocr_host: str = "http://localhost:5002"
    num_ctx: int = Field(default=16384, gt=0)
    temperature: float = 0.01

    pdf_dpi: int = Field(default=300, gt=0)
    poppler_path: str | None = None
    ocr_timeout: int = Field(default=120, gt=0, description="Per-page timeout in seconds")
    max_file_size: int = Field(default=50, gt=0, description="Per-file limit in MB")
    temp_root: str | None = None

    @property
    def ocr_timeout_ms(self) -> int:
        return self.ocr_timeout * 1000

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size * 1024 * 1024

    @property
    def work_root(self) -> Path:
        """Root directory under which per-file working directories live."""
        if self.temp_root:
            return Path(self.temp_root)
        return Path(tempfile.gettempdir()) / "ocr-app"

    @property
    def backend_host(self) -> str:
        if self.ocr_backend == "glm-sdk":
            return self.glm_ocr_host
        return self.ollama_host


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from the environment and an optional YAML file.

    Values present in the YAML file win over environment variables.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using environment and defaults", path)
    return AppConfig()
