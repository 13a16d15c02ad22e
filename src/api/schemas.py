"""Pydantic response schemas for the FastAPI endpoints."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint.

    ``ollama`` reports whether the active recognition backend answered,
    whichever backend is configured.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    app: bool = True
    poppler: bool
    backend: str
    ollama: bool
    model: str
    model_ready: bool
    ollama_host: str
