"""Contract shared by all text-recognition backends."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

import httpx

from src.pipeline.errors import (
    BackendUnreachableError,
    EmptyResultError,
    RecognitionTimeoutError,
    RequestFailedError,
)


@dataclass
class BackendHealth:
    """Reachability of a backend and availability of its model."""

    reachable: bool
    model_ready: bool


def normalize_host(host: str) -> str:
    """Strip a single trailing slash from a base URL."""
    return host[:-1] if host.endswith("/") else host


class RecognitionBackend(ABC):
    """Converts one page image into recognized text.

    Implementations talk to a remote service over HTTP with a bounded
    per-request timeout. Failures are reported as subclasses of
    :class:`~src.pipeline.errors.RecognitionError`.

    Args:
        host: Base URL of the service.
        timeout_ms: Per-request timeout in milliseconds.
        client: Optional shared HTTP client. When omitted a client is
            created for each request.
    """

    name: str = "backend"

    def __init__(
        self,
        host: str,
        timeout_ms: int,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.host = normalize_host(host)
        self.timeout_ms = timeout_ms
        self._client = client

    @property
    def model(self) -> str:
        """Identifier of the model or service the backend runs."""
        return self.name

    @abstractmethod
    async def recognize(self, image_path: Path) -> str:
        """Recognize the text on a single page image.

        Raises:
            RequestFailedError: Non-success HTTP status.
            RecognitionTimeoutError: No answer within the timeout.
            EmptyResultError: A valid answer without text.
            BackendUnreachableError: Any other transport failure.
        """

    @abstractmethod
    async def health(self) -> BackendHealth:
        """Probe the service without raising."""

    async def _post_json(self, path: str, body: dict) -> dict:
        """POST a JSON body and return the decoded JSON answer.

        Transport errors are translated into recognition errors here so
        that every backend reports them the same way. The timeout bounds
        the whole call, not each connect or read phase.
        """
        url = f"{self.host}{path}"
        seconds = self.timeout_ms / 1000
        timeout = httpx.Timeout(seconds)
        try:
            async with asyncio.timeout(seconds):
                if self._client is not None:
                    response = await self._client.post(url, json=body, timeout=timeout)
                else:
                    async with httpx.AsyncClient(timeout=timeout) as client:
                        response = await client.post(url, json=body)
        except (TimeoutError, httpx.TimeoutException) as exc:
            raise RecognitionTimeoutError(
                f"{self.name} request timed out after {self.timeout_ms}ms"
            ) from exc
        except httpx.HTTPError as exc:
            raise BackendUnreachableError(
                f"Failed to reach {self.name} at {self.host}"
            ) from exc

        if not response.is_success:
            raise RequestFailedError(
                f"{self.name} request failed ({response.status_code}): {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise RequestFailedError(
                f"{self.name} returned invalid JSON ({response.status_code})",
                status_code=response.status_code,
                body=response.text,
            ) from exc
        if not isinstance(payload, dict):
            raise EmptyResultError(f"Empty OCR result returned by {self.name}")
        return payload

    async def _get(self, path: str, timeout: float = 5.0) -> httpx.Response:
        url = f"{self.host}{path}"
        if self._client is not None:
            return await self._client.get(url, timeout=timeout)
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.get(url)
