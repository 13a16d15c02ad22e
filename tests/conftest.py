"""Shared test fixtures for the streaming OCR test suite."""

import asyncio
from collections.abc import Callable
from pathlib import Path

import pytest

from src.backends.base import BackendHealth, RecognitionBackend
from src.pipeline.batch import BatchPipeline, UploadedFile
from src.pipeline.cancellation import CancellationToken
from src.pipeline.events import LifecycleEvent
from src.utils.config import AppConfig

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class FakeBackend(RecognitionBackend):
    """Backend returning scripted results in call order.

    Each result is a string, an exception to raise, or an async callable
    receiving the image path.
    """

    name = "fake"

    def __init__(self, results: list | None = None, default: str = "page text") -> None:
        super().__init__("http://fake-backend", timeout_ms=1000)
        self.results = list(results or [])
        self.default = default
        self.calls: list[Path] = []
        self.health_result = BackendHealth(reachable=True, model_ready=True)

    async def recognize(self, image_path: Path) -> str:
        self.calls.append(image_path)
        result = self.results.pop(0) if self.results else self.default
        if isinstance(result, BaseException):
            raise result
        if callable(result):
            return await result(image_path)
        return result

    async def health(self) -> BackendHealth:
        return self.health_result


class FakePageSource:
    """Page source writing ``page-<n>.png`` placeholders into the work dir."""

    def __init__(
        self,
        page_counts: dict[str, int] | None = None,
        failures: dict[str, Exception] | None = None,
    ) -> None:
        self.page_counts = page_counts or {}
        self.failures = failures or {}
        self.work_dirs: list[Path] = []

    async def resolve(self, file_name: str, content: bytes, work_dir: Path) -> list[Path]:
        self.work_dirs.append(work_dir)
        if file_name in self.failures:
            raise self.failures[file_name]
        pages = []
        for number in range(1, self.page_counts.get(file_name, 1) + 1):
            path = work_dir / f"page-{number}.png"
            path.write_bytes(PNG_BYTES)
            pages.append(path)
        return pages


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    """Configuration with an isolated working-storage root."""
    return AppConfig(temp_root=str(tmp_path / "work"))


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def fake_backend() -> Callable[..., FakeBackend]:
    """Factory for scripted recognition backends."""
    return FakeBackend


@pytest.fixture
def fake_page_source() -> Callable[..., FakePageSource]:
    """Factory for page sources that skip real rasterization."""
    return FakePageSource


@pytest.fixture
def collect_events() -> Callable[..., list[LifecycleEvent]]:
    """Run a pipeline to completion and return every event it yielded."""

    def _collect(
        pipeline: BatchPipeline,
        files: list[UploadedFile],
        cancel: CancellationToken | None = None,
    ) -> list[LifecycleEvent]:
        async def _run() -> list[LifecycleEvent]:
            return [event async for event in pipeline.run(files, cancel)]

        return asyncio.run(_run())

    return _collect


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent
