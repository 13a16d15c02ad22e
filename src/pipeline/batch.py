"""Batch OCR pipeline.

Processes the files of one upload batch strictly in order, and the pages
of each file strictly in order, yielding a lifecycle event for every
state transition. A failing page never aborts its file and a failing file
never aborts the batch; the batch always ends with a ``batch-done``
summary unless the caller cancelled it.
"""

import shutil
import tempfile
import time
import uuid
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field
from pathlib import Path

from src.backends.base import RecognitionBackend
from src.utils.config import AppConfig
from src.utils.logger import get_logger, log_context

from . import output_guard
from .cancellation import CancellationToken
from .errors import (
    ConversionError,
    OperationCancelledError,
    ValidationError,
)
from .events import (
    BatchDoneEvent,
    ErrorEvent,
    FileDoneEvent,
    FileStartEvent,
    LifecycleEvent,
    PageDoneEvent,
    PageProgressEvent,
)
from .page_source import ALLOWED_EXTENSIONS, PageSource

logger = get_logger(__name__)

PAGE_SEPARATOR = "\n\n---\n\n"
UNSUPPORTED_TYPE_MESSAGE = "Unsupported file type. Allowed: " + ", ".join(ALLOWED_EXTENSIONS)


@dataclass
class UploadedFile:
    """One file part of a submitted batch, fully read into memory."""

    filename: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class FileJob:
    """Processing state of one file within a batch."""

    file_id: str
    file_name: str
    size: int
    extension: str
    started_at: float = field(default_factory=time.monotonic)
    page_count: int = 0
    page_texts: list[str] = field(default_factory=list)

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)


@dataclass
class BatchSummary:
    """Aggregate counters for one batch."""

    total: int
    succeeded: int = 0
    failed: int = 0


def join_pages(page_texts: Sequence[str]) -> str:
    """Combine page texts into the markdown for a whole file.

    A single page is returned unchanged. Several pages are each prefixed
    with an HTML comment naming the page and separated by a horizontal
    rule.
    """
    if len(page_texts) == 1:
        return page_texts[0]
    return PAGE_SEPARATOR.join(
        f"<!-- Page {number} -->\n\n{text}"
        for number, text in enumerate(page_texts, start=1)
    )


def validate_upload(upload: UploadedFile, config: AppConfig) -> str:
    """Check an upload's extension and size.

    Returns:
        The lower-cased extension, including the dot.

    Raises:
        ValidationError: If the extension is not allowed or the file is
            larger than the configured maximum.
    """
    extension = Path(upload.filename).suffix.lower()
    if extension not in ALLOWED_EXTENSIONS:
        raise ValidationError(UNSUPPORTED_TYPE_MESSAGE)
    if upload.size > config.max_file_size_bytes:
        raise ValidationError(f"File exceeds max size ({config.max_file_size}MB)")
    return extension


class BatchPipeline:
    """Drives page resolution, recognition and output checks for a batch.

    Args:
        config: Application configuration.
        backend: Recognition backend used for every page.
        page_source: Resolver from uploads to page images. Built from
            ``config`` when omitted.
    """

    def __init__(
        self,
        config: AppConfig,
        backend: RecognitionBackend,
        page_source: PageSource | None = None,
    ) -> None:
        self.config = config
        self.backend = backend
        self.page_source = page_source or PageSource(config)

    async def run(
        self,
        files: Sequence[UploadedFile],
        cancel: CancellationToken | None = None,
    ) -> AsyncIterator[LifecycleEvent]:
        """Process ``files`` and yield lifecycle events in order.

        Once ``cancel`` fires no further event is yielded, including the
        final ``batch-done``.
        """
        cancel = cancel or CancellationToken()
        events = self._run(files, cancel)
        try:
            async for event in events:
                if cancel.cancelled:
                    break
                yield event
        finally:
            await events.aclose()

    async def _run(
        self, files: Sequence[UploadedFile], cancel: CancellationToken
    ) -> AsyncIterator[LifecycleEvent]:
        summary = BatchSummary(total=len(files))
        logger.info("OCR batch started %s", log_context(fileCount=len(files)))

        for upload in files:
            if cancel.cancelled:
                break
            async with aclosing(self._process_file(upload, summary, cancel)) as file_events:
                async for event in file_events:
                    yield event

        if cancel.cancelled:
            logger.info(
                "OCR batch cancelled %s",
                log_context(
                    total=summary.total,
                    successful=summary.succeeded,
                    failed=summary.failed,
                ),
            )
            return

        logger.info(
            "OCR batch done %s",
            log_context(
                total=summary.total,
                successful=summary.succeeded,
                failed=summary.failed,
            ),
        )
        yield BatchDoneEvent(
            total_files=summary.total,
            successful=summary.succeeded,
            failed=summary.failed,
        )

    async def _process_file(
        self,
        upload: UploadedFile,
        summary: BatchSummary,
        cancel: CancellationToken,
    ) -> AsyncIterator[LifecycleEvent]:
        file_id = str(uuid.uuid4())
        file_name = upload.filename or "upload"

        try:
            extension = validate_upload(upload, self.config)
        except ValidationError as exc:
            summary.failed += 1
            logger.warning(
                "Rejected file: %s %s",
                exc,
                log_context(fileId=file_id, fileName=file_name, sizeBytes=upload.size),
            )
            yield ErrorEvent(file_id=file_id, file_name=file_name, error=str(exc))
            return

        job = FileJob(
            file_id=file_id,
            file_name=file_name,
            size=upload.size,
            extension=extension,
        )
        work_dir: Path | None = None
        try:
            self.config.work_root.mkdir(parents=True, exist_ok=True)
            work_dir = Path(tempfile.mkdtemp(prefix=f"{file_id}-", dir=self.config.work_root))
            try:
                pages = await cancel.guard(
                    self.page_source.resolve(file_name, upload.content, work_dir)
                )
            except OperationCancelledError:
                return
            except ConversionError as exc:
                summary.failed += 1
                logger.warning(
                    "Conversion failed: %s %s",
                    exc,
                    log_context(fileId=file_id, fileName=file_name),
                )
                yield ErrorEvent(file_id=file_id, file_name=file_name, error=str(exc))
                return

            job.page_count = len(pages)
            yield FileStartEvent(file_id=file_id, file_name=file_name, pages=job.page_count)

            for number, page_path in enumerate(pages, start=1):
                if cancel.cancelled:
                    return
                yield PageProgressEvent(
                    file_id=file_id, page=number, total_pages=job.page_count
                )
                try:
                    text = await cancel.guard(self.backend.recognize(page_path))
                except OperationCancelledError:
                    return
                except Exception as exc:
                    message = str(exc) or "Unknown OCR error"
                    logger.error(
                        "OCR failed for page %s",
                        log_context(fileId=file_id, fileName=file_name, page=number),
                        exc_info=exc,
                    )
                    yield ErrorEvent(
                        file_id=file_id, file_name=file_name, page=number, error=message
                    )
                    continue

                text = output_guard.check(text)
                job.page_texts.append(text)
                yield PageDoneEvent(file_id=file_id, page=number, markdown=text)

            if not job.page_texts:
                summary.failed += 1
                logger.warning(
                    "No pages processed successfully %s",
                    log_context(fileId=file_id, fileName=file_name),
                )
                yield ErrorEvent(
                    file_id=file_id,
                    file_name=file_name,
                    error="No pages could be processed",
                )
                return

            summary.succeeded += 1
            yield FileDoneEvent(
                file_id=file_id,
                file_name=file_name,
                markdown=join_pages(job.page_texts),
                elapsed_ms=job.elapsed_ms,
            )
        except Exception as exc:
            summary.failed += 1
            logger.exception(
                "Unhandled error processing file %s",
                log_context(fileId=file_id, fileName=file_name),
            )
            yield ErrorEvent(
                file_id=file_id,
                file_name=file_name,
                error=str(exc) or "Unknown processing error",
            )
        finally:
            if work_dir is not None:
                shutil.rmtree(work_dir, ignore_errors=True)
