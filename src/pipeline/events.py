"""Lifecycle events emitted while a batch is processed.

Each event is a pydantic model whose field names are snake_case in
Python and camelCase on the wire, plus the server-sent-events encoding
used by the HTTP stream.
"""

from enum import StrEnum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class EventName(StrEnum):
    """Names of the events a batch stream can carry."""

    FILE_START = "file-start"
    PAGE_PROGRESS = "page-progress"
    PAGE_DONE = "page-done"
    FILE_DONE = "file-done"
    ERROR = "error"
    BATCH_DONE = "batch-done"


class LifecycleEvent(BaseModel):
    """Base class for all events."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    event: ClassVar[EventName]

    def payload(self) -> dict:
        """Return the wire payload with camelCase keys and no null fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


class FileStartEvent(LifecycleEvent):
    event: ClassVar[EventName] = EventName.FILE_START

    file_id: str
    file_name: str
    pages: int


class PageProgressEvent(LifecycleEvent):
    event: ClassVar[EventName] = EventName.PAGE_PROGRESS

    file_id: str
    page: int
    total_pages: int
    status: str = "processing"


class PageDoneEvent(LifecycleEvent):
    event: ClassVar[EventName] = EventName.PAGE_DONE

    file_id: str
    page: int
    markdown: str


class ErrorEvent(LifecycleEvent):
    """A file-level error, or a page-level one when ``page`` is set."""

    event: ClassVar[EventName] = EventName.ERROR

    file_id: str
    file_name: str
    error: str
    page: int | None = None


class FileDoneEvent(LifecycleEvent):
    event: ClassVar[EventName] = EventName.FILE_DONE

    file_id: str
    file_name: str
    markdown: str
    elapsed_ms: int


class BatchDoneEvent(LifecycleEvent):
    event: ClassVar[EventName] = EventName.BATCH_DONE

    total_files: int
    successful: int
    failed: int


def encode_sse(event: LifecycleEvent) -> bytes:
    """Serialize an event as one server-sent-events frame."""
    data = event.model_dump_json(by_alias=True, exclude_none=True)
    return f"event: {event.event}\ndata: {data}\n\n".encode()
