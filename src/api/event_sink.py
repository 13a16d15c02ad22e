"""Server-sent-events delivery of a batch's lifecycle events."""

from collections.abc import AsyncGenerator, AsyncIterator

from src.pipeline.cancellation import CancellationToken
from src.pipeline.events import LifecycleEvent, encode_sse
from src.utils.logger import get_logger

logger = get_logger(__name__)


class EventSink:
    """Serializes pipeline events into an SSE byte stream.

    If the stream is torn down before the pipeline finishes (the client
    went away), the batch's cancellation token is fired and the pipeline
    is closed so its working files are released. Nothing is written
    after that point.

    Args:
        cancel: Token shared with the pipeline run being streamed.
    """

    def __init__(self, cancel: CancellationToken) -> None:
        self.cancel = cancel
        self.sent = 0

    async def stream(
        self, events: AsyncGenerator[LifecycleEvent, None]
    ) -> AsyncIterator[bytes]:
        finished = False
        try:
            async for event in events:
                yield encode_sse(event)
                self.sent += 1
            finished = True
        except Exception:
            finished = True
            logger.exception("OCR batch aborted by an unexpected error after %d events", self.sent)
        finally:
            if not finished:
                logger.info("Client disconnected, cancelling OCR batch after %d events", self.sent)
                self.cancel.cancel()
            await events.aclose()
