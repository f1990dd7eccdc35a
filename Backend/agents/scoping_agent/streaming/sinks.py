import asyncio
from typing import AsyncIterator, Optional, Protocol


class Sink(Protocol):
    """Destination for encoded frames. write() raises once the client has gone away."""

    def write(self, chunk: bytes) -> None:
        ...


class SinkClosed(ConnectionError):
    pass


class QueueSink:
    """Bridges the orchestrator to a StreamingResponse body through an asyncio queue."""

    def __init__(self):
        self._queue: asyncio.Queue[Optional[bytes]] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, chunk: bytes) -> None:
        if self._closed:
            raise SinkClosed("Client connection closed")
        self._queue.put_nowait(chunk)

    def finish(self) -> None:
        """Signal the end of the body to the reader."""
        self._queue.put_nowait(None)

    def disconnect(self) -> None:
        """Mark the client as gone; later writes raise SinkClosed."""
        self._closed = True

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk
