import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

logger = logging.getLogger(__name__)

STREAM_OPENED = b":ok\n\n"
# Frames queued for a client that is not reading; newer frames are dropped beyond this
MAX_QUEUED_FRAMES = 1024


def format_event(message: Dict[str, Any]) -> bytes:
    """Encode a message as an SSE ``data`` event."""
    payload = json.dumps(message, separators=(",", ":"), ensure_ascii=False)
    return f"data: {payload}\n\n".encode("utf-8")


class StreamSink:
    """
    One live SSE delivery channel.

    Writes are fire-and-forget: ``send`` never blocks the backend reader.
    The SSE response drains the channel through ``events()``.
    """

    _CLOSED = None

    def __init__(self, label: str = "stream", max_frames: int = MAX_QUEUED_FRAMES):
        self.label = label
        self._queue: "asyncio.Queue[Optional[bytes]]" = asyncio.Queue(maxsize=max_frames)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, frame: bytes) -> bool:
        """Queue a pre-encoded frame. Returns False once closed or when the client lags too far."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            self.dropped += 1
            if self.dropped == 1 or self.dropped % 100 == 0:
                logger.warning(f"SSE client for {self.label} is not reading, dropped {self.dropped} frame(s)")
            return False
        return True

    def close(self) -> None:
        """End the stream after already queued frames are delivered."""
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(self._CLOSED)
        except asyncio.QueueFull:
            # The end marker must fit; the oldest undelivered frame gives way
            self._queue.get_nowait()
            self._queue.put_nowait(self._CLOSED)

    async def events(self) -> AsyncIterator[bytes]:
        """Yield the confirmation comment, then every queued frame until closed."""
        yield STREAM_OPENED
        while True:
            frame = await self._queue.get()
            if frame is self._CLOSED:
                return
            yield frame


def attach(session, sink: StreamSink) -> Optional[StreamSink]:
    """
    Make ``sink`` the session's only live stream.

    Returns:
        The superseded sink, if any. It is closed so its response ends.
    """
    previous = session.stream_sink
    session.stream_sink = sink
    if previous is not None and previous is not sink:
        logger.info(f"SSE stream for session {session.id} replaced by a new connection")
        previous.close()
    return previous


def detach(session, sink: StreamSink) -> bool:
    """
    Clear the session's stream only if it is still ``sink``.

    A close event from an already superseded connection must not erase
    the newer stream.
    """
    if session.stream_sink is sink:
        session.stream_sink = None
        return True
    return False


def push(session, message: Dict[str, Any]) -> bool:
    """Write a message to the session's live stream; dropped when there is none."""
    sink = session.stream_sink
    if sink is None:
        return False
    return sink.send(format_event(message))
