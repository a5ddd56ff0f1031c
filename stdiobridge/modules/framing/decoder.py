import json
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

FRAME_DELIMITER = b"\n"


class BufferOverflowError(Exception):
    """Unterminated backend output grew past the configured bound."""

    def __init__(self, size: int, limit: int, messages: Optional[List[Dict[str, Any]]] = None):
        super().__init__(f"Unterminated frame of {size} bytes exceeds limit of {limit} bytes")
        self.size = size
        self.limit = limit
        # Complete frames decoded from the same chunk before the overflow
        self.messages = messages or []


def encode_frame(message: Dict[str, Any]) -> bytes:
    """Serialize one message as a newline-terminated frame."""
    return json.dumps(message, separators=(",", ":"), ensure_ascii=False).encode("utf-8") + FRAME_DELIMITER


class FrameDecoder:
    """
    Reassemble newline-delimited JSON-RPC frames from a byte stream.

    The backend transport has no length prefix, so a newline is the only
    frame boundary. Partial data is carried over between ``feed`` calls.
    """

    def __init__(self, max_buffer_bytes: int = 10 * 1024 * 1024, label: str = "backend"):
        """
        Initialize decoder.

        Args:
            max_buffer_bytes: Largest unterminated fragment kept between feeds
            label: Name used in log messages (usually the session id)
        """
        self.max_buffer_bytes = max_buffer_bytes
        self.label = label
        self._buffer = bytearray()

    @property
    def buffered(self) -> bytes:
        """Bytes received but not yet terminated by a newline."""
        return bytes(self._buffer)

    def feed(self, data: bytes) -> List[Dict[str, Any]]:
        """
        Consume a chunk of backend output.

        Args:
            data: Raw bytes as delivered by the pipe

        Returns:
            Messages completed by this chunk, in stream order

        Raises:
            BufferOverflowError: The trailing fragment exceeded the bound. It
                is discarded; complete lines from the same chunk are carried
                on ``exc.messages``.
        """
        messages = []

        # Only the new bytes can complete a frame
        last = data.rfind(FRAME_DELIMITER)
        if last == -1:
            self._buffer.extend(data)
        else:
            self._buffer.extend(data[:last])
            lines = self._buffer.split(FRAME_DELIMITER)
            self._buffer = bytearray(data[last + 1:])

            for line in lines:
                message = self._parse(line)
                if message is not None:
                    messages.append(message)

        if len(self._buffer) > self.max_buffer_bytes:
            size = len(self._buffer)
            self._buffer = bytearray()
            raise BufferOverflowError(size, self.max_buffer_bytes, messages)

        return messages

    def _parse(self, line: bytes) -> Optional[Dict[str, Any]]:
        if not line.strip():
            return None

        try:
            message = json.loads(line.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to parse JSON-RPC message from {self.label}: {e} (line: {line[:200]!r})")
            return None

        if not isinstance(message, dict):
            logger.warning(f"Dropping non-object JSON frame from {self.label}: {line[:200]!r}")
            return None

        return message
