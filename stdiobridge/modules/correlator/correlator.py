import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Union

from stdiobridge.modules.api import INTERNAL_ERROR, error_response

logger = logging.getLogger(__name__)

RequestId = Union[str, int, float, None]

TIMEOUT_MESSAGE = "Request timeout"


class DuplicateRequestError(Exception):
    """A request with the same id is already awaiting a reply."""

    def __init__(self, request_id: RequestId):
        super().__init__(f"Request id already pending: {request_id!r}")
        self.request_id = request_id


@dataclass
class _Pending:
    future: asyncio.Future
    timer: asyncio.TimerHandle


class PendingRequests:
    """
    Per-session table of requests awaiting a backend reply.

    A reply and the timeout timer race to take the same entry out of the
    table with ``dict.pop``; whichever wins resolves the future, so every
    registered id is resolved exactly once.
    """

    def __init__(self, label: str = "backend"):
        self.label = label
        self._entries: Dict[RequestId, _Pending] = {}

    def __contains__(self, request_id: RequestId) -> bool:
        return request_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def register(self, request_id: RequestId, timeout: float) -> asyncio.Future:
        """
        Register a request before it is written to the backend.

        Args:
            request_id: JSON-RPC id of the outgoing request
            timeout: Seconds before a synthetic timeout error is delivered

        Returns:
            Future resolved with the reply or the timeout envelope

        Raises:
            DuplicateRequestError: The id is already pending
        """
        if request_id in self._entries:
            raise DuplicateRequestError(request_id)

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        timer = loop.call_later(timeout, self._expire, request_id, timeout)
        self._entries[request_id] = _Pending(future=future, timer=timer)
        return future

    def resolve(self, message: Dict[str, Any]) -> bool:
        """
        Deliver a backend message to its waiting caller, if any.

        Returns:
            True if the message satisfied a pending request
        """
        if "id" not in message:
            return False

        try:
            entry = self._entries.pop(message["id"], None)
        except TypeError:
            # Unhashable id from a misbehaving backend
            return False
        if entry is None:
            return False

        entry.timer.cancel()
        if not entry.future.done():
            entry.future.set_result(message)
        return True

    def _expire(self, request_id: RequestId, timeout: float) -> None:
        entry = self._entries.pop(request_id, None)
        if entry is None:
            return

        logger.warning(f"Request {request_id!r} on {self.label} timed out after {timeout}s")
        if not entry.future.done():
            entry.future.set_result(error_response(INTERNAL_ERROR, TIMEOUT_MESSAGE, request_id))

    def discard(self, request_id: RequestId) -> None:
        """Forget a request whose caller went away."""
        entry = self._entries.pop(request_id, None)
        if entry is not None:
            entry.timer.cancel()

    def cancel_all(self) -> int:
        """
        Cancel every pending request (bridge shutdown only).

        Returns:
            Number of requests cancelled
        """
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            entry.timer.cancel()
            entry.future.cancel()
        return len(entries)
