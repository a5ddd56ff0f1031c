import asyncio
import json
import logging
import uuid
from typing import Any, AsyncIterator, Callable, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse

from stdiobridge.config.provider import BackendConfig
from stdiobridge.modules.api import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    PARSE_ERROR,
    JSONRPCMessage,
    error_response,
    is_request,
    result_response,
)
from stdiobridge.modules.correlator import DuplicateRequestError
from stdiobridge.modules.process import SpawnError
from stdiobridge.modules.session import Session, SessionStore
from stdiobridge.modules.stream import StreamSink, attach, detach

logger = logging.getLogger(__name__)

SESSION_QUERY_PARAM = "sessionId"
SESSION_HEADER = "x-session-id"
SESSION_BODY_FIELD = "sessionId"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

# Methods answered locally because backends get them wrong
INTERCEPTED_METHODS: Dict[str, Callable[[], Any]] = {
    "logging/setLevel": lambda: {},
    "resources/list": lambda: {"resources": []},
}


class StdioGateway:
    """
    HTTP entry points of the bridge.

    Owns the session store for its whole lifetime: created with the
    gateway, torn down by ``close()``.
    """

    def __init__(
        self,
        config: BackendConfig,
        store: Optional[SessionStore] = None,
        max_body_bytes: int = 10 * 1024 * 1024,
        sse_ping_seconds: int = 15,
    ):
        """
        Initialize gateway.

        Args:
            config: Backend process configuration
            store: Session store (a new one is built from ``config`` if omitted)
            max_body_bytes: Largest accepted POST body
            sse_ping_seconds: Interval of keep-alive comments on SSE streams
        """
        self.config = config
        self.store = store or SessionStore(config)
        self.max_body_bytes = max_body_bytes
        self.sse_ping_seconds = sse_ping_seconds

    def resolve_session_id(self, request: Request, body: Optional[Dict[str, Any]] = None) -> str:
        """
        Pick the target session: query, then header, then body, then the default.

        Empty values fall through to the next source.
        """
        session_id = request.query_params.get(SESSION_QUERY_PARAM) or request.headers.get(SESSION_HEADER)
        if not session_id and body is not None:
            candidate = body.get(SESSION_BODY_FIELD)
            if isinstance(candidate, str):
                session_id = candidate
        return session_id or self.config.default_session_id

    async def handle_sse(self, request: Request) -> Response:
        """
        Open the server-to-client stream for a session.

        Returns:
            text/event-stream response, or HTTP 500 if the session could not
            be created
        """
        session_id = self.resolve_session_id(request)
        logger.debug(f"SSE connection request for session {session_id}")

        try:
            session = await self.store.ensure_session(session_id, require_connected=False)
        except SpawnError as e:
            logger.error(f"Failed to create session {session_id}: {e}")
            return JSONResponse(status_code=500, content={"error": "Failed to create session"})

        return EventSourceResponse(
            self._stream(session, StreamSink(label=session_id)),
            headers=SSE_HEADERS,
            ping=self.sse_ping_seconds,
            sep="\n",
        )

    async def _stream(self, session: Session, sink: StreamSink) -> AsyncIterator[bytes]:
        # Attached only once the response is actually being sent
        attach(session, sink)
        try:
            async for frame in sink.events():
                yield frame
        finally:
            # Guarded: a newer connection may already own the session's stream
            detach(session, sink)
            logger.info(f"SSE connection closed for session {session.id}")

    async def handle_message(self, request: Request) -> Response:
        """
        Relay one JSON-RPC message to the session's backend.

        Returns:
            200 with the reply envelope for requests, 202 with ``{}`` for
            notifications, 4xx/500 with a JSON-RPC error envelope otherwise
        """
        raw = await self._read_body(request)
        if raw is None:
            return JSONResponse(
                status_code=413,
                content=error_response(INVALID_REQUEST, "Request body too large", include_id=False),
            )

        try:
            body = json.loads(raw)
        except ValueError:
            return JSONResponse(status_code=400, content=error_response(PARSE_ERROR, "Parse error"))

        if not isinstance(body, dict):
            return JSONResponse(status_code=400, content=error_response(INVALID_REQUEST, "Invalid Request"))
        try:
            JSONRPCMessage.model_validate(body)
        except ValidationError as e:
            logger.warning(f"Rejected malformed JSON-RPC message: {e.errors()}")
            return JSONResponse(status_code=400, content=error_response(INVALID_REQUEST, "Invalid Request"))

        session_id = self.resolve_session_id(request, body)
        logger.debug(f"POST request received: session={session_id} method={body.get('method')} id={body.get('id')}")

        try:
            session = await self.store.ensure_session(session_id)
        except SpawnError as e:
            logger.error(f"Failed to create session {session_id}: {e}")
            return JSONResponse(
                status_code=500,
                content=error_response(INTERNAL_ERROR, "Failed to create session", include_id=False),
            )

        try:
            if is_request(body):
                return JSONResponse(content=await self._relay_request(session, body))

            # Notifications get no reply from the backend
            session.send(body)
            return JSONResponse(status_code=202, content={})
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Failed to process message for session {session_id}")
            return JSONResponse(
                status_code=500,
                content=error_response(INTERNAL_ERROR, "Internal error", include_id=False),
            )

    async def _read_body(self, request: Request) -> Optional[bytes]:
        """Read the POST body, or return None as soon as it exceeds ``max_body_bytes``."""
        declared = request.headers.get("content-length")
        if declared is not None and declared.isdigit() and int(declared) > self.max_body_bytes:
            return None

        body = bytearray()
        async for chunk in request.stream():
            body.extend(chunk)
            if len(body) > self.max_body_bytes:
                return None
        return bytes(body)

    async def _relay_request(self, session: Session, message: Dict[str, Any]) -> Dict[str, Any]:
        request_id = message["id"]

        local = INTERCEPTED_METHODS.get(message.get("method"))
        if local is not None:
            return result_response(request_id, local())

        try:
            # Registered before the write so a fast reply cannot be missed
            reply = session.pending.register(request_id, self.config.request_timeout)
        except DuplicateRequestError as e:
            logger.warning(f"Session {session.id}: {e}")
            return error_response(INVALID_REQUEST, "Request id already pending", request_id)

        session.send(message)

        try:
            return await reply
        except asyncio.CancelledError:
            session.pending.discard(request_id)
            raise

    def generate_session_id(self) -> str:
        """Return a fresh random session id; no session is created."""
        return str(uuid.uuid4())

    async def close(self) -> None:
        """Terminate every backend process and drop all sessions."""
        await self.store.close()
