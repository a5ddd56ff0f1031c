import asyncio
import logging
from typing import Any, Dict, List, Optional

from stdiobridge.config.provider import BackendConfig
from stdiobridge.modules.correlator import PendingRequests
from stdiobridge.modules.framing import BufferOverflowError, FrameDecoder, encode_frame
from stdiobridge.modules.process import ProcessHandle
from stdiobridge.modules.stream import StreamSink, push

logger = logging.getLogger(__name__)


class Session:
    """
    One client-facing conversation bound to one backend process.

    All fields are touched only from the event loop; a session never
    reaches into another session's state.
    """

    def __init__(self, session_id: str, max_buffer_bytes: int = 10 * 1024 * 1024):
        self.id = session_id
        self.process: Optional[ProcessHandle] = None
        self.decoder = FrameDecoder(max_buffer_bytes, label=session_id)
        self.pending = PendingRequests(label=session_id)
        self.stream_sink: Optional[StreamSink] = None
        self.connected = False

    @property
    def buffer(self) -> bytes:
        """Unterminated backend output carried over to the next chunk."""
        return self.decoder.buffered

    def feed(self, data: bytes) -> None:
        """Decode a stdout chunk and dispatch every completed message in order."""
        try:
            messages = self.decoder.feed(data)
        except BufferOverflowError as e:
            logger.error(f"Session {self.id}: {e}; discarding unterminated output")
            messages = e.messages

        for message in messages:
            self.dispatch(message)

    def dispatch(self, message: Dict[str, Any]) -> None:
        """
        Route one backend message.

        The pending waiter and the SSE stream are independent: a reply that
        satisfies a request is also pushed to an attached stream.
        """
        self.pending.resolve(message)
        push(self, message)

    def send(self, message: Dict[str, Any]) -> bool:
        """Write a message to the backend's stdin (fire-and-forget)."""
        if self.process is None:
            logger.error(f"Session {self.id} has no backend process")
            return False
        logger.debug(f"Sending to stdio for session {self.id}: method={message.get('method')} id={message.get('id')}")
        return self.process.write(encode_frame(message))

    def close_stream(self) -> None:
        if self.stream_sink is not None:
            self.stream_sink.close()
            self.stream_sink = None


class SessionStore:
    def __init__(self, config: BackendConfig):
        """
        Initialize session store.

        Args:
            config: Backend command, arguments and limits used for every
                spawned session
        """
        self.config = config
        self._sessions: Dict[str, Session] = {}
        self._create_lock = asyncio.Lock()

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str) -> Optional[Session]:
        """
        Get a session.

        Args:
            session_id: Session identifier

        Returns:
            Session or None if not found
        """
        return self._sessions.get(session_id)

    def list_sessions(self) -> List[Session]:
        return list(self._sessions.values())

    async def create_session(self, session_id: str) -> Session:
        """
        Spawn a backend process and register a session for it.

        Args:
            session_id: Identifier to store the session under. A dead
                session with the same id is replaced.

        Returns:
            Connected session

        Raises:
            SpawnError: The process could not be started; nothing is stored
        """
        logger.debug(f"Creating new MCP session: {session_id}")
        session = Session(session_id, max_buffer_bytes=self.config.max_buffer_bytes)

        session.process = await ProcessHandle.spawn(
            self.config.command,
            self.config.args,
            label=session_id,
            on_stdout=session.feed,
            on_exit=lambda code: self._on_exit(session, code),
            fatal_stderr_patterns=self.config.fatal_stderr_patterns,
        )

        # The protocol's own initialize exchange is relayed like any other message
        session.connected = True
        self._sessions[session_id] = session
        return session

    async def ensure_session(self, session_id: str, require_connected: bool = True) -> Session:
        """
        Get a session, creating it on first use.

        Args:
            session_id: Session identifier
            require_connected: Replace a stored session whose backend is gone

        Returns:
            Stored session

        Raises:
            SpawnError: A new session was needed and could not be created
        """
        session = self._sessions.get(session_id)
        if session is not None and (session.connected or not require_connected):
            return session

        # Concurrent first requests for one id must spawn a single process
        async with self._create_lock:
            session = self._sessions.get(session_id)
            if session is not None and (session.connected or not require_connected):
                return session
            return await self.create_session(session_id)

    def _on_exit(self, session: Session, code: Optional[int]) -> None:
        session.connected = False
        session.close_stream()
        # Pending requests are left to their own timeouts
        if self._sessions.get(session.id) is session:
            del self._sessions[session.id]
            logger.info(f"Session {session.id} removed after backend exit (code={code})")

    async def end_session(self, session_id: str) -> bool:
        """
        Terminate a session's backend explicitly.

        Returns:
            True if the session existed
        """
        session = self._sessions.get(session_id)
        if session is None:
            return False

        if session.process is not None:
            await session.process.terminate()
        # No-op when the exit watcher already removed it
        self._on_exit(session, session.process.returncode if session.process else None)
        return True

    async def close(self) -> None:
        """Tear down every session: stop processes, end streams, cancel waiters."""
        sessions = list(self._sessions.values())
        self._sessions.clear()

        for session in sessions:
            session.connected = False
            session.close_stream()
            cancelled = session.pending.cancel_all()
            if cancelled:
                logger.info(f"Cancelled {cancelled} pending request(s) for session {session.id}")

        await asyncio.gather(
            *(s.process.terminate() for s in sessions if s.process is not None),
            return_exceptions=True,
        )
        logger.info(f"Closed {len(sessions)} session(s)")
