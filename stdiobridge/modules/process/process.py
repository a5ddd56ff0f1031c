import asyncio
import logging
import os
from typing import Callable, Dict, List, Optional, Sequence, Set

logger = logging.getLogger(__name__)
stderr_logger = logging.getLogger("stdiobridge.backend")

READ_CHUNK_SIZE = 64 * 1024
TERMINATE_GRACE_SECONDS = 5.0
# Longer stderr lines are logged truncated
STDERR_LINE_LIMIT = 8 * 1024

OutputCallback = Callable[[bytes], None]
ExitCallback = Callable[[Optional[int]], None]


class SpawnError(Exception):
    """The backend process could not be started."""


class ProcessHandle:
    """
    A spawned backend process and its three pipes.

    Output is delivered through callbacks registered at spawn time:
    stdout chunks, stderr lines and a single exit notification.
    """

    def __init__(self, process: asyncio.subprocess.Process, label: str,
                 fatal_stderr_patterns: Sequence[str] = ()):
        self._process = process
        self.label = label
        self.fatal_stderr_patterns = list(fatal_stderr_patterns)
        self._tasks: List[asyncio.Task] = []
        self._drains: Set[asyncio.Task] = set()
        self._drain_lock = asyncio.Lock()

    @classmethod
    async def spawn(
        cls,
        command: str,
        args: Sequence[str],
        label: str,
        on_stdout: OutputCallback,
        on_exit: ExitCallback,
        env: Optional[Dict[str, str]] = None,
        fatal_stderr_patterns: Sequence[str] = (),
    ) -> "ProcessHandle":
        """
        Start the backend process.

        Args:
            command: Executable to run
            args: Arguments passed verbatim (no shell)
            label: Name used in logs, usually the session id
            on_stdout: Called with every chunk read from stdout, in order
            on_exit: Called once with the exit code after stdout is drained
            env: Extra variables layered on top of the inherited environment
            fatal_stderr_patterns: stderr substrings flagged as startup failures

        Returns:
            Running ProcessHandle

        Raises:
            SpawnError: If the executable could not be started
        """
        logger.debug(f"Spawning backend for session {label}: {command} {' '.join(args)}")
        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env={**os.environ, **(env or {})},
            )
        except (OSError, ValueError) as e:
            logger.error(f"Failed to spawn process for session {label}: {e}")
            raise SpawnError(f"Failed to spawn MCP server process: {e}") from e

        handle = cls(process, label, fatal_stderr_patterns)
        handle._start(on_stdout, on_exit)
        logger.info(f"Session {label} backend started (pid={process.pid})")
        return handle

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    @property
    def running(self) -> bool:
        return self._process.returncode is None

    def _start(self, on_stdout: OutputCallback, on_exit: ExitCallback) -> None:
        stdout_task = asyncio.create_task(self._pump_stdout(on_stdout))
        stderr_task = asyncio.create_task(self._pump_stderr())
        self._tasks = [
            stdout_task,
            stderr_task,
            asyncio.create_task(self._watch_exit(stdout_task, on_exit)),
        ]

    async def _pump_stdout(self, on_stdout: OutputCallback) -> None:
        reader = self._process.stdout
        while True:
            chunk = await reader.read(READ_CHUNK_SIZE)
            if not chunk:  # EOF
                break
            try:
                on_stdout(chunk)
            except Exception:
                logger.exception(f"Session {self.label} stdout handler failed")

    async def _pump_stderr(self) -> None:
        # Chunked reads: a line of any length must never stop the drain
        reader = self._process.stderr
        partial = bytearray()
        while True:
            chunk = await reader.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            last = chunk.rfind(b"\n")
            if last == -1:
                partial.extend(chunk)
            else:
                partial.extend(chunk[:last])
                for line in partial.split(b"\n"):
                    self._log_stderr(line)
                partial = bytearray(chunk[last + 1:])
            del partial[STDERR_LINE_LIMIT:]
        if partial:
            self._log_stderr(partial)

    def _log_stderr(self, line: bytes) -> None:
        text = line[:STDERR_LINE_LIMIT].decode("utf-8", errors="replace").rstrip()
        if not text:
            return
        stderr_logger.error(f"Session {self.label} stderr: {text}")
        if any(pattern in text for pattern in self.fatal_stderr_patterns):
            stderr_logger.error(
                f"Session {self.label} backend failed to start - check MCP_COMMAND and MCP_ARGS"
            )

    async def _watch_exit(self, stdout_task: asyncio.Task, on_exit: ExitCallback) -> None:
        code = await self._process.wait()
        # Deliver trailing output before announcing the exit
        await asyncio.gather(stdout_task, return_exceptions=True)
        logger.info(f"Session {self.label} process exited (code={code})")
        try:
            on_exit(code)
        except Exception:
            logger.exception(f"Session {self.label} exit handler failed")

    def write(self, data: bytes) -> bool:
        """
        Queue bytes for the backend's stdin.

        Failures are logged, never raised: the caller's request simply
        waits for its timeout.

        Returns:
            True if the bytes were handed to the pipe
        """
        stdin = self._process.stdin
        if stdin is None or stdin.is_closing() or not self.running:
            logger.error(f"Failed to write to stdin for session {self.label}: process not running")
            return False
        try:
            stdin.write(data)
        except (ConnectionResetError, BrokenPipeError, RuntimeError) as e:
            logger.error(f"Failed to write to stdin for session {self.label}: {e}")
            return False

        task = asyncio.create_task(self._drain())
        self._drains.add(task)
        task.add_done_callback(self._drains.discard)
        return True

    async def _drain(self) -> None:
        async with self._drain_lock:
            try:
                await self._process.stdin.drain()
            except (ConnectionResetError, BrokenPipeError) as e:
                logger.error(f"Failed to write to stdin for session {self.label}: {e}")

    async def terminate(self, timeout: float = TERMINATE_GRACE_SECONDS) -> Optional[int]:
        """
        Stop the process: SIGTERM, then SIGKILL after ``timeout`` seconds.

        Returns:
            Exit code
        """
        if self.running:
            logger.info(f"Terminating backend for session {self.label} (pid={self.pid})")
            try:
                self._process.terminate()
                await asyncio.wait_for(self._process.wait(), timeout=timeout)
            except ProcessLookupError:
                pass
            except asyncio.TimeoutError:
                logger.warning(f"Backend for session {self.label} ignored SIGTERM, killing")
                self._process.kill()
                await self._process.wait()

        await asyncio.gather(*self._tasks, return_exceptions=True)
        return self._process.returncode
