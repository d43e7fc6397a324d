"""Process runner - shell command execution with streamed output.

Runs one command at a time in a working directory, forwards every chunk of
stdout/stderr to an output sink as it arrives, accumulates it, and kills the
whole process tree when the wall-clock timeout expires.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
from collections.abc import Callable

from .state import ProcessResult

logger = logging.getLogger(__name__)

OutputSink = Callable[[str, str], None]

DEFAULT_TIMEOUT: float = 3600.0

# Output buffer limits (prevent unbounded memory use)
MAX_OUTPUT_BYTES: int = 5_000_000  # 5MB per stream
READ_CHUNK_SIZE: int = 4096

# Grace period for reaping a killed process tree
KILL_WAIT_SECONDS: float = 5.0


class _OutputBuffer:
    """Accumulates decoded chunks, dropping the oldest past the byte limit."""

    def __init__(self, limit: int = MAX_OUTPUT_BYTES):
        self._chunks: list[str] = []
        self._size = 0
        self._limit = limit

    def append(self, chunk: str) -> None:
        self._chunks.append(chunk)
        self._size += len(chunk)
        while self._size > self._limit and len(self._chunks) > 1:
            removed = self._chunks.pop(0)
            self._size -= len(removed)

    def getvalue(self) -> str:
        return "".join(self._chunks)


class ProcessRunner:
    """Executes shell commands with timeout and output streaming."""

    def __init__(self, chunk_size: int = READ_CHUNK_SIZE):
        self._chunk_size = chunk_size

    async def run(
        self,
        command: str,
        cwd: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        sink: OutputSink | None = None,
    ) -> ProcessResult:
        """Run a shell command to completion or timeout.

        Args:
            command: Shell command line
            cwd: Working directory
            timeout: Hard wall-clock timeout in seconds
            sink: Called with ("out"|"err", chunk) for every output chunk

        Returns:
            Process result; failed (and timed_out) if the timeout expired
        """
        logger.debug(f"Executing: {command} (cwd={cwd})")
        start_time = time.perf_counter()

        stdout = _OutputBuffer()
        stderr = _OutputBuffer()
        combined = _OutputBuffer(limit=MAX_OUTPUT_BYTES * 2)

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                start_new_session=os.name != "nt",
            )
        except OSError as e:
            # Missing working directory or shell
            logger.warning(f"Failed to start '{command}': {e}")
            return ProcessResult(
                command=command,
                exit_code=127,
                stderr=str(e),
                output=str(e),
                duration_ms=(time.perf_counter() - start_time) * 1000,
            )

        async def read_stream(
            stream: asyncio.StreamReader | None,
            name: str,
            buffer: _OutputBuffer,
        ) -> None:
            if stream is None:
                return
            while True:
                data = await stream.read(self._chunk_size)
                if not data:
                    break
                chunk = data.decode("utf-8", errors="replace")
                buffer.append(chunk)
                combined.append(chunk)
                if sink is not None:
                    sink(name, chunk)

        tasks = [
            asyncio.ensure_future(read_stream(process.stdout, "out", stdout)),
            asyncio.ensure_future(read_stream(process.stderr, "err", stderr)),
            asyncio.ensure_future(process.wait()),
        ]
        timed_out = False
        try:
            await asyncio.wait_for(asyncio.gather(*tasks), timeout=timeout)
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning(f"Process timeout after {timeout}s: {command}")
            await self._kill(process)
            notice = f"The process exceeded the timeout of {timeout} seconds.\n"
            stderr.append(notice)
            combined.append(notice)
            if sink is not None:
                sink("err", notice)
        except BaseException:
            # Cancelled, or the sink raised: never leave the process tree running
            logger.warning(f"Process interrupted, killing: {command}")
            await self._kill(process)
            raise
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        duration = (time.perf_counter() - start_time) * 1000
        return ProcessResult(
            command=command,
            exit_code=process.returncode,
            stdout=stdout.getvalue(),
            stderr=stderr.getvalue(),
            output=combined.getvalue(),
            timed_out=timed_out,
            duration_ms=duration,
        )

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        """Kill the process and everything it spawned."""
        try:
            if os.name != "nt":
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=KILL_WAIT_SECONDS)
        except asyncio.TimeoutError:
            logger.warning(f"Process {process.pid} did not exit after kill")
