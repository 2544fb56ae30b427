"""
Subprocess Executor Module

Runs a rendering binary with:
- Independent stdout/stderr capture
- Debug-level streaming of both streams to the log
- Timeout management
- Kill-on-cancel so no process outlives its request
"""

import asyncio
import logging
from typing import Optional, Sequence

from .errors import ExecutionFailed

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024


class OutputSink:
    """
    Fan-out writer for one output stream of a subprocess.

    Every chunk is appended to an in-memory buffer and also emitted to the
    debug log. The log side never affects what ends up in the buffer.
    """

    def __init__(self, command: str, stream: str):
        self.command = command
        self.stream = stream
        self._buffer = bytearray()

    def write(self, chunk: bytes) -> int:
        self._buffer.extend(chunk)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Command output",
                extra={
                    "command": self.command,
                    "stream": self.stream,
                    "output": chunk.decode("utf-8", errors="replace"),
                },
            )
        return len(chunk)

    def getvalue(self) -> bytes:
        return bytes(self._buffer)

    def text(self) -> str:
        return self._buffer.decode("utf-8", errors="replace")


async def _pump(reader: asyncio.StreamReader, sink: OutputSink) -> None:
    """Copy a subprocess pipe into its sink until EOF."""
    while True:
        chunk = await reader.read(READ_CHUNK_SIZE)
        if not chunk:
            return
        sink.write(chunk)


async def _kill(process: asyncio.subprocess.Process) -> None:
    """Kill the process if it is still running and reap it."""
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


def _exit_description(returncode: int) -> str:
    if returncode < 0:
        return f"killed by signal {-returncode}"
    return f"exit status {returncode}"


async def run_command(
    command: str,
    args: Sequence[str],
    timeout: Optional[float] = None,
) -> bytes:
    """
    Run ``command`` with ``args`` and return its captured stdout.

    The process lifetime is bound to the awaiting task: if the task is
    cancelled, or ``timeout`` seconds elapse, the process is killed and
    reaped before control returns.

    Args:
        command: Binary name or path
        args: Arguments, passed verbatim (no shell)
        timeout: Optional limit in seconds

    Returns:
        Captured stdout bytes

    Raises:
        ExecutionFailed: binary could not start, exited non-zero, or timed out.
            Carries the captured stderr.
        asyncio.CancelledError: the awaiting task was cancelled; the process
            has already been killed.
    """
    args = list(args)
    log_context = {"command": command, "command_args": args}
    logger.debug("Running command", extra=log_context)

    stdout = OutputSink(command, "stdout")
    stderr = OutputSink(command, "stderr")

    try:
        process = await asyncio.create_subprocess_exec(
            command,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.error(f"Failed to start {command}: {e}", extra=log_context)
        raise ExecutionFailed(f"failed to execute {command}", cause=e)

    try:
        await asyncio.wait_for(
            asyncio.gather(
                _pump(process.stdout, stdout),
                _pump(process.stderr, stderr),
                process.wait(),
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        await _kill(process)
        logger.error(
            f"Command timed out after {timeout:g}s",
            extra={**log_context, "stderr": stderr.text()},
        )
        raise ExecutionFailed(
            f"failed to execute {command}: timed out after {timeout:g}s: {stderr.text()}",
            stderr=stderr.text(),
        )
    except asyncio.CancelledError:
        await _kill(process)
        logger.warning("Command cancelled, process killed", extra=log_context)
        raise

    if process.returncode != 0:
        status = _exit_description(process.returncode)
        logger.error(
            f"Failed to execute: {status}",
            extra={**log_context, "stderr": stderr.text()},
        )
        raise ExecutionFailed(
            f"failed to execute {command}: {status}: {stderr.text()}",
            stderr=stderr.text(),
        )

    return stdout.getvalue()
