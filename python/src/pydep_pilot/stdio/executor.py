"""
Command Executor

Runs an external executable as an asyncio subprocess, accumulating its
output, mirroring it to the diagnostic log and killing it when the caller's
cancellation token fires.
"""

import asyncio

from ..cancellation import CancellationToken
from ..config import pilot_logger
from ..errors import NonZeroExit, OperationCancelled, SpawnFailed
from .diagnostics import DiagnosticLog

WARNING_MARKER = "WARNING"
CHUNK_SIZE = 65536


async def _iter_lines(stream: asyncio.StreamReader):
    """
    Yield lines of any length.

    `pip list --format json` prints the whole listing on one line; lines are
    not bounded by the StreamReader limit.
    """
    buffer = bytearray()
    while True:
        chunk = await stream.read(CHUNK_SIZE)
        if not chunk:
            break
        buffer.extend(chunk)
        end = buffer.rfind(b"\n")
        if end < 0:
            continue
        complete = bytes(buffer[:end + 1])
        del buffer[:end + 1]
        for line in complete.split(b"\n")[:-1]:
            yield line + b"\n"
    if buffer:
        yield bytes(buffer)


class CommandExecutor:
    """Executes external commands with cooperative cancellation."""

    def __init__(self, diagnostics: DiagnosticLog | None = None):
        self.diagnostics = diagnostics or DiagnosticLog()

    async def execute(
        self,
        executable: str,
        args: list[str],
        token: CancellationToken | None = None
    ) -> str:
        """
        Run a command and return its standard output.

        Args:
            executable: Program to run
            args: Command arguments
            token: Cancellation token; when it fires the process is killed

        Returns:
            Accumulated standard output

        Raises:
            SpawnFailed: If the process could not be started
            NonZeroExit: If the process exited with a nonzero code
            OperationCancelled: If the token fired while the process ran
        """
        self.diagnostics.append_line(f"exec {executable} {' '.join(args)}")

        if token is not None:
            token.raise_if_cancelled()

        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            self.diagnostics.append_line(f"Process error: {e}", level="ERROR")
            raise SpawnFailed(
                f"Failed to execute {executable}: {e}. Make sure Python is installed and selected."
            ) from e

        unregister = None
        if token is not None:
            unregister = token.on_cancel(lambda: self._kill(process))

        stdout_lines: list[str] = []
        stderr_lines: list[str] = []
        try:
            await asyncio.gather(
                self._read_stdout(process.stdout, stdout_lines),
                self._read_stderr(process.stderr, stderr_lines)
            )
            code = await process.wait()
        except BaseException:
            self._kill(process)
            raise
        finally:
            if unregister:
                unregister()

        self.diagnostics.append_line("")

        if token is not None and token.cancelled:
            raise OperationCancelled(f"{executable} cancelled")

        if code != 0:
            raise NonZeroExit(code, "".join(stderr_lines))
        return "".join(stdout_lines)

    async def _read_stdout(self, stream: asyncio.StreamReader, sink: list[str]):
        """Read stdout from the process."""
        async for raw in _iter_lines(stream):
            line = raw.decode("utf-8", errors="replace")
            self.diagnostics.append_line(line.rstrip("\n"))
            sink.append(line)

    async def _read_stderr(self, stream: asyncio.StreamReader, sink: list[str]):
        """Read stderr; warning lines are mirrored but not treated as errors."""
        async for raw in _iter_lines(stream):
            line = raw.decode("utf-8", errors="replace")
            if line.startswith(WARNING_MARKER):
                self.diagnostics.append_line(line.rstrip("\n"), level="WARNING")
                continue
            self.diagnostics.append_line(line.rstrip("\n"))
            sink.append(line)

    def _kill(self, process: asyncio.subprocess.Process):
        if process.returncode is not None:
            return
        self.diagnostics.append_line("cancel command")
        try:
            process.kill()
        except ProcessLookupError:
            pilot_logger.debug(f"Process {process.pid} already exited")
