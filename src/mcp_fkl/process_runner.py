"""
External process execution for the FusedKernelLibrary MCP Server.

Each ProcessRunner instance spawns exactly one child process from an explicit
argument vector (no shell), drains stdout and stderr into its own buffers and
settles exactly once:

- the process exits: a ProcessResult with the exit code is returned
- the timeout elapses first: the process and everything it started are
  killed, the process is reaped, and ProcessTimeoutError is raised with
  exit_code None
- the process cannot be started: ProcessSpawnError is raised

Buffers, reader tasks and the timeout all belong to the instance, so
concurrent invocations never share captured output.
"""

from __future__ import annotations

import asyncio
import os
import signal
import time
from dataclasses import dataclass
from pathlib import Path

from mcp_fkl.errors import ProcessSpawnError, ProcessTimeoutError
from mcp_fkl.logging import get_logger

logger = get_logger(__name__)

# Default timeout in seconds
DEFAULT_TIMEOUT = 30.0

_READ_CHUNK_SIZE = 65536


@dataclass(frozen=True)
class ProcessResult:
    """
    Captured outcome of one external process.

    Attributes:
        stdout: Decoded standard output.
        stderr: Decoded standard error.
        exit_code: Process exit code, or None if the process was killed.
    """

    stdout: str
    stderr: str
    exit_code: int | None

    @property
    def ok(self) -> bool:
        """Check if the process exited with code 0."""
        return self.exit_code == 0


class ProcessRunner:
    """
    Single-use runner for one external process.

    Example:
        >>> runner = ProcessRunner("cmake", ["--version"], cwd=Path("/tmp"))
        >>> result = await runner.run()
        >>> result.exit_code
        0
    """

    def __init__(
        self,
        program: str,
        args: list[str],
        *,
        cwd: Path | str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """
        Initialize a ProcessRunner.

        Args:
            program: Executable name or path.
            args: Argument vector, already sanitized by the caller.
            cwd: Working directory for the child process.
            timeout: Seconds to wait before killing the process.
        """
        self.program = program
        self.args = list(args)
        self.cwd = Path(cwd) if cwd is not None else None
        self.timeout = timeout
        self._stdout = bytearray()
        self._stderr = bytearray()
        self._started = False
        self.pid: int | None = None

    async def run(self) -> ProcessResult:
        """
        Spawn the process and wait for exactly one terminal event.

        Returns:
            ProcessResult for a process that exited on its own.

        Raises:
            ProcessSpawnError: If the process could not be started.
            ProcessTimeoutError: If the process was killed after the timeout.
            RuntimeError: If run() was already called on this instance.
        """
        if self._started:
            raise RuntimeError("ProcessRunner instances are single-use")
        self._started = True

        started_at = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                self.program,
                *self.args,
                cwd=self.cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            logger.warning(
                "Failed to spawn process",
                extra={"program": self.program, "error": str(e)},
            )
            raise ProcessSpawnError(self.program, e) from e

        self.pid = proc.pid
        logger.debug(
            "Spawned process",
            extra={"program": self.program, "argv": self.args, "pid": proc.pid},
        )

        readers = [
            asyncio.create_task(self._drain(proc.stdout, self._stdout)),
            asyncio.create_task(self._drain(proc.stderr, self._stderr)),
        ]
        try:
            await asyncio.wait_for(
                asyncio.gather(*readers, proc.wait()),
                timeout=self.timeout,
            )
        except TimeoutError as e:
            await self._kill(proc)
            for reader in readers:
                reader.cancel()
            await asyncio.gather(*readers, return_exceptions=True)
            result = self._result(None)
            logger.warning(
                "Process timed out",
                extra={"program": self.program, "timeout": self.timeout},
            )
            raise ProcessTimeoutError(self.program, self.timeout, result) from e
        except BaseException:
            # Cancelled by the caller: the child must not outlive the call
            await self._kill(proc)
            for reader in readers:
                reader.cancel()
            raise

        result = self._result(proc.returncode)
        logger.debug(
            "Process exited",
            extra={
                "program": self.program,
                "exit_code": result.exit_code,
                "duration_ms": int((time.monotonic() - started_at) * 1000),
            },
        )
        return result

    async def _drain(
        self, stream: asyncio.StreamReader | None, buffer: bytearray
    ) -> None:
        """Read a stream to EOF into this invocation's buffer."""
        if stream is None:
            return
        while True:
            chunk = await stream.read(_READ_CHUNK_SIZE)
            if not chunk:
                break
            buffer.extend(chunk)

    async def _kill(self, proc: asyncio.subprocess.Process) -> None:
        """Kill the process group led by the process and reap the process.

        The child runs in its own session, so descendants that inherited its
        pipes are killed with it and the pipes reach EOF.
        """
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except PermissionError:
            if proc.returncode is None:
                proc.kill()
        await proc.wait()

    def _result(self, exit_code: int | None) -> ProcessResult:
        return ProcessResult(
            stdout=self._stdout.decode("utf-8", errors="replace"),
            stderr=self._stderr.decode("utf-8", errors="replace"),
            exit_code=exit_code,
        )


async def run_process(
    program: str,
    args: list[str],
    *,
    cwd: Path | str | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> ProcessResult:
    """
    Run one external process with a fresh ProcessRunner.

    Args:
        program: Executable name or path.
        args: Argument vector.
        cwd: Working directory.
        timeout: Timeout in seconds.

    Returns:
        ProcessResult of the exited process.

    Raises:
        ProcessSpawnError: If the process could not be started.
        ProcessTimeoutError: If the process was killed after the timeout.
    """
    return await ProcessRunner(program, args, cwd=cwd, timeout=timeout).run()
