"""
Tests for the process_runner module.

This test module validates:
- Exit code and output capture for processes that exit on their own
- Timeout handling: the child and its descendants are killed, the child is
  reaped and reported with no exit code
- Spawn failures
- Independence of concurrent invocations
"""

from __future__ import annotations

import asyncio
import os
import sys
import time
from pathlib import Path

import pytest

from mcp_fkl.errors import ProcessSpawnError, ProcessTimeoutError
from mcp_fkl.process_runner import ProcessResult, ProcessRunner, run_process

PYTHON = sys.executable

# Child that starts a sleeping grandchild holding the same stdout and stderr
SPAWNS_GRANDCHILD = (
    "import subprocess, sys, time\n"
    "grandchild = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(30)'])\n"
    "print(grandchild.pid, flush=True)\n"
    "time.sleep(30)\n"
)


def _pid_alive(pid: int) -> bool:
    """Return True if pid names a live (non-zombie) process."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    try:
        stat = Path(f"/proc/{pid}/stat").read_text()
    except OSError:
        return True
    return stat.rsplit(")", 1)[1].split()[0] != "Z"


async def _wait_gone(pid: int, timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not _pid_alive(pid):
            return True
        await asyncio.sleep(0.05)
    return not _pid_alive(pid)


class TestProcessResult:
    """Tests for ProcessResult."""

    def test_ok_only_for_zero(self) -> None:
        assert ProcessResult("", "", 0).ok
        assert not ProcessResult("", "", 1).ok
        assert not ProcessResult("", "", None).ok


@pytest.mark.integration
class TestProcessRunner:
    """Tests for ProcessRunner with real child processes."""

    @pytest.mark.asyncio
    async def test_exit_zero_captures_stdout(self, tmp_path: Path) -> None:
        """Exit code 0 and stdout equal to the emitted bytes."""
        result = await run_process(
            PYTHON,
            ["-c", "import sys; sys.stdout.write('hello\\nworld')"],
            cwd=tmp_path,
            timeout=10,
        )

        assert result.exit_code == 0
        assert result.stdout == "hello\nworld"
        assert result.stderr == ""

    @pytest.mark.asyncio
    async def test_stdout_and_stderr_kept_apart(self, tmp_path: Path) -> None:
        result = await run_process(
            PYTHON,
            ["-c", "import sys; print('out'); print('err', file=sys.stderr)"],
            cwd=tmp_path,
            timeout=10,
        )

        assert result.stdout.strip() == "out"
        assert result.stderr.strip() == "err"

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_a_result(self, tmp_path: Path) -> None:
        result = await run_process(
            PYTHON,
            ["-c", "import sys; sys.stderr.write('bad'); sys.exit(3)"],
            cwd=tmp_path,
            timeout=10,
        )

        assert result.exit_code == 3
        assert result.stderr == "bad"

    @pytest.mark.asyncio
    async def test_runs_in_working_directory(self, tmp_path: Path) -> None:
        result = await run_process(
            PYTHON,
            ["-c", "import os; print(os.getcwd())"],
            cwd=tmp_path,
            timeout=10,
        )

        assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()

    @pytest.mark.asyncio
    async def test_arguments_are_not_shell_interpreted(self, tmp_path: Path) -> None:
        result = await run_process(
            PYTHON,
            ["-c", "import sys; print(sys.argv[1])", "$(echo hi); ls *"],
            cwd=tmp_path,
            timeout=10,
        )

        assert result.stdout.strip() == "$(echo hi); ls *"

    @pytest.mark.asyncio
    async def test_large_output(self, tmp_path: Path) -> None:
        result = await run_process(
            PYTHON,
            ["-c", "import sys; sys.stdout.write('x' * 500000)"],
            cwd=tmp_path,
            timeout=20,
        )

        assert len(result.stdout) == 500000

    @pytest.mark.asyncio
    async def test_timeout_kills_and_reaps(self, tmp_path: Path) -> None:
        """A sleeping child is killed shortly after the timeout."""
        runner = ProcessRunner(
            PYTHON,
            ["-c", "import sys, time; print('started', flush=True); time.sleep(30)"],
            cwd=tmp_path,
            timeout=0.5,
        )

        started = time.monotonic()
        with pytest.raises(ProcessTimeoutError) as exc_info:
            await runner.run()
        elapsed = time.monotonic() - started

        assert elapsed < 5
        assert exc_info.value.result.exit_code is None
        assert exc_info.value.error_code == "timeout"
        assert runner.pid is not None
        # Reaped: the pid no longer exists
        with pytest.raises(ProcessLookupError):
            os.kill(runner.pid, 0)

    @pytest.mark.asyncio
    async def test_timeout_kills_grandchildren(self, tmp_path: Path) -> None:
        """Descendants holding the output pipes do not delay the timeout."""
        runner = ProcessRunner(
            PYTHON, ["-c", SPAWNS_GRANDCHILD], cwd=tmp_path, timeout=1.0
        )

        started = time.monotonic()
        with pytest.raises(ProcessTimeoutError) as exc_info:
            await runner.run()
        elapsed = time.monotonic() - started

        assert elapsed < 3
        grandchild_pid = int(exc_info.value.result.stdout.split()[0])
        assert await _wait_gone(grandchild_pid)

    @pytest.mark.asyncio
    async def test_cancel_kills_grandchildren(self, tmp_path: Path) -> None:
        """Cancelling the caller kills the whole process group."""
        runner = ProcessRunner(
            PYTHON, ["-c", SPAWNS_GRANDCHILD], cwd=tmp_path, timeout=30.0
        )
        task = asyncio.create_task(runner.run())

        # Wait for the grandchild pid to be printed
        deadline = time.monotonic() + 5
        while not runner._stdout.strip() and time.monotonic() < deadline:
            await asyncio.sleep(0.05)
        grandchild_pid = int(runner._stdout.split()[0])

        started = time.monotonic()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert time.monotonic() - started < 3
        assert runner.pid is not None
        assert await _wait_gone(runner.pid)
        assert await _wait_gone(grandchild_pid)


    @pytest.mark.asyncio
    async def test_timeout_keeps_partial_output(self, tmp_path: Path) -> None:
        with pytest.raises(ProcessTimeoutError) as exc_info:
            await run_process(
                PYTHON,
                ["-c", "import time; print('partial', flush=True); time.sleep(30)"],
                cwd=tmp_path,
                timeout=2,
            )

        assert "partial" in exc_info.value.result.stdout

    @pytest.mark.asyncio
    async def test_exit_before_timeout_wins(self, tmp_path: Path) -> None:
        result = await run_process(
            PYTHON,
            ["-c", "print('fast')"],
            cwd=tmp_path,
            timeout=10,
        )

        assert result.exit_code == 0
        # Let any stray timer fire; nothing should change or raise
        await asyncio.sleep(0.1)
        assert result.stdout.strip() == "fast"

    @pytest.mark.asyncio
    async def test_spawn_failure(self, tmp_path: Path) -> None:
        with pytest.raises(ProcessSpawnError) as exc_info:
            await run_process(
                "definitely-not-a-real-program-fkl",
                [],
                cwd=tmp_path,
                timeout=5,
            )

        assert exc_info.value.error_code == "spawn_failed"
        assert exc_info.value.details["program"] == "definitely-not-a-real-program-fkl"

    @pytest.mark.asyncio
    async def test_runner_is_single_use(self, tmp_path: Path) -> None:
        runner = ProcessRunner(PYTHON, ["-c", "pass"], cwd=tmp_path, timeout=10)
        await runner.run()

        with pytest.raises(RuntimeError):
            await runner.run()

    @pytest.mark.asyncio
    async def test_concurrent_runs_have_independent_buffers(
        self, tmp_path: Path
    ) -> None:
        """Interleaved writers never leak output into each other's capture."""
        script = (
            "import sys, time\n"
            "tag = sys.argv[1]\n"
            "for i in range(20):\n"
            "    print(tag, i, flush=True)\n"
            "    print(tag, 'err', i, file=sys.stderr, flush=True)\n"
            "    time.sleep(0.01)\n"
        )
        tags = [f"proc{i}" for i in range(5)]

        results = await asyncio.gather(
            *(
                run_process(PYTHON, ["-c", script, tag], cwd=tmp_path, timeout=20)
                for tag in tags
            )
        )

        for tag, result in zip(tags, results, strict=True):
            out_lines = result.stdout.splitlines()
            err_lines = result.stderr.splitlines()
            assert len(out_lines) == 20
            assert len(err_lines) == 20
            assert all(line.startswith(f"{tag} ") for line in out_lines)
            assert all(line.startswith(f"{tag} err") for line in err_lines)
