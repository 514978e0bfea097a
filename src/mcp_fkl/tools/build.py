"""
Subprocess-backed tools for the FusedKernelLibrary MCP Server.

This module implements the tools that drive the native toolchain:
- build_library: CMake configure + build
- run_tests: CTest in an existing build directory
- check_cuda_support: probe nvcc and nvidia-smi

Every argument vector is composed from sanitized values and run through a
fresh ProcessRunner. Nonzero exits, timeouts and spawn failures are rendered
as text in the ToolResult; they never become protocol errors.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Any

from mcp_fkl.context import ToolContext
from mcp_fkl.errors import ExecutionError, FailedPreconditionError, ProcessFailedError
from mcp_fkl.logging import get_logger
from mcp_fkl.process_runner import ProcessResult, run_process
from mcp_fkl.routing import ToolResult
from mcp_fkl.sanitize import sanitize_build_type, sanitize_flag, sanitize_path

if TYPE_CHECKING:
    from mcp_fkl.config import AppConfig

logger = get_logger(__name__)

# CTest always runs against the Release configuration
TEST_BUILD_CONFIG = "Release"

BUILD_DIR_MISSING_MESSAGE = "Build directory not found. Please build the library first."


def _on_off(flag: bool) -> str:
    return "ON" if flag else "OFF"


async def _run_step(
    program: str,
    args: list[str],
    *,
    cwd: Path,
    timeout: float,
) -> ProcessResult:
    """Run one pipeline step, treating a nonzero exit as a failure."""
    result = await run_process(program, args, cwd=cwd, timeout=timeout)
    if not result.ok:
        raise ProcessFailedError(program, result)
    return result


def cmake_configure_args(
    build_dir: Path,
    project_root: Path,
    build_type: str,
    enable_cuda: bool,
    enable_cpu: bool,
) -> list[str]:
    """
    Compose the argument vector for ``cmake`` configure.

    Example:
        >>> cmake_configure_args(Path("/p/build"), Path("/p"), "Debug", False, True)
        ['-B', '/p/build', '-DCMAKE_BUILD_TYPE=Debug', '-DENABLE_CUDA=OFF', '-DENABLE_CPU=ON', '/p']
    """
    return [
        "-B",
        sanitize_path(str(build_dir)),
        f"-DCMAKE_BUILD_TYPE={sanitize_build_type(build_type)}",
        f"-DENABLE_CUDA={_on_off(enable_cuda)}",
        f"-DENABLE_CPU={_on_off(enable_cpu)}",
        sanitize_path(str(project_root)),
    ]


def cmake_build_args(build_dir: Path, build_type: str) -> list[str]:
    """Compose the argument vector for ``cmake --build``."""
    return [
        "--build",
        sanitize_path(str(build_dir)),
        "--config",
        sanitize_build_type(build_type),
    ]


def ctest_args(test_type: str, verbose: bool) -> list[str]:
    """
    Compose the argument vector for ``ctest``.

    Example:
        >>> ctest_args("unit", True)
        ['--build-config', 'Release', '--verbose', '--tests-regex', 'unit']
    """
    args = ["--build-config", TEST_BUILD_CONFIG]
    if verbose:
        args.append("--verbose")
    if test_type != "all":
        args.extend(["--tests-regex", sanitize_flag(test_type)])
    return args


async def handle_build_library(
    ctx: ToolContext,
    params: dict[str, Any],
    *,
    config: AppConfig,
) -> ToolResult:
    """
    Handle the build_library tool call.

    Runs the CMake configure step and then the build step. The build step is
    skipped if configure fails.

    Args:
        ctx: The ToolContext for this request.
        params: Validated parameters:
            - buildType: "Debug" or "Release"
            - enableCuda: Whether to enable the CUDA backend
            - enableCpu: Whether to enable the CPU backend
        config: AppConfig with project layout and timeouts.

    Returns:
        ToolResult with both step outputs, or the failure description.
    """
    project = config.project
    build_type = sanitize_build_type(params.get("buildType"))
    ctx.metadata["build_type"] = build_type
    root = Path(sanitize_path(str(project.root)))

    logger.info(
        "Building library",
        extra={
            "request_id": ctx.request_id,
            "build_type": build_type,
            "build_dir": str(project.build_path),
        },
    )

    try:
        configure = await _run_step(
            "cmake",
            cmake_configure_args(
                project.build_path,
                project.root,
                build_type,
                params.get("enableCuda", True),
                params.get("enableCpu", True),
            ),
            cwd=root,
            timeout=config.timeouts.configure_seconds,
        )
        build = await _run_step(
            "cmake",
            cmake_build_args(project.build_path, build_type),
            cwd=root,
            timeout=config.timeouts.build_seconds,
        )
    except ExecutionError as e:
        return ToolResult.text(f"Build failed: {e.message}", is_error=True)

    return ToolResult.text(
        "Build completed successfully!\n\n"
        f"Configuration:\n{configure.stdout}\n\n"
        f"Build:\n{build.stdout}"
    )


async def handle_run_tests(
    ctx: ToolContext,
    params: dict[str, Any],
    *,
    config: AppConfig,
) -> ToolResult:
    """
    Handle the run_tests tool call.

    The build directory must already exist; this tool never builds.

    Args:
        ctx: The ToolContext for this request.
        params: Validated parameters:
            - testType: "all", "unit", "standard" or "benchmark"
            - verbose: Pass --verbose to ctest
        config: AppConfig with project layout and timeouts.

    Returns:
        ToolResult with the CTest output, or the failure description.
    """
    build_dir = Path(sanitize_path(str(config.project.build_path)))
    test_type = params.get("testType", "all")
    ctx.metadata["test_type"] = test_type

    try:
        if not await asyncio.to_thread(build_dir.is_dir):
            raise FailedPreconditionError(
                BUILD_DIR_MISSING_MESSAGE,
                details={"build_dir": str(build_dir)},
            )

        logger.info(
            "Running tests",
            extra={
                "request_id": ctx.request_id,
                "test_type": test_type,
            },
        )
        result = await _run_step(
            "ctest",
            ctest_args(test_type, params.get("verbose", False)),
            cwd=build_dir,
            timeout=config.timeouts.test_seconds,
        )
    except ExecutionError as e:
        return ToolResult.text(f"Tests failed: {e.message}", is_error=True)

    return ToolResult.text(f"Tests completed!\n\n{result.stdout}")


async def _probe(program: str, args: list[str], config: AppConfig) -> str | None:
    """Run a toolchain probe, returning its stdout or None if it is unusable."""
    try:
        result = await run_process(
            program,
            args,
            cwd=config.project.root,
            timeout=config.timeouts.probe_seconds,
        )
    except ExecutionError as e:
        logger.debug("Probe failed", extra={"program": program, "error": e.message})
        return None
    if not result.ok:
        return None
    return result.stdout


async def handle_check_cuda_support(
    _ctx: ToolContext,
    _params: dict[str, Any],
    *,
    config: AppConfig,
) -> ToolResult:
    """
    Handle the check_cuda_support tool call.

    Probes the CUDA compiler and the NVIDIA driver concurrently. Each probe
    reports independently; a missing tool is a normal outcome.
    """
    nvcc, smi = await asyncio.gather(
        _probe("nvcc", ["--version"], config),
        _probe("nvidia-smi", [], config),
    )

    lines: list[str] = []
    if nvcc is not None:
        lines.append(f"NVCC found:\n{nvcc}")
    else:
        lines.append("NVCC compiler not found")

    if smi is not None:
        lines.append(f"\nNVIDIA GPU information:\n{smi}")
    else:
        lines.append(
            "\nnvidia-smi not available (no GPU detected or drivers not installed)"
        )

    return ToolResult.text("CUDA Support Status:\n\n" + "\n".join(lines))
