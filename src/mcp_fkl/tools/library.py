"""
Pure (non-subprocess) tools for the FusedKernelLibrary MCP Server.

This module implements:
- get_library_info: version and capability summary
- list_examples: JSON listing of example sources
- validate_code_example: heuristic check of an example file

These tools only read project files. File reads run in a worker thread so
they never block the event loop.
"""

from __future__ import annotations

import asyncio
import json
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

from mcp_fkl.context import ToolContext
from mcp_fkl.logging import get_logger
from mcp_fkl.routing import ToolResult
from mcp_fkl.sanitize import resolve_within

if TYPE_CHECKING:
    from mcp_fkl.config import AppConfig, ProjectConfig

logger = get_logger(__name__)

EXAMPLE_SUFFIXES = (".h", ".cpp", ".cu")

PREVIEW_LENGTH = 500

_VERSION_PATTERN = re.compile(
    r"PROJECT_VERSION_MAJOR\s+(\d+).*PROJECT_VERSION_MINOR\s+(\d+).*PROJECT_VERSION_REV\s+(\d+)",
    re.DOTALL,
)

README_EXAMPLE: dict[str, str] = {
    "path": "README.md",
    "type": "documentation_example",
    "directory": ".",
    "description": "Main example showing image processing pipeline",
}

LIBRARY_SUMMARY = """\
Description: C++17 implementation of GPU kernel fusion methodology
Supported Backends: CPU, CUDA
Fusion Types: Vertical, Horizontal, Backwards Vertical, Divergent Horizontal

Key Features:
- Automatic kernel fusion for GPU libraries
- CPU and CUDA backends support
- Template-based operation chaining
- Memory-efficient kernel execution
- Compatible with existing CUDA code

Build Options:
- ENABLE_CPU: CPU backend support
- ENABLE_CUDA: CUDA backend support
- BUILD_TEST: Standard tests
- BUILD_UTEST: Unit tests
- ENABLE_BENCHMARK: Benchmarking tests"""


async def read_text(path: Path) -> str:
    """Read a UTF-8 text file without blocking the event loop."""
    return await asyncio.to_thread(path.read_text, encoding="utf-8")


def parse_version(cmake_content: str) -> str:
    """
    Extract the library version from CMakeLists.txt content.

    Example:
        >>> parse_version("set(PROJECT_VERSION_MAJOR 0)\\nset(PROJECT_VERSION_MINOR 1)\\nset(PROJECT_VERSION_REV 9)")
        '0.1.9'
    """
    match = _VERSION_PATTERN.search(cmake_content)
    if match is None:
        return "Unknown"
    return ".".join(match.groups())


def _scan_examples(tests_dir: Path) -> list[dict[str, Any]]:
    if not tests_dir.is_dir():
        return []

    files = sorted(
        path.relative_to(tests_dir).as_posix()
        for path in tests_dir.rglob("*")
        if path.suffix in EXAMPLE_SUFFIXES and path.is_file()
    )
    return [{"path": f, "type": "test", "directory": "tests"} for f in files]


async def collect_examples(project: ProjectConfig) -> list[dict[str, Any]]:
    """
    Build the list of discoverable example sources.

    Scans the tests directory for *.h, *.cpp and *.cu files (an absent
    directory yields no entries) and appends the README example entry.

    Args:
        project: Project layout configuration.

    Returns:
        List of example entries.
    """
    examples = await asyncio.to_thread(_scan_examples, project.tests_path)
    examples.append(dict(README_EXAMPLE))
    return examples


async def handle_get_library_info(
    _ctx: ToolContext,
    _params: dict[str, Any],
    *,
    config: AppConfig,
) -> ToolResult:
    """Handle the get_library_info tool call."""
    try:
        cmake_content = await read_text(config.project.cmake_path)
        # The README must be readable for the checkout to count as complete
        await read_text(config.project.readme_path)
    except OSError as e:
        return ToolResult.text(f"Failed to get library info: {e}", is_error=True)

    version = parse_version(cmake_content)
    return ToolResult.text(
        f"FusedKernelLibrary Information:\n\nVersion: {version}\n{LIBRARY_SUMMARY}"
    )


async def handle_list_examples(
    _ctx: ToolContext,
    _params: dict[str, Any],
    *,
    config: AppConfig,
) -> ToolResult:
    """Handle the list_examples tool call."""
    examples = await collect_examples(config.project)
    return ToolResult.text(f"Available Examples:\n\n{json.dumps(examples, indent=2)}")


def check_example(content: str) -> dict[str, bool]:
    """
    Run the heuristic example checks.

    This is a substring check, not a C++ parser: it only looks for the
    library's include path, its namespace and an operation-chaining call.

    Args:
        content: Source text of the example.

    Returns:
        Dict with hasIncludes, hasNamespace and hasOperations flags.
    """
    return {
        "hasIncludes": "#include <fused_kernel/" in content or "fused_kernel" in content,
        "hasNamespace": "using namespace fk" in content or "fk::" in content,
        "hasOperations": ".then(" in content or "executeOperations" in content,
    }


async def handle_validate_code_example(
    ctx: ToolContext,
    params: dict[str, Any],
    *,
    config: AppConfig,
) -> ToolResult:
    """
    Handle the validate_code_example tool call.

    Args:
        ctx: The ToolContext for this request.
        params: Validated parameters:
            - examplePath: Path of the example, relative to the project root
        config: AppConfig with the project layout.

    Returns:
        ToolResult with the validation record and a content preview, or a
        not-found message.
    """
    example_path: str = params["examplePath"]
    ctx.metadata["example_path"] = example_path
    full_path = resolve_within(config.project.root, example_path)

    if full_path is None or not await asyncio.to_thread(full_path.is_file):
        logger.info(
            "Example file not found",
            extra={"request_id": ctx.request_id, "example_path": example_path},
        )
        return ToolResult.text(f"Example file not found: {example_path}", is_error=True)

    try:
        content = await read_text(full_path)
    except (OSError, UnicodeDecodeError) as e:
        return ToolResult.text(f"Validation failed: {e}", is_error=True)

    checks = check_example(content)
    validation = {
        "file": example_path,
        "valid": checks["hasIncludes"]
        and (checks["hasNamespace"] or checks["hasOperations"]),
        "checks": checks,
        "size": len(content),
    }

    preview = content[:PREVIEW_LENGTH]
    if len(content) > PREVIEW_LENGTH:
        preview += "..."

    return ToolResult.text(
        "Code Example Validation:\n\n"
        f"{json.dumps(validation, indent=2)}\n\n"
        f"Content Preview:\n{preview}"
    )
