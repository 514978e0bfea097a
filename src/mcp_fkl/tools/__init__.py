"""
MCP tools package for the FusedKernelLibrary MCP Server.

Modules:
- build: subprocess-backed tools (build_library, run_tests, check_cuda_support)
- library: pure tools (get_library_info, list_examples, validate_code_example)

TOOL_HANDLERS is the closed dispatch table: one handler per ToolKind.
"""

from mcp_fkl.routing import ToolHandler, ToolKind
from mcp_fkl.tools.build import (
    handle_build_library,
    handle_check_cuda_support,
    handle_run_tests,
)
from mcp_fkl.tools.library import (
    handle_get_library_info,
    handle_list_examples,
    handle_validate_code_example,
)

TOOL_HANDLERS: dict[ToolKind, ToolHandler] = {
    ToolKind.BUILD: handle_build_library,
    ToolKind.TEST: handle_run_tests,
    ToolKind.INFO: handle_get_library_info,
    ToolKind.CHECK_ACCELERATOR: handle_check_cuda_support,
    ToolKind.LIST_EXAMPLES: handle_list_examples,
    ToolKind.VALIDATE_EXAMPLE: handle_validate_code_example,
}

__all__ = [
    "TOOL_HANDLERS",
    "handle_build_library",
    "handle_check_cuda_support",
    "handle_get_library_info",
    "handle_list_examples",
    "handle_run_tests",
    "handle_validate_code_example",
]
