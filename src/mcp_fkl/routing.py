"""
Tool catalog for the FusedKernelLibrary MCP Server.

This module provides:
- ToolKind: the closed enumeration of tools the server exposes
- ParameterSpec / ToolDescriptor: immutable input contracts
- TextContent / ToolResult: the content payload every tool call returns
- ToolRegistry: the static descriptor table bound to one handler per ToolKind

Adding or removing a tool means editing ToolKind, TOOL_DESCRIPTORS and the
handler table together; ToolRegistry refuses to start if they disagree.
"""

from __future__ import annotations

import enum
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any


class ToolKind(enum.Enum):
    """Every tool the server exposes, valued by its wire name."""

    BUILD = "build_library"
    TEST = "run_tests"
    INFO = "get_library_info"
    CHECK_ACCELERATOR = "check_cuda_support"
    LIST_EXAMPLES = "list_examples"
    VALIDATE_EXAMPLE = "validate_code_example"


# JSON Schema type name -> accepted Python types
PARAMETER_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "boolean": (bool,),
}


@dataclass(frozen=True)
class ParameterSpec:
    """
    Input contract for a single tool parameter.

    Attributes:
        name: Argument name as sent by the caller.
        type: JSON Schema type ("string" or "boolean").
        description: Human-readable description.
        enum: Allowed values, or None for any value of the type.
        default: Value used when the argument is omitted.
        required: Whether the caller must supply the argument.
    """

    name: str
    type: str
    description: str
    enum: tuple[Any, ...] | None = None
    default: Any = None
    required: bool = False

    def __post_init__(self) -> None:
        if self.type not in PARAMETER_TYPES:
            raise ValueError(f"Unsupported parameter type: {self.type}")

    def to_schema(self) -> dict[str, Any]:
        """Render the parameter as a JSON Schema property."""
        schema: dict[str, Any] = {"type": self.type}
        if self.enum is not None:
            schema["enum"] = list(self.enum)
        if self.default is not None:
            schema["default"] = self.default
        schema["description"] = self.description
        return schema


@dataclass(frozen=True)
class ToolDescriptor:
    """
    Immutable description of one tool.

    Attributes:
        kind: The ToolKind this descriptor describes.
        description: Human-readable description.
        parameters: Input contract, one ParameterSpec per parameter.
    """

    kind: ToolKind
    description: str
    parameters: tuple[ParameterSpec, ...] = ()

    @property
    def name(self) -> str:
        """Wire name of the tool."""
        return self.kind.value

    def input_schema(self) -> dict[str, Any]:
        """Render the input contract as a JSON Schema object."""
        schema: dict[str, Any] = {
            "type": "object",
            "properties": {p.name: p.to_schema() for p in self.parameters},
        }
        required = [p.name for p in self.parameters if p.required]
        if required:
            schema["required"] = required
        return schema

    def to_dict(self) -> dict[str, Any]:
        """Render the descriptor as an MCP tools/list entry."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema(),
        }


@dataclass(frozen=True)
class TextContent:
    """A single text content block."""

    text: str
    type: str = "text"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True)
class ToolResult:
    """
    Result of a tool call.

    Attributes:
        content: Ordered content blocks; never empty.
        is_error: True when the text describes an execution failure.
    """

    content: tuple[TextContent, ...] = field(default_factory=tuple)
    is_error: bool = False

    @classmethod
    def text(cls, text: str, *, is_error: bool = False) -> ToolResult:
        """Build a result holding a single text block."""
        return cls(content=(TextContent(text),), is_error=is_error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": [block.to_dict() for block in self.content],
            "isError": self.is_error,
        }


# Type alias for tool handlers:
#   async def handler(ctx: ToolContext, args: dict, *, config: AppConfig) -> ToolResult
ToolHandler = Callable[..., Awaitable[ToolResult]]


BUILD_TYPES = ("Debug", "Release")
TEST_TYPES = ("all", "unit", "standard", "benchmark")

TOOL_DESCRIPTORS: tuple[ToolDescriptor, ...] = (
    ToolDescriptor(
        kind=ToolKind.BUILD,
        description="Build the FusedKernelLibrary using CMake",
        parameters=(
            ParameterSpec(
                name="buildType",
                type="string",
                enum=BUILD_TYPES,
                default="Release",
                description="Build configuration type",
            ),
            ParameterSpec(
                name="enableCuda",
                type="boolean",
                default=True,
                description="Enable CUDA support",
            ),
            ParameterSpec(
                name="enableCpu",
                type="boolean",
                default=True,
                description="Enable CPU support",
            ),
        ),
    ),
    ToolDescriptor(
        kind=ToolKind.TEST,
        description="Run the FusedKernelLibrary test suite",
        parameters=(
            ParameterSpec(
                name="testType",
                type="string",
                enum=TEST_TYPES,
                default="all",
                description="Type of tests to run",
            ),
            ParameterSpec(
                name="verbose",
                type="boolean",
                default=False,
                description="Enable verbose output",
            ),
        ),
    ),
    ToolDescriptor(
        kind=ToolKind.INFO,
        description="Get information about the FusedKernelLibrary capabilities",
    ),
    ToolDescriptor(
        kind=ToolKind.CHECK_ACCELERATOR,
        description="Check if CUDA is available and supported",
    ),
    ToolDescriptor(
        kind=ToolKind.LIST_EXAMPLES,
        description="List available code examples in the library",
    ),
    ToolDescriptor(
        kind=ToolKind.VALIDATE_EXAMPLE,
        description="Validate a code example against the library API",
        parameters=(
            ParameterSpec(
                name="examplePath",
                type="string",
                required=True,
                description="Path to the example file to validate",
            ),
        ),
    ),
)


class ToolRegistry:
    """
    Static catalog binding each ToolDescriptor to its handler.

    Example:
        >>> registry = ToolRegistry()
        >>> registry.get_descriptor("build_library").kind
        <ToolKind.BUILD: 'build_library'>
    """

    def __init__(
        self,
        handlers: Mapping[ToolKind, ToolHandler] | None = None,
        descriptors: tuple[ToolDescriptor, ...] = TOOL_DESCRIPTORS,
    ) -> None:
        """
        Initialize the registry.

        Args:
            handlers: Handler per ToolKind. Defaults to the built-in handlers.
            descriptors: Tool descriptors. Defaults to TOOL_DESCRIPTORS.

        Raises:
            ValueError: If names are duplicated or a kind lacks a descriptor
                or a handler.
        """
        if handlers is None:
            from mcp_fkl.tools import TOOL_HANDLERS

            handlers = TOOL_HANDLERS

        self._descriptors: dict[str, ToolDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.name in self._descriptors:
                raise ValueError(f"Tool '{descriptor.name}' is already registered")
            self._descriptors[descriptor.name] = descriptor

        described = {d.kind for d in descriptors}
        missing = set(ToolKind) - described
        if missing:
            raise ValueError(
                f"Tools without a descriptor: {sorted(k.value for k in missing)}"
            )
        unbound = described - set(handlers)
        if unbound:
            raise ValueError(
                f"Tools without a handler: {sorted(k.value for k in unbound)}"
            )

        self._handlers: dict[ToolKind, ToolHandler] = dict(handlers)

    def get_descriptor(self, name: str) -> ToolDescriptor | None:
        """Look up a descriptor by wire name."""
        return self._descriptors.get(name)

    def get_handler(self, kind: ToolKind) -> ToolHandler:
        """Return the handler bound to a ToolKind."""
        return self._handlers[kind]

    def list_descriptors(self) -> list[ToolDescriptor]:
        """Return all descriptors in catalog order."""
        return list(self._descriptors.values())

    def list_tools(self) -> list[str]:
        """Return all tool names in catalog order."""
        return list(self._descriptors)

    def __contains__(self, name: str) -> bool:
        return name in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)

