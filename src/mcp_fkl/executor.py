"""
Tool execution for the FusedKernelLibrary MCP Server.

ToolExecutor turns a tools/call request into exactly one ToolResult:

1. Look up the descriptor by name (unknown name -> UnknownToolError).
2. Validate supplied arguments against the descriptor's contract and fill in
   defaults (violations -> InvalidArgumentError).
3. Dispatch to the handler bound to the descriptor's ToolKind.

Execution errors that escape a handler are rendered as error text inside the
result. Anything else propagates to the router, which reports it as an
internal error.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from mcp_fkl.context import ToolContext
from mcp_fkl.errors import ExecutionError, InvalidArgumentError, UnknownToolError
from mcp_fkl.logging import get_logger
from mcp_fkl.routing import PARAMETER_TYPES, ToolDescriptor, ToolRegistry, ToolResult

if TYPE_CHECKING:
    from mcp_fkl.config import AppConfig

logger = get_logger(__name__)


def validate_arguments(
    descriptor: ToolDescriptor,
    arguments: dict[str, Any] | None,
) -> dict[str, Any]:
    """
    Validate call arguments against a tool's input contract.

    Args:
        descriptor: The tool being called.
        arguments: Arguments supplied by the caller (None means none).

    Returns:
        A new dictionary holding every declared parameter that has a value,
        with defaults filled in for omitted optional parameters.

    Raises:
        InvalidArgumentError: If arguments is not an object, a required
            argument is missing, or a value has the wrong type or is not one
            of the allowed values.
    """
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise InvalidArgumentError(
            "Tool arguments must be an object",
            details={"tool": descriptor.name, "type": type(arguments).__name__},
        )

    validated: dict[str, Any] = {}
    for spec in descriptor.parameters:
        if spec.name not in arguments or arguments[spec.name] is None:
            if spec.required:
                raise InvalidArgumentError(
                    f"{spec.name} is required",
                    details={"tool": descriptor.name, "parameter": spec.name},
                )
            if spec.default is not None:
                validated[spec.name] = spec.default
            continue

        value = arguments[spec.name]
        if not isinstance(value, PARAMETER_TYPES[spec.type]):
            raise InvalidArgumentError(
                f"{spec.name} must be a {spec.type}",
                details={
                    "tool": descriptor.name,
                    "parameter": spec.name,
                    "type": type(value).__name__,
                },
            )

        if spec.enum is not None and value not in spec.enum:
            raise InvalidArgumentError(
                f"Invalid {spec.name}: {value}. Must be one of: {', '.join(map(str, spec.enum))}",
                details={
                    "tool": descriptor.name,
                    "parameter": spec.name,
                    "value": value,
                    "valid": list(spec.enum),
                },
            )

        validated[spec.name] = value

    unknown = set(arguments) - {spec.name for spec in descriptor.parameters}
    if unknown:
        logger.debug(
            "Ignoring unknown tool arguments",
            extra={"tool": descriptor.name, "arguments": sorted(unknown)},
        )

    return validated


class ToolExecutor:
    """
    Validates and dispatches tool calls.

    Example:
        >>> executor = ToolExecutor(ToolRegistry(), config)
        >>> result = await executor.call("get_library_info", {})
        >>> result.content[0].text.splitlines()[0]
        'FusedKernelLibrary Information:'
    """

    def __init__(self, registry: ToolRegistry, config: AppConfig) -> None:
        self.registry = registry
        self.config = config

    async def call(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        *,
        request_id: str | int | None = None,
    ) -> ToolResult:
        """
        Execute one tool call.

        Args:
            name: Wire name of the tool.
            arguments: Caller-supplied arguments.
            request_id: JSON-RPC request id, for logging.

        Returns:
            The tool's result. Execution failures are encoded as text with
            is_error set.

        Raises:
            UnknownToolError: If no tool has this name.
            InvalidArgumentError: If the arguments violate the contract.
        """
        descriptor = self.registry.get_descriptor(name)
        if descriptor is None:
            raise UnknownToolError(name)

        args = validate_arguments(descriptor, arguments)
        handler = self.registry.get_handler(descriptor.kind)
        ctx = ToolContext(tool_name=name, request_id=request_id)

        started_at = time.monotonic()
        try:
            result = await handler(ctx, args, config=self.config)
        except ExecutionError as e:
            result = ToolResult.text(f"{name} failed: {e.message}", is_error=True)

        if not result.content:
            result = ToolResult.text(
                f"{name} completed with no output", is_error=result.is_error
            )

        logger.info(
            "Tool call completed",
            extra={
                **ctx.to_dict(),
                "is_error": result.is_error,
                "duration_ms": int((time.monotonic() - started_at) * 1000),
            },
        )
        return result
