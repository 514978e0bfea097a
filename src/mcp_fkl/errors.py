"""
Error types for the FusedKernelLibrary MCP Server.

This module defines the ToolError base class and its subclasses. Errors fall
into two families:

- Protocol errors (unknown tool, invalid argument, unknown resource, internal)
  are mapped to JSON-RPC error objects at the protocol layer.
- Execution errors (timeout, spawn failure, nonzero exit, unmet precondition)
  are expected, recoverable failures of a tool's underlying operation. The
  executor renders them as text content inside a successful tool result.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from mcp_fkl.process_runner import ProcessResult


class ToolError(Exception):
    """
    Base exception class for MCP tool errors.

    Attributes:
        error_code: Internal error code string (e.g., "invalid_argument",
            "method_not_found", "timeout", "internal").
        message: Human-readable error message.
        details: Optional structured details (e.g., parameter values, context).

    Example:
        >>> raise ToolError(
        ...     error_code="invalid_argument",
        ...     message="buildType must be one of: Debug, Release",
        ...     details={"parameter": "buildType"},
        ... )
    """

    def __init__(
        self,
        error_code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.details = details or {}

    def __repr__(self) -> str:
        """Return a detailed string representation."""
        return (
            f"{self.__class__.__name__}("
            f"error_code={self.error_code!r}, "
            f"message={self.message!r}, "
            f"details={self.details!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the error to a dictionary for serialization.

        Returns:
            Dictionary with error_code, message, and details.
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Protocol errors
# =============================================================================


class UnknownToolError(ToolError):
    """Raised when a tools/call names a tool that is not in the catalog."""

    def __init__(self, name: str) -> None:
        super().__init__(
            error_code="method_not_found",
            message=f"Unknown tool: {name}",
            details={"tool": name},
        )


class InvalidArgumentError(ToolError):
    """
    Error raised when a tool receives invalid input arguments.

    Covers missing required arguments, wrong argument types and values
    outside a parameter's enumeration.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            error_code="invalid_argument", message=message, details=details
        )


class UnknownResourceError(ToolError):
    """Raised when resources/read names a URI that is not in the catalog."""

    def __init__(self, uri: str) -> None:
        super().__init__(
            error_code="invalid_resource",
            message=f"Unknown resource: {uri}",
            details={"uri": uri},
        )


class InternalError(ToolError):
    """
    Error raised for unexpected internal errors.

    Used at the router boundary to wrap exceptions that escaped a handler.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(error_code="internal", message=message, details=details)


# =============================================================================
# Execution errors
# =============================================================================


class ExecutionError(ToolError):
    """
    Base class for recoverable failures of a tool's underlying operation.

    These never become protocol errors: the executor renders them as text so
    the caller can decide what to do next.
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        *,
        error_code: str = "execution_failed",
    ) -> None:
        super().__init__(error_code=error_code, message=message, details=details)


class FailedPreconditionError(ExecutionError):
    """Raised when a tool's precondition (e.g. an existing build dir) is not met."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details, error_code="failed_precondition")


class ProcessTimeoutError(ExecutionError):
    """
    Raised when an external process outlives its timeout and is killed.

    Attributes:
        result: The partial ProcessResult; its exit_code is always None.
    """

    def __init__(self, program: str, timeout: float, result: ProcessResult) -> None:
        super().__init__(
            f"Command timeout: {program} did not finish within {timeout:g}s",
            {"program": program, "timeout_seconds": timeout},
            error_code="timeout",
        )
        self.result = result


class ProcessSpawnError(ExecutionError):
    """Raised when an external process cannot be started."""

    def __init__(self, program: str, error: OSError) -> None:
        super().__init__(
            f"Failed to start {program}: {error.strerror or error}",
            {"program": program, "errno": error.errno},
            error_code="spawn_failed",
        )


class ProcessFailedError(ExecutionError):
    """
    Raised by handlers when a process step exits with a nonzero code.

    Attributes:
        result: The completed ProcessResult.
    """

    def __init__(self, program: str, result: ProcessResult) -> None:
        super().__init__(
            f"Command failed with code {result.exit_code}: {result.stderr}",
            {"program": program, "exit_code": result.exit_code},
            error_code="nonzero_exit",
        )
        self.result = result
