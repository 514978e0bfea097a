"""
JSON-RPC 2.0 protocol handling for the FusedKernelLibrary MCP Server.

Features:
- JSON-RPC 2.0 request parsing with validation
- JSON-RPC 2.0 response formatting (success and error)
- ToolError to JSON-RPC error code mapping

Error Code Mapping:
- -32700: Parse error (malformed JSON)
- -32600: Invalid Request (malformed envelope, invalid tool arguments,
  unknown resource URI)
- -32601: Method not found (unknown method or unknown tool)
- -32602: Invalid params (params is not an object)
- -32603: Internal error (unexpected handler failure)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from mcp_fkl.errors import ToolError

# =============================================================================
# JSON-RPC Error Codes
# =============================================================================

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

ERROR_CODE_MAP: dict[str, int] = {
    "method_not_found": METHOD_NOT_FOUND,
    "invalid_argument": INVALID_REQUEST,
    "invalid_resource": INVALID_REQUEST,
    "internal": INTERNAL_ERROR,
}

# Fallback for error codes without an explicit mapping
DEFAULT_SERVER_ERROR = INTERNAL_ERROR


# =============================================================================
# Data Classes
# =============================================================================


class JSONRPCError(Exception):
    """
    Represents a JSON-RPC 2.0 error object.

    This class is both an Exception (so it can be raised) and a data container
    for JSON-RPC error information.

    Attributes:
        code: Integer error code (per JSON-RPC 2.0 spec).
        message: Human-readable error message.
        data: Optional structured error data.
    """

    def __init__(
        self,
        code: int,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_dict(self) -> dict[str, Any]:
        """Convert the error to a dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.data is not None:
            result["data"] = self.data
        return result

    def __repr__(self) -> str:
        return (
            f"JSONRPCError(code={self.code}, "
            f"message={self.message!r}, "
            f"data={self.data!r})"
        )


@dataclass
class JSONRPCRequest:
    """
    Represents a parsed JSON-RPC 2.0 request.

    Attributes:
        jsonrpc: Protocol version (must be "2.0").
        id: Request identifier (string or number, None for notifications).
        method: The method to invoke (e.g. "tools/call").
        params: Parameters for the method.
    """

    jsonrpc: str
    id: str | int | None
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    @property
    def is_notification(self) -> bool:
        """Check if this is a notification (no id field)."""
        return self.id is None


@dataclass
class JSONRPCResponse:
    """
    Represents a JSON-RPC 2.0 response.

    Either result or error must be present, but not both.
    """

    jsonrpc: str
    id: str | int | None
    result: Any | None = None
    error: JSONRPCError | None = None

    @property
    def is_error(self) -> bool:
        """Check if this is an error response."""
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert the response to a dictionary for JSON serialization."""
        response: dict[str, Any] = {
            "jsonrpc": self.jsonrpc,
            "id": self.id,
        }
        if self.error is not None:
            response["error"] = self.error.to_dict()
        else:
            response["result"] = self.result
        return response

    def to_json(self) -> str:
        """Serialize the response to a single-line JSON string."""
        return json.dumps(self.to_dict(), separators=(",", ":"))


# =============================================================================
# Request Parsing
# =============================================================================


def parse_request(request_json: str) -> JSONRPCRequest:
    """
    Parse a JSON-RPC 2.0 request from a JSON string.

    Args:
        request_json: Raw JSON string containing the request.

    Returns:
        Parsed JSONRPCRequest object.

    Raises:
        JSONRPCError: If the request is malformed or invalid.

    Example:
        >>> request = parse_request('{"jsonrpc":"2.0","id":1,"method":"tools/list"}')
        >>> request.method
        'tools/list'
    """
    try:
        data = json.loads(request_json)
    except json.JSONDecodeError as e:
        raise JSONRPCError(
            code=PARSE_ERROR,
            message=f"Parse error: Invalid JSON - {e.msg}",
        ) from e

    if not isinstance(data, dict):
        raise JSONRPCError(
            code=INVALID_REQUEST,
            message="Invalid Request: Request must be a JSON object",
        )

    jsonrpc = data.get("jsonrpc")
    if jsonrpc is None:
        raise JSONRPCError(
            code=INVALID_REQUEST,
            message="Invalid Request: Missing 'jsonrpc' field",
        )
    if jsonrpc != "2.0":
        raise JSONRPCError(
            code=INVALID_REQUEST,
            message=f"Invalid Request: jsonrpc must be '2.0', got '{jsonrpc}'",
        )

    method = data.get("method")
    if method is None:
        raise JSONRPCError(
            code=INVALID_REQUEST,
            message="Invalid Request: Missing 'method' field",
        )
    if not isinstance(method, str) or not method:
        raise JSONRPCError(
            code=INVALID_REQUEST,
            message="Invalid Request: 'method' must be a non-empty string",
        )

    request_id = data.get("id")

    # MCP methods only take named parameters
    params = data.get("params")
    if params is None:
        params = {}
    if not isinstance(params, dict):
        raise JSONRPCError(
            code=INVALID_PARAMS,
            message="Invalid params: 'params' must be an object",
        )

    return JSONRPCRequest(
        jsonrpc="2.0",
        id=request_id,
        method=method,
        params=params,
    )


# =============================================================================
# Response Formatting
# =============================================================================


def format_success_response(
    request_id: str | int | None,
    result: Any,
) -> JSONRPCResponse:
    """
    Format a successful JSON-RPC 2.0 response.

    Example:
        >>> format_success_response(1, {"tools": []}).to_json()
        '{"jsonrpc":"2.0","id":1,"result":{"tools":[]}}'
    """
    return JSONRPCResponse(
        jsonrpc="2.0",
        id=request_id,
        result=result,
        error=None,
    )


def format_error_response(
    request_id: str | int | None,
    error: JSONRPCError,
) -> JSONRPCResponse:
    """Format a JSON-RPC 2.0 error response."""
    return JSONRPCResponse(
        jsonrpc="2.0",
        id=request_id,
        result=None,
        error=error,
    )


# =============================================================================
# ToolError to JSON-RPC Error Mapping
# =============================================================================


def tool_error_to_jsonrpc_error(tool_error: ToolError) -> JSONRPCError:
    """
    Convert a ToolError to a JSONRPCError.

    Args:
        tool_error: The ToolError to convert.

    Returns:
        JSONRPCError with the mapped code and structured data.

    Example:
        >>> from mcp_fkl.errors import UnknownToolError
        >>> tool_error_to_jsonrpc_error(UnknownToolError("nope")).code
        -32601
    """
    jsonrpc_code = ERROR_CODE_MAP.get(tool_error.error_code, DEFAULT_SERVER_ERROR)

    return JSONRPCError(
        code=jsonrpc_code,
        message=tool_error.message,
        data=tool_error.to_dict(),
    )


def create_method_not_found_error(method: str) -> JSONRPCError:
    """Create a "Method not found" error for an unknown top-level method."""
    return JSONRPCError(
        code=METHOD_NOT_FOUND,
        message=f"Method not found: {method}",
        data={
            "error_code": "method_not_found",
            "message": f"Method '{method}' is not supported",
            "details": {"method": method},
        },
    )


def create_internal_error(
    message: str, details: dict[str, Any] | None = None
) -> JSONRPCError:
    """Create an internal error for unexpected exceptions."""
    return JSONRPCError(
        code=INTERNAL_ERROR,
        message=message,
        data={
            "error_code": "internal",
            "message": message,
            "details": details or {},
        },
    )
