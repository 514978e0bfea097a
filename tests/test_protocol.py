"""
Tests for the JSON-RPC 2.0 protocol module.

This test module validates:
- JSON-RPC request parsing and validation
- JSON-RPC response formatting (success and error)
- Error code mapping from ToolError to JSON-RPC errors
"""

from __future__ import annotations

import json

import pytest

from mcp_fkl.errors import (
    InternalError,
    InvalidArgumentError,
    ToolError,
    UnknownResourceError,
    UnknownToolError,
)
from mcp_fkl.protocol import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    JSONRPCError,
    JSONRPCRequest,
    create_internal_error,
    create_method_not_found_error,
    format_error_response,
    format_success_response,
    parse_request,
    tool_error_to_jsonrpc_error,
)

# =============================================================================
# Tests for JSONRPCRequest Parsing
# =============================================================================


class TestParseRequest:
    """Tests for JSON-RPC request parsing."""

    def test_parse_valid_request(self) -> None:
        """Test parsing a valid JSON-RPC 2.0 request."""
        request_json = json.dumps(
            {
                "jsonrpc": "2.0",
                "id": "req-1",
                "method": "tools/call",
                "params": {"name": "run_tests", "arguments": {"verbose": True}},
            }
        )

        request = parse_request(request_json)

        assert request.jsonrpc == "2.0"
        assert request.id == "req-1"
        assert request.method == "tools/call"
        assert request.params["arguments"] == {"verbose": True}

    def test_parse_request_with_numeric_id(self) -> None:
        request = parse_request('{"jsonrpc":"2.0","id":42,"method":"tools/list"}')

        assert request.id == 42

    def test_parse_request_without_params(self) -> None:
        request = parse_request('{"jsonrpc":"2.0","id":1,"method":"tools/list"}')

        assert request.params == {}

    def test_parse_request_with_null_params(self) -> None:
        request = parse_request(
            '{"jsonrpc":"2.0","id":1,"method":"tools/list","params":null}'
        )

        assert request.params == {}

    def test_parse_notification_without_id(self) -> None:
        request = parse_request(
            '{"jsonrpc":"2.0","method":"notifications/initialized"}'
        )

        assert request.id is None
        assert request.is_notification

    def test_parse_malformed_json(self) -> None:
        with pytest.raises(JSONRPCError) as exc_info:
            parse_request("{not valid json")

        assert exc_info.value.code == -32700
        assert "Parse error" in exc_info.value.message

    def test_parse_missing_jsonrpc_field(self) -> None:
        with pytest.raises(JSONRPCError) as exc_info:
            parse_request('{"id":1,"method":"tools/list"}')

        assert exc_info.value.code == INVALID_REQUEST
        assert "jsonrpc" in exc_info.value.message.lower()

    def test_parse_wrong_jsonrpc_version(self) -> None:
        with pytest.raises(JSONRPCError) as exc_info:
            parse_request('{"jsonrpc":"1.0","id":1,"method":"tools/list"}')

        assert exc_info.value.code == INVALID_REQUEST
        assert "2.0" in exc_info.value.message

    @pytest.mark.parametrize("method", ['""', "5", "null"])
    def test_parse_invalid_method(self, method: str) -> None:
        with pytest.raises(JSONRPCError) as exc_info:
            parse_request(f'{{"jsonrpc":"2.0","id":1,"method":{method}}}')

        assert exc_info.value.code == INVALID_REQUEST

    @pytest.mark.parametrize("params", ["[1, 2]", '"text"', "7"])
    def test_parse_non_object_params(self, params: str) -> None:
        with pytest.raises(JSONRPCError) as exc_info:
            parse_request(
                f'{{"jsonrpc":"2.0","id":1,"method":"tools/call","params":{params}}}'
            )

        assert exc_info.value.code == -32602

    @pytest.mark.parametrize("payload", ["[]", "null", '"tools/list"'])
    def test_parse_non_object_request(self, payload: str) -> None:
        with pytest.raises(JSONRPCError) as exc_info:
            parse_request(payload)

        assert exc_info.value.code == INVALID_REQUEST


# =============================================================================
# Tests for Response Formatting
# =============================================================================


class TestFormatResponses:
    """Tests for success and error response formatting."""

    def test_format_success_serialization(self) -> None:
        response = format_success_response(1, {"tools": []})

        assert not response.is_error
        assert response.to_json() == '{"jsonrpc":"2.0","id":1,"result":{"tools":[]}}'

    def test_format_error_serialization(self) -> None:
        error = JSONRPCError(code=INVALID_REQUEST, message="Invalid Request")
        response = format_error_response("req-1", error)

        assert response.is_error
        parsed = json.loads(response.to_json())
        assert parsed == {
            "jsonrpc": "2.0",
            "id": "req-1",
            "error": {"code": -32600, "message": "Invalid Request"},
        }

    def test_format_error_with_null_id(self) -> None:
        error = JSONRPCError(code=-32700, message="Parse error")
        parsed = json.loads(format_error_response(None, error).to_json())

        assert parsed["id"] is None
        assert "result" not in parsed

    def test_response_is_single_line(self) -> None:
        response = format_success_response(1, {"text": "line1\nline2"})

        assert "\n" not in response.to_json()


# =============================================================================
# Tests for ToolError to JSON-RPC Error Mapping
# =============================================================================


class TestToolErrorToJSONRPCError:
    """Tests for ToolError to JSONRPCError conversion."""

    def test_unknown_tool_maps_to_method_not_found(self) -> None:
        error = tool_error_to_jsonrpc_error(UnknownToolError("nope"))

        assert error.code == METHOD_NOT_FOUND
        assert error.data is not None
        assert error.data["error_code"] == "method_not_found"

    def test_invalid_argument_maps_to_invalid_request(self) -> None:
        error = tool_error_to_jsonrpc_error(
            InvalidArgumentError("examplePath is required", {"parameter": "examplePath"})
        )

        assert error.code == INVALID_REQUEST
        assert error.data is not None
        assert error.data["details"] == {"parameter": "examplePath"}

    def test_unknown_resource_maps_to_invalid_request(self) -> None:
        error = tool_error_to_jsonrpc_error(UnknownResourceError("fusedkernel://x"))

        assert error.code == INVALID_REQUEST

    def test_internal_error_mapping(self) -> None:
        error = tool_error_to_jsonrpc_error(InternalError("disk on fire"))

        assert error.code == INTERNAL_ERROR
        assert error.message == "disk on fire"

    def test_unmapped_code_falls_back_to_internal(self) -> None:
        error = tool_error_to_jsonrpc_error(ToolError("weird", "Weird failure"))

        assert error.code == INTERNAL_ERROR


class TestErrorFactories:
    """Tests for create_method_not_found_error and create_internal_error."""

    def test_method_not_found(self) -> None:
        error = create_method_not_found_error("tools/delete")

        assert error.code == METHOD_NOT_FOUND
        assert "tools/delete" in error.message
        assert error.data is not None
        assert error.data["details"] == {"method": "tools/delete"}

    def test_internal_error(self) -> None:
        error = create_internal_error("boom")

        assert error.to_dict() == {
            "code": INTERNAL_ERROR,
            "message": "boom",
            "data": {"error_code": "internal", "message": "boom", "details": {}},
        }


class TestJSONRPCRequest:
    """Tests for JSONRPCRequest dataclass."""

    def test_request_is_notification(self) -> None:
        assert JSONRPCRequest(jsonrpc="2.0", id=None, method="ping").is_notification
        assert not JSONRPCRequest(jsonrpc="2.0", id=0, method="ping").is_notification
