"""
MCP Server implementation for the FusedKernelLibrary MCP Server.

This module implements:
- RequestRouter: binds tools/list, tools/call, resources/list and
  resources/read to the tool executor and resource catalog
- process_request: the full lifecycle of one JSON-RPC message
- MCPServer: newline-delimited JSON-RPC 2.0 over stdin/stdout

Each incoming line is processed in its own task, so several tool calls can
be in flight at once. Responses are written whole, one line each, in
completion order.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TextIO

import mcp_fkl
from mcp_fkl.config import AppConfig, load_config
from mcp_fkl.errors import InternalError, InvalidArgumentError, ToolError
from mcp_fkl.executor import ToolExecutor
from mcp_fkl.logging import get_logger, setup_logging
from mcp_fkl.protocol import (
    INVALID_REQUEST,
    JSONRPCError,
    create_internal_error,
    create_method_not_found_error,
    format_error_response,
    format_success_response,
    parse_request,
    tool_error_to_jsonrpc_error,
)
from mcp_fkl.resources import ResourceCatalog
from mcp_fkl.routing import ToolRegistry

logger = get_logger(__name__)

PROTOCOL_VERSION = "2024-11-05"

MethodHandler = Callable[[dict[str, Any], str | int | None], Awaitable[Any]]


class RequestRouter:
    """
    Routes the four MCP methods to their handlers.

    The router holds no per-session state; every call is independent.

    Example:
        >>> router = RequestRouter(config)
        >>> await router.dispatch("tools/list", {})
        {'tools': [...]}
    """

    def __init__(
        self,
        config: AppConfig,
        registry: ToolRegistry | None = None,
        catalog: ResourceCatalog | None = None,
    ) -> None:
        """
        Initialize the router.

        Args:
            config: Application configuration passed to every component.
            registry: Optional ToolRegistry. Uses the built-in tools if omitted.
            catalog: Optional ResourceCatalog. Uses the built-in resources if
                omitted.
        """
        self.config = config
        self.registry = registry if registry is not None else ToolRegistry()
        self.catalog = catalog if catalog is not None else ResourceCatalog(config)
        self.executor = ToolExecutor(self.registry, config)
        self._methods: dict[str, MethodHandler] = {
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "resources/list": self._list_resources,
            "resources/read": self._read_resource,
        }

    @property
    def methods(self) -> list[str]:
        """Method names this router answers."""
        return list(self._methods)

    async def dispatch(
        self,
        method: str,
        params: dict[str, Any],
        request_id: str | int | None = None,
    ) -> Any:
        """
        Dispatch one method call.

        Raises:
            JSONRPCError: If the method is unknown.
            ToolError: For routing, validation and internal errors.
        """
        handler = self._methods.get(method)
        if handler is None:
            raise create_method_not_found_error(method)
        return await handler(params, request_id)

    async def _list_tools(
        self, _params: dict[str, Any], _request_id: str | int | None
    ) -> dict[str, Any]:
        return {"tools": [d.to_dict() for d in self.registry.list_descriptors()]}

    async def _call_tool(
        self, params: dict[str, Any], request_id: str | int | None
    ) -> dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise InvalidArgumentError(
                "tools/call requires a tool 'name'",
                details={"parameter": "name"},
            )

        try:
            result = await self.executor.call(
                name, params.get("arguments"), request_id=request_id
            )
        except ToolError:
            raise
        except Exception as e:
            logger.exception(
                "Unexpected error in tool handler",
                extra={"tool": name, "request_id": request_id},
            )
            raise InternalError(
                f"Tool execution failed: {e}",
                details={"tool": name, "exception_type": type(e).__name__},
            ) from e
        return result.to_dict()

    async def _list_resources(
        self, _params: dict[str, Any], _request_id: str | int | None
    ) -> dict[str, Any]:
        return {"resources": [d.to_dict() for d in self.catalog.list_descriptors()]}

    async def _read_resource(
        self, params: dict[str, Any], request_id: str | int | None
    ) -> dict[str, Any]:
        uri = params.get("uri")
        if not isinstance(uri, str) or not uri:
            raise InvalidArgumentError(
                "resources/read requires a resource 'uri'",
                details={"parameter": "uri"},
            )

        try:
            content = await self.catalog.read(uri)
        except ToolError:
            raise
        except Exception as e:
            logger.exception(
                "Unexpected error reading resource",
                extra={"uri": uri, "request_id": request_id},
            )
            raise InternalError(
                f"Failed to read resource {uri}: {e}",
                details={"uri": uri, "exception_type": type(e).__name__},
            ) from e
        return {"contents": [content.to_dict()]}


async def process_request(
    request_json: str,
    router: RequestRouter,
    lifecycle: Mapping[str, MethodHandler] | None = None,
) -> str | None:
    """
    Process a single JSON-RPC message and return the response.

    Args:
        request_json: Raw JSON string containing the request.
        router: RequestRouter for the MCP methods.
        lifecycle: Optional session-level handlers (initialize, ping, ...)
            consulted before the router.

    Returns:
        JSON string containing the response, or None for notifications.
    """
    request_id: str | int | None = None
    lifecycle = lifecycle or {}

    try:
        request = parse_request(request_json)
        request_id = request.id

        handler = lifecycle.get(request.method)

        if request.is_notification:
            try:
                if handler is not None:
                    await handler(request.params, None)
                else:
                    await router.dispatch(request.method, request.params)
            except Exception as e:
                logger.debug(
                    "Notification not handled",
                    extra={"method": request.method, "error": str(e)},
                )
            return None

        if handler is not None:
            result = await handler(request.params, request_id)
        else:
            result = await router.dispatch(request.method, request.params, request_id)

        return format_success_response(request_id, result).to_json()

    except JSONRPCError as e:
        return format_error_response(request_id, e).to_json()

    except ToolError as e:
        jsonrpc_error = tool_error_to_jsonrpc_error(e)
        return format_error_response(request_id, jsonrpc_error).to_json()

    except Exception as e:
        logger.exception(
            "Unexpected error processing request",
            extra={"request_id": request_id, "error": str(e)},
        )
        jsonrpc_error = create_internal_error(
            message=f"Internal server error: {type(e).__name__}",
            details={"exception": str(e)},
        )
        return format_error_response(request_id, jsonrpc_error).to_json()


class MCPServer:
    """
    MCP Server that communicates via JSON-RPC 2.0 over stdio.

    Example:
        >>> server = create_server(load_config(cli_args=[]))
        >>> await server.run()

    Attributes:
        config: Application configuration.
        router: RequestRouter for the MCP methods.
        running: Whether the server is currently running.
    """

    def __init__(
        self,
        config: AppConfig,
        router: RequestRouter | None = None,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
    ) -> None:
        self.config = config
        self.router = router if router is not None else RequestRouter(config)
        self._stdin = stdin if stdin is not None else sys.stdin
        self._stdout = stdout if stdout is not None else sys.stdout
        self.running = False
        self._pending: set[asyncio.Task[None]] = set()
        self._lifecycle: dict[str, MethodHandler] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "notifications/initialized": self._ignore,
            "notifications/cancelled": self._ignore,
        }

    async def _initialize(
        self, _params: dict[str, Any], _request_id: str | int | None
    ) -> dict[str, Any]:
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}, "resources": {}},
            "serverInfo": {
                "name": self.config.server.name,
                "version": mcp_fkl.__version__,
            },
        }

    async def _ping(
        self, _params: dict[str, Any], _request_id: str | int | None
    ) -> dict[str, Any]:
        return {}

    async def _ignore(
        self, _params: dict[str, Any], _request_id: str | int | None
    ) -> None:
        return None

    async def handle_request(self, request_json: str) -> str | None:
        """
        Handle a single JSON-RPC message.

        Returns:
            JSON string containing the response, or None for notifications.
        """
        return await process_request(request_json, self.router, self._lifecycle)

    async def run(self) -> None:
        """
        Run the server, reading from stdin and writing to stdout.

        The server runs until stdin is closed or stop() is called, then waits
        for requests that are still in flight.
        """
        self.running = True
        logger.info(
            "MCP Server starting",
            extra={
                "tools_count": len(self.router.registry),
                "resources_count": len(self.router.catalog),
                "project_root": str(self.config.project.root),
            },
        )

        try:
            loop = asyncio.get_running_loop()
            limit = self.config.server.max_request_bytes
            reader = asyncio.StreamReader(limit=limit)
            protocol = asyncio.StreamReaderProtocol(reader)
            await loop.connect_read_pipe(lambda: protocol, self._stdin)

            while self.running:
                try:
                    line = await reader.readline()
                    if not line:
                        break

                    request_json = line.decode("utf-8").strip()
                    if not request_json:
                        continue

                    task = asyncio.create_task(self._serve(request_json))
                    self._pending.add(task)
                    task.add_done_callback(self._pending.discard)

                except UnicodeDecodeError as e:
                    logger.warning(
                        "Invalid UTF-8 encoding in request",
                        extra={"error": str(e)},
                    )
                    error = create_internal_error(
                        "Invalid request encoding: UTF-8 required"
                    )
                    self._write_response(format_error_response(None, error).to_json())

                except ValueError as e:
                    # readline() has already discarded the oversized line
                    logger.warning(
                        "Request exceeds maximum size",
                        extra={"limit": limit, "error": str(e)},
                    )
                    error = JSONRPCError(
                        code=INVALID_REQUEST,
                        message=f"Invalid Request: request exceeds {limit} bytes",
                    )
                    self._write_response(format_error_response(None, error).to_json())

                except Exception as e:
                    # The input stream itself failed and will keep failing
                    logger.exception("Error in server loop", extra={"error": str(e)})
                    error = create_internal_error(str(e))
                    self._write_response(format_error_response(None, error).to_json())
                    break

            if self._pending:
                await asyncio.gather(*self._pending, return_exceptions=True)

        finally:
            self.running = False
            logger.info("MCP Server stopped")

    async def _serve(self, request_json: str) -> None:
        try:
            response = await self.handle_request(request_json)
        except Exception as e:
            logger.exception("Error in server loop", extra={"error": str(e)})
            error = create_internal_error(str(e))
            response = format_error_response(None, error).to_json()
        if response:
            self._write_response(response)

    def stop(self) -> None:
        """Stop the server gracefully."""
        self.running = False

    def _write_response(self, response_json: str) -> None:
        """Write one response line to stdout."""
        self._stdout.write(response_json + "\n")
        self._stdout.flush()


def create_server(config: AppConfig) -> MCPServer:
    """
    Create and configure an MCP Server instance.

    Args:
        config: Loaded application configuration.

    Returns:
        Configured MCPServer instance.
    """
    return MCPServer(config=config)


def main(argv: list[str] | None = None) -> int:
    """
    Console entry point: load configuration and serve on stdio.

    Args:
        argv: Command-line arguments. If None, uses sys.argv.

    Returns:
        Process exit code.
    """
    config = load_config(cli_args=argv)
    setup_logging(config.logging)

    server = create_server(config)
    logger.info("FusedKernelLibrary MCP server running on stdio")
    try:
        asyncio.run(server.run())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0
