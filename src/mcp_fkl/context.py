"""
Tool context for the FusedKernelLibrary MCP Server.

A ToolContext carries the metadata of a single tools/call request. It is
created per call and never shared, so handlers can log against it without
any session state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass
class ToolContext:
    """
    Encapsulates the context of a single MCP tool call.

    Attributes:
        tool_name: Wire name of the tool (e.g., "build_library").
        request_id: JSON-RPC request identifier (None for notifications).
        timestamp: When the call was received (UTC).
        metadata: Values a handler records for the call log (e.g. build type).
    """

    tool_name: str
    request_id: str | int | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert ToolContext to log record extras.

        The receive time is keyed "received_at" so it does not clash with the
        log line's own timestamp.
        """
        return {
            "tool": self.tool_name,
            "request_id": self.request_id,
            "received_at": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }
