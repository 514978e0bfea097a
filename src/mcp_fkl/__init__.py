"""
FusedKernelLibrary MCP Server.

This package exposes the FusedKernelLibrary build and test pipeline to MCP
clients over JSON-RPC 2.0 on stdio: a fixed catalog of tools (build, test,
inspect, validate) and read-only resources (README, CMake configuration,
example listing).
"""

__version__ = "1.0.0"
