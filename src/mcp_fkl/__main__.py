"""Run the FusedKernelLibrary MCP Server: ``python -m mcp_fkl``."""

import sys

from mcp_fkl.server import main

sys.exit(main())
