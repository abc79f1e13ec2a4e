"""
taskstore MCP Server

Provides MCP (Model Context Protocol) tools for agents to inspect a store:
- List and fetch task runs
- Browse stack run trees and pending work
- Read stored task functions

Usage:
    python -m taskstore.mcp.server

Or configure in .mcp.json:
    {
        "taskstore-mcp": {
            "type": "stdio",
            "command": "python",
            "args": ["-m", "taskstore.mcp.server"],
            "env": {"TASK_DB": "./tasks.db"}
        }
    }
"""

from .server import create_server, main

__all__ = ["create_server", "main"]
