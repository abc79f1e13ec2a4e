#!/usr/bin/env python3
"""
taskstore MCP Server

Read-only inspection tools over a store file: task runs, stack run trees,
pending work and the task function catalog. The store is opened read-only,
so the server never writes the file back.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from taskstore.core.errors import TaskStoreError
from taskstore.core.store import TaskStore

logger = logging.getLogger(__name__)

# Server instance
app = Server("taskstore-mcp")

_store: Optional[TaskStore] = None


async def get_store() -> TaskStore:
    """Open the TASK_DB store on first use."""
    global _store
    if _store is None:
        store = TaskStore.from_env(read_only=True)
        report = await store.init()
        for warning in report.warnings:
            logger.warning("Store warning: %s", warning)
        _store = store
    return _store


async def close_store() -> None:
    global _store
    if _store is not None:
        await _store.close()
        _store = None


# =============================================================================
# Tool Definitions
# =============================================================================

_ID_SCHEMA = {"type": "integer", "minimum": 1}

_STACK_STATUSES = ["pending", "running", "suspended", "suspended_waiting_child", "completed", "failed"]


@app.list_tools()
async def list_tools():
    """List available MCP tools."""
    return [
        Tool(
            name="list_task_runs",
            description="List task runs, optionally filtered by status and/or task identifier.",
            inputSchema={
                "type": "object",
                "properties": {
                    "status": {"type": "string", "description": "Exact status to match"},
                    "task_identifier": {"type": "string", "description": "Exact task identifier to match"},
                },
            },
        ),
        Tool(
            name="get_task_run",
            description="Get one task run by id.",
            inputSchema={
                "type": "object",
                "properties": {"task_run_id": _ID_SCHEMA},
                "required": ["task_run_id"],
            },
        ),
        Tool(
            name="list_stack_runs",
            description="""List stack runs (call-stack frames).

Filter by task run, parent frame, and one or more statuses.""",
            inputSchema={
                "type": "object",
                "properties": {
                    "task_run_id": _ID_SCHEMA,
                    "parent_stack_run_id": _ID_SCHEMA,
                    "statuses": {
                        "type": "array",
                        "items": {"type": "string", "enum": _STACK_STATUSES},
                        "description": "Match any of these statuses",
                    },
                },
            },
        ),
        Tool(
            name="get_stack_tree",
            description="Get every frame of a task run as a nested tree (children under parents).",
            inputSchema={
                "type": "object",
                "properties": {"task_run_id": _ID_SCHEMA},
                "required": ["task_run_id"],
            },
        ),
        Tool(
            name="get_pending_work",
            description="""List frames the scheduler can act on next.

Returns pending and suspended_waiting_child frames, oldest first.""",
            inputSchema={
                "type": "object",
                "properties": {
                    "limit": {
                        "type": "integer",
                        "description": "Maximum number of frames to return",
                        "default": 20,
                        "minimum": 1,
                        "maximum": 500,
                    },
                },
            },
        ),
        Tool(
            name="get_task_function",
            description="Get stored task code by identifier.",
            inputSchema={
                "type": "object",
                "properties": {"identifier": {"type": "string"}},
                "required": ["identifier"],
            },
        ),
        Tool(
            name="list_task_functions",
            description="List stored task function identifiers with their metadata.",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]


# =============================================================================
# Tool Implementations
# =============================================================================

async def list_task_runs(store: TaskStore, status: str = None, task_identifier: str = None) -> dict:
    criteria: Dict[str, Any] = {}
    if status:
        criteria["status"] = status
    if task_identifier:
        criteria["task_identifier"] = task_identifier
    runs = await store.query_task_runs(**criteria)
    return {"task_runs": [run.to_dict() for run in runs], "count": len(runs)}


async def get_task_run(store: TaskStore, task_run_id: int) -> dict:
    run = await store.get_task_run(task_run_id)
    if run is None:
        return {"error": f"Task run {task_run_id} not found"}
    return run.to_dict()


async def list_stack_runs(
    store: TaskStore,
    task_run_id: int = None,
    parent_stack_run_id: int = None,
    statuses: list = None,
) -> dict:
    criteria: Dict[str, Any] = {}
    if task_run_id is not None:
        criteria["task_run_id"] = task_run_id
    if parent_stack_run_id is not None:
        criteria["parent_stack_run_id"] = parent_stack_run_id
    if statuses:
        criteria["status"] = list(statuses)
    frames = await store.query_stack_runs(**criteria)
    return {"stack_runs": [frame.to_dict() for frame in frames], "count": len(frames)}


async def get_stack_tree(store: TaskStore, task_run_id: int) -> dict:
    run = await store.get_task_run(task_run_id)
    if run is None:
        return {"error": f"Task run {task_run_id} not found"}
    roots = await store.get_stack_tree(task_run_id)
    return {
        "task_run": run.to_dict(),
        "roots": [root.to_dict() for root in roots],
        "frame_count": sum(1 for root in roots for _ in root.walk()),
    }


async def get_pending_work(store: TaskStore, limit: int = 20) -> dict:
    frames = await store.get_pending_stack_runs(limit=limit)
    return {"stack_runs": [frame.to_dict() for frame in frames], "returned": len(frames)}


async def get_task_function(store: TaskStore, identifier: str) -> dict:
    function = await store.get_task_function(identifier)
    if function is None:
        return {
            "error": f"Task function '{identifier}' not found",
            "suggestion": "Use list_task_functions to see stored identifiers",
        }
    return function.to_dict()


async def list_task_functions(store: TaskStore) -> dict:
    functions = await store.list_task_functions()
    return {
        "task_functions": [
            {"identifier": f.identifier, "metadata": f.metadata, "updated_at": f.updated_at}
            for f in functions
        ],
        "count": len(functions),
    }


TOOL_HANDLERS = {
    "list_task_runs": list_task_runs,
    "get_task_run": get_task_run,
    "list_stack_runs": list_stack_runs,
    "get_stack_tree": get_stack_tree,
    "get_pending_work": get_pending_work,
    "get_task_function": get_task_function,
    "list_task_functions": list_task_functions,
}


async def dispatch(store: TaskStore, name: str, arguments: dict) -> dict:
    """Run one tool against `store`; store and argument errors become error payloads."""
    handler = TOOL_HANDLERS.get(name)
    if handler is None:
        return {"error": f"Unknown tool: {name}"}
    try:
        return await handler(store, **(arguments or {}))
    except (TaskStoreError, TypeError) as e:
        logger.warning("Tool %s failed: %s", name, e)
        return {"error": str(e), "tool": name, "arguments": arguments}


@app.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    result = await dispatch(await get_store(), name, arguments)
    return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]


# =============================================================================
# Server Entry Point
# =============================================================================

def create_server() -> Server:
    """Create and return the MCP server instance."""
    return app


async def run_server():
    """Run the MCP server over stdio."""
    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                app.create_initialization_options()
            )
    finally:
        await close_store()


def main():
    """Main entry point."""
    asyncio.run(run_server())


if __name__ == "__main__":
    main()
