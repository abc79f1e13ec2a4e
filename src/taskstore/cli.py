#!/usr/bin/env python3
"""
taskstore CLI - inspect and maintain a store file.

Usage:
    taskstore init                       Create the store file and schema
    taskstore status                     Row counts and status breakdown
    taskstore pending [--limit N]        Stack runs ready for the scheduler
    taskstore dump [--format yaml]       Export every table (json or yaml)
    taskstore keystore get <key>         Read a setting
    taskstore keystore set <key> <json>  Write a setting
    taskstore keystore delete <key>      Remove a setting
    taskstore mcp                        Start the MCP inspection server

Environment Variables:
    TASK_DB                 Store location (default: ./tasks.db)
    TASKSTORE_LOG_LEVEL     Log level (default: INFO)
    TASKSTORE_DUMP_FORMAT   Default dump format (default: json)

Exit Codes:
    0 - Success
    1 - Usage error or missing key
    2 - Store reported warnings (degraded load, schema problems)
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path

import yaml

from taskstore import __version__
from taskstore.core.store import TaskStore
from taskstore.utils.config import get_config
from taskstore.utils.logging import configure_logging


def _open_store(args, read_only: bool = True) -> TaskStore:
    return TaskStore(args.db or get_config()["db_path"], read_only=read_only)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _report_warnings(report) -> int:
    for warning in report.warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    return 2 if report.warnings else 0


async def cmd_init(args) -> int:
    """Create (or upgrade) the store file."""
    store = _open_store(args, read_only=False)
    report = await store.init()
    shutdown = await store.close()
    status = "loaded" if report.loaded_from_disk else "created"
    print(f"Store {status}: {store.location}")
    if shutdown.checkpointed:
        print("Schema saved")
    for warning in shutdown.warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    return max(_report_warnings(report), 2 if shutdown.warnings else 0)


async def cmd_status(args) -> int:
    """Show row counts per table and per status."""
    async with _open_store(args) as store:
        tables = await store.export_tables()
        counts = await store.count_by_status()
        exit_code = _report_warnings(store.init_report)

    print(f"Store: {store.location}")
    for table, rows in tables.items():
        print(f"  {table}: {len(rows)}")
        for status, n in counts.get(table, {}).items():
            print(f"    {status}: {n}")
    return exit_code


async def cmd_pending(args) -> int:
    """List pending work, oldest first."""
    async with _open_store(args) as store:
        frames = await store.get_pending_stack_runs(limit=args.limit)
        exit_code = _report_warnings(store.init_report)

    if args.json:
        _print_json([frame.to_dict() for frame in frames])
        return exit_code

    if not frames:
        print("No pending work")
    for frame in frames:
        parent = f" parent={frame.parent_stack_run_id}" if frame.parent_stack_run_id else ""
        status = getattr(frame.status, "value", frame.status)
        print(f"  [{frame.id}] {frame.operation} ({status}) task_run={frame.task_run_id}{parent}"
              f" created={frame.created_at}")
    return exit_code


async def cmd_dump(args) -> int:
    """Export every table as JSON or YAML."""
    fmt = args.format or get_config()["dump_format"]
    if fmt not in ("json", "yaml"):
        print(f"Unknown dump format: {fmt}", file=sys.stderr)
        return 1

    async with _open_store(args) as store:
        tables = await store.export_tables()
        exit_code = _report_warnings(store.init_report)

    if fmt == "yaml":
        text = yaml.safe_dump(tables, sort_keys=False, allow_unicode=True)
    else:
        text = json.dumps(tables, indent=2, default=str)

    if args.output:
        Path(args.output).parent.mkdir(parents=True, exist_ok=True)
        Path(args.output).write_text(text, encoding="utf-8")
        print(f"Dump saved to: {args.output}")
    else:
        print(text)
    return exit_code


async def cmd_keystore(args) -> int:
    """Read, write or delete a keystore entry."""
    read_only = args.action == "get"
    async with _open_store(args, read_only=read_only) as store:
        if args.action == "get":
            entry = await store.get_keystore_entry(args.key)
            if entry is None:
                print(f"Key not found: {args.key}", file=sys.stderr)
                return 1
            _print_json(entry.value)
        elif args.action == "set":
            try:
                value = json.loads(args.value)
            except json.JSONDecodeError:
                value = args.value
            await store.set_keystore(args.key, value)
            print(f"Set {args.key}")
        else:
            deleted = await store.delete_keystore(args.key)
            print(f"Deleted {args.key}" if deleted else f"Key not present: {args.key}")
    return 0


def cmd_mcp(args) -> int:
    """Start the MCP inspection server (blocks until stdin closes)."""
    from taskstore.mcp import server
    if args.db:
        os.environ["TASK_DB"] = args.db
    server.main()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taskstore",
        description="taskstore - persistence for task runs and stack runs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  taskstore --db ./data/tasks.db init
  taskstore pending --limit 10
  taskstore dump --format yaml --output runs/dump.yaml
  taskstore keystore set api-base '"https://example.test"'
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--db", help="Store location (default: $TASK_DB or ./tasks.db)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init", help="Create the store file and schema")
    subparsers.add_parser("status", help="Show row counts and statuses")

    pending_parser = subparsers.add_parser("pending", help="List pending stack runs")
    pending_parser.add_argument("--limit", type=int, help="Maximum rows to show")
    pending_parser.add_argument("--json", action="store_true", help="Print JSON")

    dump_parser = subparsers.add_parser("dump", help="Export every table")
    dump_parser.add_argument("--format", choices=["json", "yaml"], help="Output format")
    dump_parser.add_argument("--output", "-o", help="Write to file instead of stdout")

    keystore_parser = subparsers.add_parser("keystore", help="Read or write settings")
    keystore_sub = keystore_parser.add_subparsers(dest="action", required=True)
    get_parser = keystore_sub.add_parser("get", help="Print a value as JSON")
    get_parser.add_argument("key")
    set_parser = keystore_sub.add_parser("set", help="Store a value (JSON, or a plain string)")
    set_parser.add_argument("key")
    set_parser.add_argument("value")
    delete_parser = keystore_sub.add_parser("delete", help="Remove a value")
    delete_parser.add_argument("key")

    subparsers.add_parser("mcp", help="Start the MCP inspection server")
    return parser


HANDLERS = {
    "init": cmd_init,
    "status": cmd_status,
    "pending": cmd_pending,
    "dump": cmd_dump,
    "keystore": cmd_keystore,
}


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    configure_logging(args.verbose)

    if args.command == "mcp":
        sys.exit(cmd_mcp(args))

    handler = HANDLERS[args.command]
    sys.exit(asyncio.run(handler(args)))


if __name__ == "__main__":
    main()
