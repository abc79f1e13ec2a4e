"""Tests for CLI entry point."""

import asyncio
import json

import pytest
import yaml

from taskstore import TaskStore
from taskstore import cli


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    """Keep the CLI from reconfiguring root logging during tests."""
    calls = []
    monkeypatch.setattr(cli, "configure_logging", lambda verbose=False: calls.append(verbose))
    return calls


@pytest.fixture
def db_path(temp_dir):
    return str(temp_dir / "cli.db")


def run_cli(*argv):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(list(argv))
    return exc_info.value.code


async def _seed(location):
    async with TaskStore(location) as store:
        run = await store.create_task_run("nightly-report")
        root = await store.create_stack_run(run.id, "collect", status="running")
        await store.create_stack_run(run.id, "query", parent_stack_run_id=root.id)
        await store.update_stack_run(root.id, status="suspended_waiting_child")
        await store.create_stack_run(run.id, "done", status="completed")
        await store.set_keystore("cursor", {"page": 3})
        return root


class TestCLI:
    """Tests for the CLI module."""

    def test_cli_has_handlers(self):
        """CLI should have a handler for each async command."""
        assert set(cli.HANDLERS) == {"init", "status", "pending", "dump", "keystore"}

    def test_main_without_args_shows_help(self, capsys):
        """Main should show help and exit 1 when no command is given."""
        assert run_cli() == 1
        assert "usage: taskstore" in capsys.readouterr().out

    def test_main_with_help(self):
        """Main should handle --help flag."""
        assert run_cli("--help") == 0

    def test_main_with_version(self, capsys):
        """Main should handle --version flag."""
        assert run_cli("--version") == 0
        assert "taskstore 0.1.0" in capsys.readouterr().out

    def test_keystore_requires_action(self):
        """The keystore command needs get, set or delete."""
        assert run_cli("keystore") == 2

    def test_verbose_flag_reaches_logging(self, db_path, quiet_logging):
        """-v turns on verbose logging."""
        run_cli("--db", db_path, "-v", "init")
        assert quiet_logging == [True]


class TestCLICommands:
    """Tests for individual CLI commands."""

    def test_init_creates_file(self, db_path, capsys, temp_dir):
        """init writes a store file with the schema."""
        assert run_cli("--db", db_path, "init") == 0
        assert "Store created" in capsys.readouterr().out
        assert (temp_dir / "cli.db").stat().st_size > 0

        assert run_cli("--db", db_path, "init") == 0
        assert "Store loaded" in capsys.readouterr().out

    def test_keystore_set_get_delete(self, db_path, capsys):
        """Values set from the command line can be read back."""
        assert run_cli("--db", db_path, "keystore", "set", "limits", '{"max": 5}') == 0
        assert run_cli("--db", db_path, "keystore", "set", "greeting", "hello") == 0
        capsys.readouterr()

        assert run_cli("--db", db_path, "keystore", "get", "limits") == 0
        assert json.loads(capsys.readouterr().out) == {"max": 5}

        assert run_cli("--db", db_path, "keystore", "get", "greeting") == 0
        assert json.loads(capsys.readouterr().out) == "hello"

        assert run_cli("--db", db_path, "keystore", "delete", "limits") == 0
        assert "Deleted limits" in capsys.readouterr().out

    def test_keystore_get_missing(self, db_path, capsys):
        """A missing key exits 1."""
        assert run_cli("--db", db_path, "keystore", "get", "absent") == 1
        assert "Key not found" in capsys.readouterr().err

    def test_pending_json(self, db_path, capsys):
        """pending --json lists schedulable frames oldest first."""
        root = asyncio.run(_seed(db_path))
        assert run_cli("--db", db_path, "pending", "--json") == 0
        frames = json.loads(capsys.readouterr().out)
        assert [f["operation"] for f in frames] == ["collect", "query"]
        assert frames[0]["id"] == root.id
        assert frames[0]["status"] == "suspended_waiting_child"

    def test_pending_text_limit(self, db_path, capsys):
        """--limit caps the text listing."""
        asyncio.run(_seed(db_path))
        assert run_cli("--db", db_path, "pending", "--limit", "1") == 0
        out = capsys.readouterr().out
        assert "collect (suspended_waiting_child)" in out
        assert "query" not in out

    def test_pending_empty(self, db_path, capsys):
        """An empty store has no pending work."""
        assert run_cli("--db", db_path, "pending") == 0
        assert "No pending work" in capsys.readouterr().out

    def test_status(self, db_path, capsys):
        """status prints per-table and per-status counts."""
        asyncio.run(_seed(db_path))
        assert run_cli("--db", db_path, "status") == 0
        out = capsys.readouterr().out
        assert "task_runs: 1" in out
        assert "stack_runs: 3" in out
        assert "completed: 1" in out

    def test_dump_yaml(self, db_path, capsys):
        """dump --format yaml emits every table."""
        asyncio.run(_seed(db_path))
        assert run_cli("--db", db_path, "dump", "--format", "yaml") == 0
        tables = yaml.safe_load(capsys.readouterr().out)
        assert tables["keystore"][0]["value"] == {"page": 3}
        assert len(tables["stack_runs"]) == 3

    def test_dump_json_to_file(self, db_path, temp_dir, capsys, monkeypatch):
        """The default format comes from the environment; -o writes a file."""
        monkeypatch.setenv("TASKSTORE_DUMP_FORMAT", "json")
        asyncio.run(_seed(db_path))
        output = temp_dir / "out" / "dump.json"
        assert run_cli("--db", db_path, "dump", "-o", str(output)) == 0
        assert "Dump saved to" in capsys.readouterr().out
        tables = json.loads(output.read_text(encoding="utf-8"))
        assert tables["task_runs"][0]["task_identifier"] == "nightly-report"

    def test_dump_unknown_env_format(self, db_path, monkeypatch, capsys):
        """An unsupported default format is a usage error."""
        monkeypatch.setenv("TASKSTORE_DUMP_FORMAT", "xml")
        assert run_cli("--db", db_path, "dump") == 1
        assert "Unknown dump format" in capsys.readouterr().err

    def test_read_only_commands_do_not_create_file(self, db_path, temp_dir):
        """Inspection commands never write the store."""
        assert run_cli("--db", db_path, "status") == 0
        assert not (temp_dir / "cli.db").exists()

    def test_corrupt_store_exits_2(self, db_path, temp_dir, capsys):
        """A degraded load is reported with exit code 2."""
        (temp_dir / "cli.db").write_bytes(b"garbage" * 100)
        assert run_cli("--db", db_path, "status") == 2
        assert "Warning:" in capsys.readouterr().err
