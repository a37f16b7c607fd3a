# tests/storage/test_storage_cli.py
"""
Tests for the Storage CLI.

Tests cover:
- Command parsing
- Output formatting
- Configuration loading
- All CLI commands (info, keys, backup, restore, clear, rebalance, validate)
"""

import asyncio
import json

import pytest

from pomeocore.config.loader import load_config
from pomeocore.storage.cli import (
    OutputFormatter,
    _load_config,
    create_parser,
    format_bytes,
    main,
)
from pomeocore.storage.manager import create_storage_manager

# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch):
    """Keep the CLI from replacing the test run's root log handlers."""
    monkeypatch.setattr("pomeocore.storage.cli.configure_logging", lambda **kwargs: None)


@pytest.fixture
def formatter():
    return OutputFormatter(use_color=False, json_output=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "pomeocore.toml"
    path.write_text(
        "[storage]\n"
        "fast_quota_bytes = 300\n"
        "\n"
        "[storage.fast]\n"
        f'db_path = "{tmp_path / "fast.db"}"\n'
        "\n"
        "[storage.file]\n"
        f'path = "{tmp_path / "files"}"\n'
        "\n"
        "[logging]\n"
        "file_enabled = false\n"
    )
    return path


def _seed(config_file, values):
    """Write values through a manager built from the CLI's config file."""
    config = _load_config(str(config_file))

    async def seed():
        async with create_storage_manager(config) as storage:
            for key, value in values.items():
                await storage.save(key, value)

    asyncio.run(seed())


def _run_json(config_file, capsys, *args):
    code = main(["--config", str(config_file), "--json", *args])
    return code, json.loads(capsys.readouterr().out)


# =============================================================================
# PARSER AND FORMATTING
# =============================================================================


class TestParser:
    def test_subcommands(self):
        parser = create_parser()
        parsed = parser.parse_args(["keys", "--prefix", "task_"])
        assert parsed.command == "keys"
        assert parsed.prefix == "task_"

    def test_global_options(self):
        parsed = create_parser().parse_args(["--json", "--no-color", "-c", "x.toml", "info"])
        assert parsed.json is True
        assert parsed.no_color is True
        assert parsed.config == "x.toml"

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "pomeocore-storage" in capsys.readouterr().out


class TestOutputFormatter:
    def test_plain_output(self, formatter):
        assert formatter.success("done") == "✓ done"
        assert formatter.error("bad") == "✗ bad"

    @pytest.mark.parametrize(
        "size,expected",
        [(0, "0 B"), (1023, "1023 B"), (1536, "1.5 KB"), (5 * 1024 * 1024, "5.0 MB")],
    )
    def test_format_bytes(self, size, expected):
        assert format_bytes(size) == expected


class TestLoadConfig:
    def test_background_tasks_disabled(self, config_file):
        config = _load_config(str(config_file))
        assert config.storage.enable_rebalancer is False
        assert config.storage.cache.enable_janitor is False
        assert load_config(config_path=config_file).storage.enable_rebalancer is True


# =============================================================================
# COMMANDS
# =============================================================================


class TestCommands:
    def test_validate(self, config_file, capsys):
        code, payload = _run_json(config_file, capsys, "validate")
        assert code == 0
        assert payload["ok"] is True
        assert payload["config"]["storage"]["fast_quota_bytes"] == 300

    def test_validate_invalid(self, tmp_path, capsys):
        bad = tmp_path / "bad.toml"
        bad.write_text('[storage]\nstrategy = "nowhere"\n')
        code, payload = _run_json(bad, capsys, "validate")
        assert code == 1
        assert payload["ok"] is False

    def test_missing_config_file(self, tmp_path, capsys):
        code, payload = _run_json(tmp_path / "missing.toml", capsys, "info")
        assert code == 1
        assert "not found" in payload["error"]

    def test_info(self, config_file, capsys):
        _seed(config_file, {"task_1": "x" * 98, "task_2": "y" * 2000})
        code, payload = _run_json(config_file, capsys, "info")
        assert code == 0
        assert payload["strategy"] == "hybrid"
        assert payload["fast_key_count"] == 1
        assert payload["slow_key_count"] == 1
        assert payload["usage"]["fast_bytes"] == 100

    def test_info_text(self, config_file, capsys):
        assert main(["--config", str(config_file), "--no-color", "info"]) == 0
        out = capsys.readouterr().out
        assert "Strategy:" in out
        assert "hybrid" in out
        assert "within its limits" in out

    def test_keys(self, config_file, capsys):
        _seed(config_file, {"task_a": 1, "project_b": 2})
        code, payload = _run_json(config_file, capsys, "keys", "--prefix", "task_")
        assert code == 0
        assert payload["keys"] == ["task_a"]

    def test_backup_and_restore(self, config_file, tmp_path, capsys):
        _seed(config_file, {"task_a": 1, "task_b": "z" * 3000})
        backup_path = tmp_path / "backups" / "store.json"

        code, payload = _run_json(config_file, capsys, "backup", str(backup_path))
        assert code == 0
        assert backup_path.is_file()

        code, _ = _run_json(config_file, capsys, "clear", "--yes")
        assert code == 0
        _, payload = _run_json(config_file, capsys, "keys")
        assert payload["count"] == 0

        code, payload = _run_json(config_file, capsys, "restore", str(backup_path), "--yes")
        assert code == 0
        assert payload["restored"] == 2
        _, payload = _run_json(config_file, capsys, "keys")
        assert payload["keys"] == ["task_a", "task_b"]

    def test_restore_missing_file(self, config_file, tmp_path, capsys):
        code, payload = _run_json(config_file, capsys, "restore", str(tmp_path / "nope"), "--yes")
        assert code == 1
        assert "not found" in payload["error"]

    def test_restore_invalid_container(self, config_file, tmp_path, capsys):
        bogus = tmp_path / "bogus.json"
        bogus.write_text('{"format": "something-else"}')
        code, payload = _run_json(config_file, capsys, "restore", str(bogus), "--yes")
        assert code == 1
        assert payload["ok"] is False

    def test_clear_requires_confirmation(self, config_file, capsys, monkeypatch):
        _seed(config_file, {"task_a": 1})
        monkeypatch.setattr("builtins.input", lambda prompt: "n")
        code, payload = _run_json(config_file, capsys, "clear")
        assert code == 1
        _, payload = _run_json(config_file, capsys, "keys")
        assert payload["keys"] == ["task_a"]

    def test_rebalance(self, config_file, capsys):
        _seed(config_file, {f"task_{i}": "x" * 98 for i in range(5)})
        code, payload = _run_json(config_file, capsys, "rebalance")
        assert code == 0
        assert payload["migrated"] == 5
        _, payload = _run_json(config_file, capsys, "info")
        assert payload["fast_key_count"] == 0
        assert payload["slow_key_count"] == 5
