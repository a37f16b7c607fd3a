# src/pomeocore/storage/cli.py
"""
Storage CLI Commands for PomeoCore.

Command-line management of the tiered store:
- ``info``: strategy, per-tier usage and key counts
- ``keys``: list stored keys, optionally by prefix
- ``backup`` / ``restore``: write or read a versioned backup container
- ``clear``: remove every stored key
- ``rebalance``: run one rebalancing sweep now
- ``validate``: load and validate the configuration

Available as ``pomeocore-storage <command>`` once the package is installed.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from ..config.loader import find_config_file, load_config
from ..config.models import PomeoConfig
from ..exceptions import ConfigError, PomeoCoreError
from ..logging_config import configure_logging
from .manager import TieredStorageManager, create_storage_manager

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# OUTPUT FORMATTING
# =============================================================================

class OutputFormatter:
    """Formats CLI output as colored text or JSON."""

    COLORS = {
        'green': '\033[92m',
        'red': '\033[91m',
        'yellow': '\033[93m',
        'blue': '\033[94m',
        'bold': '\033[1m',
        'reset': '\033[0m',
    }

    def __init__(self, use_color: bool = True, json_output: bool = False):
        self.use_color = use_color and sys.stdout.isatty()
        self.json_output = json_output

    def _color(self, text: str, color: str) -> str:
        if not self.use_color:
            return text
        return f"{self.COLORS.get(color, '')}{text}{self.COLORS['reset']}"

    def success(self, text: str) -> str:
        return self._color(f"✓ {text}", 'green')

    def error(self, text: str) -> str:
        return self._color(f"✗ {text}", 'red')

    def warning(self, text: str) -> str:
        return self._color(f"⚠ {text}", 'yellow')

    def header(self, text: str) -> str:
        return self._color(text, 'bold')

    def emit_json(self, payload: Dict[str, Any]) -> None:
        print(json.dumps(payload, indent=2, default=str))


def format_bytes(size: int) -> str:
    """Human-readable byte count, e.g. ``1.5 KB``."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


# =============================================================================
# HELPERS
# =============================================================================

def _load_config(config_path: Optional[str]) -> PomeoConfig:
    """Load configuration for a CLI run, with background tasks disabled."""
    config = load_config(config_path=config_path)
    storage = config.storage.model_copy(
        update={
            "enable_rebalancer": False,
            "cache": config.storage.cache.model_copy(update={"enable_janitor": False}),
        }
    )
    return config.model_copy(update={"storage": storage})


def _run_with_manager(
    config: PomeoConfig,
    action: Callable[[TieredStorageManager], Awaitable[T]],
) -> T:
    async def runner() -> T:
        async with create_storage_manager(config) as manager:
            return await action(manager)

    return asyncio.run(runner())


def _fail(formatter: OutputFormatter, message: str) -> int:
    if formatter.json_output:
        formatter.emit_json({"ok": False, "error": message})
    else:
        print(formatter.error(message))
    return 1


# =============================================================================
# CLI COMMANDS
# =============================================================================

def cmd_info(config: PomeoConfig, formatter: OutputFormatter) -> int:
    """Show strategy, usage per tier and key counts."""
    info = _run_with_manager(config, lambda m: m.get_storage_info())

    if formatter.json_output:
        formatter.emit_json(info.model_dump(mode="json"))
        return 0

    usage = info.usage
    print(formatter.header("PomeoCore Storage Info"))
    print("=" * 40)
    print(f"Strategy:       {info.strategy.value}")
    print(f"Fast backend:   {format_bytes(usage.fast_bytes)} ({info.fast_key_count} keys)")
    print(f"                {config.storage.fast.db_path}")
    print(f"Slow backend:   {format_bytes(usage.slow_bytes)} ({info.slow_key_count} keys)")
    print(f"                {config.storage.file.path}")
    print(f"Cache:          {format_bytes(usage.cache_bytes)} ({info.cache_entry_count} entries)")
    print(f"Total:          {format_bytes(usage.total_bytes)}")
    print()
    if info.is_optimized:
        print(formatter.success("Storage is within its limits"))
    else:
        print(formatter.warning("Storage exceeds its limits; run 'rebalance'"))
    return 0


def cmd_keys(config: PomeoConfig, prefix: str, formatter: OutputFormatter) -> int:
    """List stored keys."""
    keys = _run_with_manager(config, lambda m: m.list_keys(prefix))
    if formatter.json_output:
        formatter.emit_json({"prefix": prefix, "count": len(keys), "keys": keys})
    else:
        for key in keys:
            print(key)
        print(formatter.header(f"{len(keys)} key(s)"))
    return 0


def cmd_backup(config: PomeoConfig, output: str, formatter: OutputFormatter) -> int:
    """Write a backup container to ``output``."""
    data = _run_with_manager(config, lambda m: m.backup())
    path = Path(output).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    if formatter.json_output:
        formatter.emit_json({"ok": True, "path": str(path), "bytes": len(data)})
    else:
        logger.info("Backup written to %s", path)
        print(formatter.success(f"Backup written to {path} ({format_bytes(len(data))})"))
    return 0


def cmd_restore(config: PomeoConfig, input_path: str, formatter: OutputFormatter) -> int:
    """Replace stored data with the contents of a backup container."""
    path = Path(input_path).expanduser()
    if not path.is_file():
        return _fail(formatter, f"Backup file not found: {path}")
    data = path.read_bytes()
    restored = _run_with_manager(config, lambda m: m.restore(data))
    if formatter.json_output:
        formatter.emit_json({"ok": True, "restored": restored})
    else:
        print(formatter.success(f"Restored {restored} entries from {path}"))
    return 0


def cmd_clear(config: PomeoConfig, formatter: OutputFormatter) -> int:
    """Remove every stored key."""
    _run_with_manager(config, lambda m: m.clear())
    if formatter.json_output:
        formatter.emit_json({"ok": True})
    else:
        print(formatter.success("All storage tiers cleared"))
    return 0


def cmd_rebalance(config: PomeoConfig, formatter: OutputFormatter) -> int:
    """Run one rebalancing sweep."""
    migrated = _run_with_manager(config, lambda m: m.rebalance())
    if formatter.json_output:
        formatter.emit_json({"ok": True, "migrated": migrated})
    else:
        print(formatter.success(f"Migrated {migrated} key(s) to the slow backend"))
    return 0


def cmd_validate(config_path: Optional[str], formatter: OutputFormatter) -> int:
    """Load and validate the configuration."""
    source = config_path or find_config_file()
    try:
        config = load_config(config_path=config_path)
    except ConfigError as e:
        return _fail(formatter, str(e))
    if formatter.json_output:
        formatter.emit_json({
            "ok": True,
            "source": str(source) if source else None,
            "config": config.to_dict(),
        })
    else:
        print(formatter.success(f"Configuration is valid ({source or 'defaults'})"))
    return 0


# =============================================================================
# MAIN CLI ENTRY POINT
# =============================================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the storage CLI."""
    parser = argparse.ArgumentParser(
        prog="pomeocore-storage",
        description="PomeoCore Storage Management CLI"
    )
    parser.add_argument("--config", "-c", help="Path to configuration file", default=None)
    parser.add_argument("--json", help="Output in JSON format", action="store_true")
    parser.add_argument("--no-color", help="Disable colored output", action="store_true")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("info", help="Show storage usage and strategy")

    keys_parser = subparsers.add_parser("keys", help="List stored keys")
    keys_parser.add_argument("--prefix", "-p", default="", help="Only keys with this prefix (e.g. task_)")

    backup_parser = subparsers.add_parser("backup", help="Write a backup file")
    backup_parser.add_argument("output", help="Destination file")

    restore_parser = subparsers.add_parser("restore", help="Restore from a backup file (replaces all data)")
    restore_parser.add_argument("input", help="Backup file to restore")
    restore_parser.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")

    clear_parser = subparsers.add_parser("clear", help="Delete all stored data")
    clear_parser.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")

    subparsers.add_parser("rebalance", help="Migrate fast-backend entries if over quota")
    subparsers.add_parser("validate", help="Validate the configuration")

    return parser


def _confirm(prompt: str) -> bool:
    try:
        return input(f"{prompt} [y/N] ").strip().lower() in ("y", "yes")
    except EOFError:
        return False


def main(args: Optional[List[str]] = None) -> int:
    """
    Main entry point for the storage CLI.

    Args:
        args: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code
    """
    parser = create_parser()
    parsed = parser.parse_args(args)

    formatter = OutputFormatter(
        use_color=not parsed.no_color,
        json_output=parsed.json
    )

    if parsed.command is None:
        parser.print_help()
        return 0
    if parsed.command == "validate":
        return cmd_validate(parsed.config, formatter)

    try:
        config = _load_config(parsed.config)
    except ConfigError as e:
        return _fail(formatter, str(e))
    configure_logging(app_name="pomeocore-storage", config=config.logging)

    try:
        if parsed.command == "info":
            return cmd_info(config, formatter)
        elif parsed.command == "keys":
            return cmd_keys(config, parsed.prefix, formatter)
        elif parsed.command == "backup":
            return cmd_backup(config, parsed.output, formatter)
        elif parsed.command == "restore":
            if not parsed.yes and not _confirm("Restore replaces all stored data. Continue?"):
                return _fail(formatter, "Restore aborted")
            return cmd_restore(config, parsed.input, formatter)
        elif parsed.command == "clear":
            if not parsed.yes and not _confirm("Delete all stored data?"):
                return _fail(formatter, "Clear aborted")
            return cmd_clear(config, formatter)
        elif parsed.command == "rebalance":
            return cmd_rebalance(config, formatter)
    except PomeoCoreError as e:
        logger.error("Storage command '%s' failed: %s", parsed.command, e)
        return _fail(formatter, str(e))

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
