# src/pomeocore/logging_config.py
"""
Unified logging configuration for PomeoCore.

Library modules only ever call ``logging.getLogger(__name__)``. Applications
(and the ``pomeocore-storage`` CLI) call :func:`configure_logging` once at
startup to attach handlers to the root logger, driven by the ``[logging]``
table of the PomeoCore configuration file.

Key concepts:

    **Display filter**: with ``console_enabled = false`` (the default) the
    console handler still exists, but only passes records logged with
    ``extra={"display": True}`` (see :func:`log_display`). Storage janitor
    and rebalancer chatter stays in the log file while user-facing messages
    such as "Restored 42 entries" still reach the terminal.

    **File modes**: ``file_mode = "per_run"`` opens a new timestamped file
    per process; ``file_mode = "single"`` appends to one file rotated by
    ``RotatingFileHandler`` once it exceeds ``rotation_max_bytes``.

Usage:
    from pomeocore.logging_config import configure_logging, log_display

    configure_logging(app_name="pomeocore")
    log_display(logger, logging.INFO, "Migrated %d entries", count)
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from .config.models import LoggingConfig

NULL_LOG_PATH = Path(os.devnull)


def _level(name: str | int, default: int) -> int:
    """Resolve a level name such as ``"info"`` to its numeric value."""
    if isinstance(name, int):
        return name
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else default


# ---------------------------------------------------------------------------
# DisplayFilter
# ---------------------------------------------------------------------------


class DisplayFilter(logging.Filter):
    """Decides which records reach the console handler.

    When the console is globally enabled every record passes and the
    handler's own level does the filtering. Otherwise only records carrying
    ``display=True`` at or above ``display_min_level`` pass.
    """

    def __init__(
        self,
        console_globally_enabled: bool = False,
        display_min_level: int = logging.INFO,
    ) -> None:
        super().__init__()
        self.console_globally_enabled = console_globally_enabled
        self.display_min_level = display_min_level

    def filter(self, record: logging.LogRecord) -> bool:
        if self.console_globally_enabled:
            return True
        if getattr(record, "display", False):
            return record.levelno >= self.display_min_level
        return False


# ---------------------------------------------------------------------------
# LoggingManager
# ---------------------------------------------------------------------------


class LoggingManager:
    """
    Process-wide owner of the root logger's handlers.

    Configuration happens once; later calls are no-ops unless
    ``force_reconfigure`` is set.
    """

    _instance: Optional["LoggingManager"] = None
    _configured: bool = False
    _log_file_path: Path | None = None
    _console_handler: logging.Handler | None = None
    _file_handler: logging.Handler | None = None
    _display_filter: DisplayFilter | None = None

    @classmethod
    def get_instance(cls) -> "LoggingManager":
        """Get the shared instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def is_configured(cls) -> bool:
        """Check if logging has been configured."""
        return cls._configured

    @classmethod
    def get_log_file_path(cls) -> Path | None:
        """Get the current log file path."""
        return cls._log_file_path

    def configure(
        self,
        app_name: str = "pomeocore",
        config: LoggingConfig | dict[str, Any] | None = None,
        config_file_path: str | Path | None = None,
        force_reconfigure: bool = False,
    ) -> Path:
        """
        Attach console and file handlers to the root logger.

        Args:
            app_name: Application name, used in the log file name.
            config: Logging settings, as a model or a ``[logging]`` dict.
            config_file_path: TOML file to read ``[logging]`` from when
                ``config`` is not given.
            force_reconfigure: Replace handlers even if already configured.

        Returns:
            Path to the log file, or ``os.devnull`` if file logging is off.
        """
        if LoggingManager._configured and not force_reconfigure:
            return LoggingManager._log_file_path or NULL_LOG_PATH

        settings = self._resolve_config(config, config_file_path)

        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()
        root_logger.setLevel(logging.DEBUG)

        self._display_filter = DisplayFilter(
            console_globally_enabled=settings.console_enabled,
            display_min_level=_level(settings.display_min_level, logging.INFO),
        )
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(logging.Formatter(settings.console_format))
        if settings.console_enabled:
            console.setLevel(_level(settings.console_level, logging.WARNING))
        else:
            # The filter is the only gate when the console is "off".
            console.setLevel(logging.DEBUG)
        console.addFilter(self._display_filter)
        root_logger.addHandler(console)
        self._console_handler = console

        log_file_path: Path | None = None
        self._file_handler = None
        if settings.file_enabled:
            self._file_handler, log_file_path = self._create_file_handler(settings, app_name)
            if self._file_handler is not None:
                root_logger.addHandler(self._file_handler)

        for component, level_name in settings.components.items():
            logging.getLogger(component).setLevel(_level(level_name, logging.INFO))

        LoggingManager._configured = True
        LoggingManager._log_file_path = log_file_path

        if log_file_path is not None:
            logging.getLogger(__name__).debug("Logging configured. Log file: %s", log_file_path)
        return log_file_path or NULL_LOG_PATH

    def _resolve_config(
        self,
        config: LoggingConfig | dict[str, Any] | None,
        config_file_path: str | Path | None,
    ) -> LoggingConfig:
        if isinstance(config, LoggingConfig):
            return config
        if config is not None:
            return LoggingConfig(**config)
        if config_file_path is not None:
            from .config.loader import load_config

            return load_config(config_path=config_file_path).logging
        return LoggingConfig()

    def _create_file_handler(
        self, settings: LoggingConfig, app_name: str
    ) -> tuple[logging.Handler | None, Path | None]:
        """Create the per-run or rotating single-file handler."""
        log_dir = Path(os.path.expanduser(settings.file_directory))
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log directory {log_dir}: {e}\n")
            return None, None

        handler: logging.Handler
        if settings.file_mode == "single":
            try:
                filename = settings.file_single_name.format(app=app_name)
            except (KeyError, ValueError):
                filename = f"{app_name}.log"
            log_file_path = log_dir / filename
            try:
                handler = RotatingFileHandler(
                    log_file_path,
                    maxBytes=settings.rotation_max_bytes,
                    backupCount=settings.rotation_backup_count,
                    encoding="utf-8",
                )
            except OSError as e:
                sys.stderr.write(f"Warning: Cannot create log file {log_file_path}: {e}\n")
                return None, None
        else:
            timestamp = datetime.now()
            try:
                filename = settings.file_name_pattern.format(app=app_name, timestamp=timestamp)
            except (KeyError, ValueError):
                filename = f"{app_name}_{timestamp.strftime('%Y%m%d_%H%M%S')}.log"
            log_file_path = log_dir / filename
            try:
                handler = logging.FileHandler(log_file_path, encoding="utf-8")
            except OSError as e:
                sys.stderr.write(f"Warning: Cannot create log file {log_file_path}: {e}\n")
                return None, None

        handler.setLevel(_level(settings.file_level, logging.DEBUG))
        handler.setFormatter(logging.Formatter(settings.file_format))
        return handler, log_file_path

    def set_console_level(self, level: str | int) -> None:
        """Change the console handler's level at runtime."""
        if self._console_handler is not None:
            self._console_handler.setLevel(_level(level, logging.WARNING))

    def set_component_level(self, component: str, level: str | int) -> None:
        """Change one component logger's level at runtime."""
        logging.getLogger(component).setLevel(_level(level, logging.INFO))


# ---------------------------------------------------------------------------
# Public module-level functions
# ---------------------------------------------------------------------------


def configure_logging(
    app_name: str = "pomeocore",
    config: LoggingConfig | dict[str, Any] | None = None,
    config_file_path: str | Path | None = None,
    force_reconfigure: bool = False,
) -> Path:
    """
    Configure unified logging for the application.

    Call this once early in application startup.

    Example:
        configure_logging(
            app_name="pomeocore",
            config={"console_enabled": True, "file_directory": "/tmp/pomeo-logs"},
        )
    """
    return LoggingManager.get_instance().configure(
        app_name=app_name,
        config=config,
        config_file_path=config_file_path,
        force_reconfigure=force_reconfigure,
    )


def log_display(
    logger: logging.Logger,
    level: int,
    msg: str,
    *args: Any,
    **kwargs: Any,
) -> None:
    """Log a message that also reaches the console in silent mode.

    The caller's ``extra`` mapping is kept and ``display=True`` is added.
    ``display_min_level`` still applies.
    """
    extra = dict(kwargs.pop("extra", None) or {})
    extra["display"] = True
    kwargs["extra"] = extra
    logger.log(level, msg, *args, **kwargs)


def get_log_file_path() -> Path | None:
    """Get the current log file path."""
    return LoggingManager.get_log_file_path()


def set_console_level(level: str | int) -> None:
    """Change console log level at runtime."""
    LoggingManager.get_instance().set_console_level(level)


def set_component_level(component: str, level: str | int) -> None:
    """Change a specific component's log level at runtime."""
    LoggingManager.get_instance().set_component_level(component, level)
