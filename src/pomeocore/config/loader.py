# src/pomeocore/config/loader.py
"""
Configuration loading for PomeoCore.

Settings are layered by pydantic-settings in this order, later layers winning:

1. Model defaults (``pomeocore.config.models``)
2. A TOML file (explicit path, ``POMEOCORE_CONFIG``, ``./pomeocore.toml``
   or ``~/.config/pomeocore/config.toml``)
3. An explicit dictionary passed by the caller
4. Environment variables prefixed with ``POMEOCORE_``, using double
   underscores for nesting: ``POMEOCORE_STORAGE__CACHE__MAX_COUNT=500``
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError
from pydantic_settings import SettingsConfigDict, SettingsError

from ..exceptions import ConfigError
from .models import PomeoConfig

logger = logging.getLogger(__name__)

ENV_CONFIG_PATH = "POMEOCORE_CONFIG"


def find_config_file() -> Path | None:
    """Locate the first existing configuration file in the search path.

    Returns:
        Path of the configuration file, or None if none exists.
    """
    candidates: list[Path] = []
    env_path = os.environ.get(ENV_CONFIG_PATH)
    if env_path:
        candidates.append(Path(env_path).expanduser())
    candidates.append(Path.cwd() / "pomeocore.toml")
    candidates.append(Path.home() / ".config" / "pomeocore" / "config.toml")

    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def _settings_class(path: Path | None) -> type[PomeoConfig]:
    """Return the settings class reading ``path`` as its TOML source."""
    if path is None:
        return PomeoConfig

    class FileConfig(PomeoConfig):
        model_config = SettingsConfigDict(toml_file=path)

    return FileConfig


def load_config(
    config_dict: dict[str, Any] | None = None,
    config_path: str | Path | None = None,
) -> PomeoConfig:
    """
    Load configuration from a TOML file, a dictionary and the environment.

    Args:
        config_dict: Pre-parsed configuration dictionary, merged over the file.
        config_path: Path to a TOML file. When omitted the default search
            path is used (see :func:`find_config_file`).

    Returns:
        Validated PomeoConfig with defaults for unspecified settings.

    Raises:
        ConfigError: If the file is missing, is not valid TOML, or a value
            fails validation.

    Examples:
        >>> config = load_config(config_dict={"storage": {"strategy": "fast_only"}})
        >>> config.storage.strategy.value
        'fast_only'
    """
    if config_path is not None:
        path: Path | None = Path(config_path).expanduser()
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
    else:
        path = find_config_file()

    settings_cls = _settings_class(path)
    try:
        config = settings_cls(**(config_dict or {}))
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to read config file {path}: {e}")
    except (ValidationError, SettingsError) as e:
        raise ConfigError(f"Invalid configuration: {e}")

    if path is not None:
        logger.debug("Loaded configuration file %s", path)
    return config
