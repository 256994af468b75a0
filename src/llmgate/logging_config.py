# src/llmgate/logging_config.py
"""
Logging setup for applications embedding LLMGate.

Library modules only create loggers (``logging.getLogger(__name__)``);
nothing is configured on import. Applications that want the gateway's
default layout call :func:`configure_logging` once at startup:

- a console handler on stderr (``console_level``, WARNING by default);
- an optional rotating log file (``file_enabled``), rotated at
  ``rotation_max_bytes`` with ``rotation_backup_count`` backups;
- per-component levels, e.g. quieter ``aiohttp`` and ``asyncio``.

Only handlers installed here are replaced on reconfiguration. Handlers
added by the application or by test tooling are left alone.

Usage:
    from llmgate.logging_config import configure_logging, set_component_level

    configure_logging(app_name="gateway", config={"console_level": "INFO"})
    set_component_level("llmgate.observability", "DEBUG")
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

DEFAULT_LOGGING_CONFIG: Dict[str, Any] = {
    "console_enabled": True,
    "console_level": "WARNING",
    "console_format": "%(levelname)s - %(name)s - %(message)s",
    "file_enabled": False,
    "file_level": "DEBUG",
    "file_directory": "~/.local/share/llmgate/logs",
    "file_name": "{app}.log",
    "file_format": "%(asctime)s [%(levelname)-8s] %(name)-30s - %(message)s (%(filename)s:%(lineno)d)",
    "rotation_max_bytes": 10 * 1024 * 1024,  # 10 MB
    "rotation_backup_count": 5,
    "components": {
        "llmgate": "INFO",
        "llmgate.observability": "INFO",
        "llmgate.providers": "INFO",
        "llmgate.extensions": "INFO",
        "llmgate.transport": "INFO",
        "aiohttp": "WARNING",
        "asyncio": "WARNING",
        "httpx": "WARNING",
    },
}

_configured = False
_log_file_path: Optional[Path] = None
_console_handler: Optional[logging.Handler] = None
_file_handler: Optional[logging.Handler] = None


def _level(value: Union[str, int, None], default: int) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        level = logging.getLevelName(value.upper())
        if isinstance(level, int):
            return level
    return default


def _remove_installed_handlers() -> None:
    global _console_handler, _file_handler
    root_logger = logging.getLogger()
    for handler in (_console_handler, _file_handler):
        if handler is not None:
            root_logger.removeHandler(handler)
            handler.close()
    _console_handler = None
    _file_handler = None


def _create_file_handler(config: Dict[str, Any], app_name: str) -> Optional[RotatingFileHandler]:
    global _log_file_path
    log_dir = Path(os.path.expanduser(str(config.get("file_directory") or DEFAULT_LOGGING_CONFIG["file_directory"])))
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        sys.stderr.write(f"Warning: Cannot create log directory {log_dir}: {e}\n")
        return None

    try:
        filename = str(config.get("file_name", "{app}.log")).format(app=app_name)
    except (KeyError, ValueError, IndexError):
        filename = f"{app_name}.log"

    path = log_dir / filename
    try:
        handler = RotatingFileHandler(
            path,
            maxBytes=int(config.get("rotation_max_bytes", DEFAULT_LOGGING_CONFIG["rotation_max_bytes"])),
            backupCount=int(config.get("rotation_backup_count", DEFAULT_LOGGING_CONFIG["rotation_backup_count"])),
            encoding="utf-8",
        )
    except OSError as e:
        sys.stderr.write(f"Warning: Cannot create log file {path}: {e}\n")
        return None

    handler.setLevel(_level(config.get("file_level"), logging.DEBUG))
    handler.setFormatter(logging.Formatter(config.get("file_format", DEFAULT_LOGGING_CONFIG["file_format"])))
    _log_file_path = path
    return handler


def configure_logging(
    app_name: str = "llmgate",
    config: Optional[Dict[str, Any]] = None,
    force_reconfigure: bool = False,
) -> Optional[Path]:
    """
    Install the console and file handlers and apply component levels.

    Args:
        app_name: Used in the log file name.
        config: Overrides merged over :data:`DEFAULT_LOGGING_CONFIG`. A
            ``components`` mapping is merged key by key.
        force_reconfigure: Reconfigure even if already configured.

    Returns:
        Path of the log file, or None when file logging is off.
    """
    global _configured, _console_handler, _file_handler, _log_file_path
    if _configured and not force_reconfigure:
        return _log_file_path

    log_config = {**DEFAULT_LOGGING_CONFIG, **(config or {})}
    components = {**DEFAULT_LOGGING_CONFIG["components"], **((config or {}).get("components") or {})}

    _remove_installed_handlers()
    _log_file_path = None
    root_logger = logging.getLogger()

    console_level = _level(log_config.get("console_level"), logging.WARNING)
    file_level = _level(log_config.get("file_level"), logging.DEBUG)
    levels: List[int] = []

    if log_config.get("console_enabled", True):
        _console_handler = logging.StreamHandler(sys.stderr)
        _console_handler.setLevel(console_level)
        _console_handler.setFormatter(logging.Formatter(log_config["console_format"]))
        root_logger.addHandler(_console_handler)
        levels.append(console_level)

    if log_config.get("file_enabled", False):
        _file_handler = _create_file_handler(log_config, app_name)
        if _file_handler is not None:
            root_logger.addHandler(_file_handler)
            levels.append(file_level)

    if levels:
        root_logger.setLevel(min(levels))

    for component_name, level_name in components.items():
        level = _level(level_name, -1)
        if level >= 0:
            logging.getLogger(component_name).setLevel(level)

    _configured = True
    logging.getLogger(__name__).debug(f"Logging configured for '{app_name}'. Log file: {_log_file_path}")
    return _log_file_path


def is_configured() -> bool:
    return _configured


def get_log_file_path() -> Optional[Path]:
    """Get the current log file path."""
    return _log_file_path


def set_console_level(level: Union[str, int]) -> None:
    """Change console log level at runtime."""
    if _console_handler is not None:
        _console_handler.setLevel(_level(level, _console_handler.level))


def set_file_level(level: Union[str, int]) -> None:
    """Change file log level at runtime."""
    if _file_handler is not None:
        _file_handler.setLevel(_level(level, _file_handler.level))


def set_component_level(component: str, level: Union[str, int]) -> None:
    """Change a specific component's log level at runtime."""
    component_logger = logging.getLogger(component)
    component_logger.setLevel(_level(level, component_logger.level))


def reset_logging() -> None:
    """Remove the handlers installed by :func:`configure_logging`."""
    global _configured, _log_file_path
    _remove_installed_handlers()
    _configured = False
    _log_file_path = None
