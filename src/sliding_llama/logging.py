"""Logging setup for sliding-llama.

Every module logs through ``get_logger(__name__)`` under the ``sliding_llama``
namespace. Verbosity is one knob for the whole package: ``--log-level`` on the
command line, else ``$SLIDING_LLAMA_LOG_LEVEL``, else INFO. ``--debug`` adds a
file handler that receives DEBUG records (window sizes, stop reasons, timings)
while the console stays at INFO.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Union

LOG_LEVEL_ENV_VAR = "SLIDING_LLAMA_LOG_LEVEL"
PACKAGE_LOGGER = "sliding_llama"

_CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s]: %(message)s"


class _MaxLevelFilter(logging.Filter):
    def __init__(self, max_level: int) -> None:
        super().__init__()
        self._max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno <= self._max_level


def parse_level(level: Union[int, str, None], default: int = logging.INFO) -> int:
    """Turn ``"debug"``, ``"WARNING"``, ``"10"`` or an int into a logging level.

    Raises:
        ValueError: If ``level`` names no logging level.
    """
    if level is None or level == "":
        return default
    if isinstance(level, int):
        return level
    text = str(level).strip()
    if text.isdigit():
        return int(text)
    resolved = logging.getLevelName(text.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def configure_logging(level: Union[int, str, None] = None, fmt: Optional[str] = None) -> None:
    """Install a console handler once and set the package level.

    An explicit ``level`` wins over ``$SLIDING_LLAMA_LOG_LEVEL``.
    """
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.WARNING, format=fmt or _CONSOLE_FORMAT)
    if level is not None:
        set_package_level(parse_level(level))
        return
    package = logging.getLogger(PACKAGE_LOGGER)
    if package.level != logging.NOTSET:
        return
    env_level = os.getenv(LOG_LEVEL_ENV_VAR)
    try:
        set_package_level(parse_level(env_level))
    except ValueError:
        set_package_level(logging.INFO)
        package.warning("Ignoring %s=%r: not a log level", LOG_LEVEL_ENV_VAR, env_level)


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


def set_package_level(level: int) -> None:
    """Adjust verbosity for every ``sliding_llama.*`` logger at once."""
    logging.getLogger(PACKAGE_LOGGER).setLevel(level)


def configure_debug_file_logging(
    debug_path: Path,
    *,
    level: int = logging.DEBUG,
    suppress_console_warnings: bool = True,
) -> None:
    """Send package records at ``level`` and above to ``debug_path``.

    Console handlers are capped at INFO so DEBUG only lands in the file, and
    with ``suppress_console_warnings`` warnings go to the file alone.
    """
    root = logging.getLogger()
    debug_path.parent.mkdir(parents=True, exist_ok=True)
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == str(
            debug_path.resolve()
        ):
            return
    file_handler = logging.FileHandler(debug_path, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
    root.addHandler(file_handler)
    for handler in root.handlers:
        if not isinstance(handler, logging.FileHandler) and handler.level == logging.NOTSET:
            handler.setLevel(logging.INFO)
    set_package_level(level)
    if suppress_console_warnings:
        for handler in root.handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(
                handler, logging.FileHandler
            ):
                handler.addFilter(_MaxLevelFilter(logging.INFO))
