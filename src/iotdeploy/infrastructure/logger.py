"""
Logging utilities for the deployment tool.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path

from pythonjsonlogger.json import JsonFormatter

NOTICE = 25
logging.addLevelName(NOTICE, "NOTICE")

LOGGER_NAME = "iotdeploy"
CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DUMP_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


def dump_file_path(log_dir: str | Path, program: str | None = None, now: datetime | None = None) -> Path:
    """Path of the structured dump log, e.g. Logs/2026-10-18T09:30_iotdeploy_dump.log."""
    timestamp = (now or datetime.now()).strftime("%Y-%m-%dT%H:%M")
    program = program or Path(sys.argv[0]).name or LOGGER_NAME
    return Path(log_dir) / f"{timestamp}_{program}_dump.log"


def configure_logging(
    level_name: str = "INFO",
    dump_log: bool = False,
    log_dir: str | Path = "Logs",
) -> Path | None:
    """
    Configure console logging and, with dump_log, a JSON dump file.

    Returns the dump file path when one was set up.
    """
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root.addHandler(console)

    if not dump_log:
        return None

    dump_path = dump_file_path(log_dir)
    dump_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(dump_path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(JsonFormatter(DUMP_FORMAT))
    root.addHandler(handler)
    root.setLevel(min(level, logging.DEBUG))
    console.setLevel(level)
    return dump_path


__all__ = ["LOGGER_NAME", "NOTICE", "configure_logging", "dump_file_path"]
