"""Infrastructure helpers (logging)."""

from .logger import LOGGER_NAME, NOTICE, configure_logging, dump_file_path

__all__ = ["LOGGER_NAME", "NOTICE", "configure_logging", "dump_file_path"]
