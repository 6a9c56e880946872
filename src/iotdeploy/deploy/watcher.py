"""Polling change detection for automatic redeployment."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from pathlib import Path

logger = logging.getLogger(__name__)

Snapshot = dict[Path, float]


def _iter_files(path: Path) -> Iterable[Path]:
    if path.is_file():
        yield path
        return
    if not path.is_dir():
        return
    for child in sorted(path.iterdir()):
        # Hidden entries are build output or VCS metadata (.build, .git).
        if child.name.startswith("."):
            continue
        yield from _iter_files(child)


class ChangeWatcher:
    """
    Poll modification times of local paths.

    A snapshot maps every file below the watched paths to its mtime; a new
    file, a deleted file or a touched file all count as a change.
    """

    def __init__(
        self,
        paths: Iterable[str | Path],
        interval: float = 30.0,
        stop_event: threading.Event | None = None,
    ) -> None:
        self.paths = [Path(path) for path in paths]
        self.interval = interval
        self.stop_event = stop_event or threading.Event()
        self._snapshot: Snapshot = self.snapshot()

    def snapshot(self) -> Snapshot:
        result: Snapshot = {}
        for path in self.paths:
            for file_path in _iter_files(path):
                try:
                    result[file_path] = file_path.stat().st_mtime
                except FileNotFoundError:
                    continue
        return result

    def poll(self) -> bool:
        """Take a new snapshot and report whether it differs from the last one."""
        current = self.snapshot()
        changed = current != self._snapshot
        self._snapshot = current
        if changed:
            logger.debug("Detected changes below %s", ", ".join(str(path) for path in self.paths))
        return changed

    def wait_for_change(self) -> bool:
        """Block until a change is seen (True) or stop() was called (False)."""
        while not self.stop_event.wait(self.interval):
            if self.poll():
                return True
        return False

    def watch(self, on_change: Callable[[], object]) -> None:
        if not self.paths:
            logger.info("Nothing to watch, automatic redeployment is disabled")
            return
        logger.info("Watching %s for changes every %ss", ", ".join(str(path) for path in self.paths), self.interval)
        while self.wait_for_change():
            on_change()

    def stop(self) -> None:
        self.stop_event.set()


__all__ = ["ChangeWatcher"]
