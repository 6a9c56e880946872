"""Per-run deployment context shared by the pipeline components."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from ..infrastructure.logger import LOGGER_NAME, NOTICE

DOCKER_VOLUME_DIR = "/app/tmp"


@dataclass
class DeploymentContext:
    """
    Settings and handles passed explicitly to every step of a deployment.

    Attributes:
        deployment_dir: Remote directory the service is deployed to
        port: Port the deployed web service listens on
        web_service_arguments: Extra CLI arguments of the web service,
            prepended to every export/startup command
        logger: Logger used for progress messages
        started_at: Monotonic timestamp of the current run (see start())
    """

    deployment_dir: str = "/usr/deployment"
    port: int = 8080
    web_service_arguments: list[str] = field(default_factory=list)
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger(LOGGER_NAME))
    clock: Callable[[], float] = time.monotonic
    started_at: float | None = None

    @property
    def flattened_arguments(self) -> str:
        return " ".join(self.web_service_arguments)

    def remote_path(self, *parts: str) -> str:
        return "/".join([self.deployment_dir.rstrip("/"), *parts])

    def notice(self, message: str, *args: object) -> None:
        self.logger.log(NOTICE, message, *args)

    def start(self) -> None:
        self.started_at = self.clock()

    def elapsed(self) -> float:
        if self.started_at is None:
            return 0.0
        return self.clock() - self.started_at

    def finish(self) -> str:
        """Log and return the elapsed time as HH:MM:SS."""
        total = int(self.elapsed())
        hours, remainder = divmod(total, 3600)
        minutes, seconds = divmod(remainder, 60)
        duration = f"{hours:02d}:{minutes:02d}:{seconds:02d}"
        self.notice("Complete deployment in %s", duration)
        self.started_at = None
        return duration


__all__ = ["DOCKER_VOLUME_DIR", "DeploymentContext"]
