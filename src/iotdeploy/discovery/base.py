"""Shared discovery pass: find devices, then run post-discovery actions on each."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from contextlib import AbstractContextManager

from ..domain import Credentials, Device, DiscoveryResult, RemoteCommandError, TransportError
from ..interfaces import PostDiscoveryAction, RemoteExecutor
from ..remote import RemoteSession

logger = logging.getLogger(__name__)

SessionFactory = Callable[[Device], AbstractContextManager[RemoteExecutor]]


class BaseDiscovery(ABC):
    """
    Template for discovery implementations.

    Subclasses only locate devices (find_devices); running the post-discovery
    actions and counting their matches is shared.
    """

    def __init__(
        self,
        session_factory: SessionFactory = RemoteSession,
        run_post_actions: bool = True,
    ) -> None:
        self._session_factory = session_factory
        self.run_post_actions = run_post_actions
        self.stopped = False

    @abstractmethod
    def find_devices(self, device_type: str) -> list[Device]:
        ...

    def run(
        self,
        device_type: str,
        actions: Sequence[PostDiscoveryAction],
        credentials: Credentials,
    ) -> list[DiscoveryResult]:
        if self.stopped:
            logger.warning("Discovery was stopped, not searching for %s", device_type)
            return []

        devices = self.find_devices(device_type)
        logger.info("Found %s devices of type %s", len(devices), device_type)

        results = []
        for device in devices:
            device = device.with_credentials(credentials)
            if self.run_post_actions and actions:
                results.append(self._run_actions(device, actions))
            else:
                results.append(DiscoveryResult(device=device))
        return results

    def _run_actions(self, device: Device, actions: Sequence[PostDiscoveryAction]) -> DiscoveryResult:
        found: dict[str, int] = {}
        try:
            with self._session_factory(device) as remote:
                for action in actions:
                    try:
                        found[action.identifier] = action.run(remote)
                    except RemoteCommandError as exc:
                        logger.warning("Action %s failed on %s: %s", action.identifier, device, exc)
                        found[action.identifier] = 0
        except TransportError as exc:
            logger.error("Unable to run post discovery actions on %s: %s", device, exc)
        return DiscoveryResult(device=device, found_end_devices=found)

    def stop(self) -> None:
        self.stopped = True


__all__ = ["BaseDiscovery", "SessionFactory"]
