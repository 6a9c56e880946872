"""Stopping deployed instances without logging into every device by hand."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from ..credentials import CredentialStore
from ..discovery.base import SessionFactory
from ..domain import ConfigError, TransportError
from ..interfaces import DeviceDiscovery
from ..remote import RemoteSession

logger = logging.getLogger(__name__)

STOP_ALL_CONTAINERS = "sudo docker stop $(sudo docker ps -a -q); sudo docker rm $(sudo docker ps -a -q)"


def kill_command(product_name: str | None, docker: bool) -> str:
    if docker:
        return STOP_ALL_CONTAINERS
    if not product_name:
        raise ConfigError("A product name is required to kill a tmux session")
    return f"tmux kill-session -t {product_name}"


def kill_sessions(
    types: Sequence[str],
    discovery: DeviceDiscovery,
    credentials: CredentialStore,
    product_name: str | None = None,
    docker: bool = False,
    session_factory: SessionFactory = RemoteSession,
) -> int:
    """
    Stop the deployed service on every device of the given types.

    With docker every container on the device is stopped and removed,
    otherwise the tmux session named product_name is killed. Returns the
    number of devices the command succeeded on.
    """
    command = kill_command(product_name, docker)
    stopped = 0
    for device_type in types:
        type_credentials = credentials.obtain(device_type)
        for result in discovery.run(device_type, [], type_credentials):
            device = result.device
            logger.info("Trying to kill session on %s", device)
            try:
                with session_factory(device) as remote:
                    if remote.probe(command):
                        stopped += 1
                    else:
                        logger.warning("Nothing was stopped on %s", device)
            except TransportError as exc:
                logger.error("Unable to reach %s: %s", device, exc)
        logger.info("Finished %s", device_type)
    return stopped


__all__ = ["STOP_ALL_CONTAINERS", "kill_command", "kill_sessions"]
