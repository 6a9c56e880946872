"""
Interfaces (Protocol) - contracts between the orchestrator and its collaborators.

The orchestrator depends on these abstractions only, so discovery, remote
sessions and post-discovery actions can be swapped (avahi, static inventory,
fakes in tests) without touching the pipeline.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from ..domain import Credentials, Device, DiscoveryResult


@runtime_checkable
class RemoteExecutor(Protocol):
    """
    An authenticated session on one device.

    Implemented by RemoteSession (paramiko); tests use recording fakes.
    """

    device: Device

    def execute(
        self,
        command: str,
        working_dir: str | None = None,
        *,
        stdin_data: str | None = None,
    ) -> str:
        """
        Run a command and return its standard output.

        Raises:
            RemoteCommandError: If the command exits with a non-zero status
        """
        ...

    def probe(
        self,
        command: str,
        working_dir: str | None = None,
        *,
        stdin_data: str | None = None,
    ) -> bool:
        """Run a command and report whether it exited with status 0."""
        ...

    def upload_file(self, local_path: str | Path, remote_path: str) -> None:
        """
        Copy one local file to remote_path.

        Raises:
            TransportError: If the upload fails
        """
        ...

    def upload_directory(self, local_dir: str | Path, remote_dir: str) -> int:
        """Copy the content of local_dir into remote_dir; returns the number of files."""
        ...


class PostDiscoveryAction(Protocol):
    """
    Work performed on a device right after it was discovered.

    Returns the number of end devices the action found (0 when the action
    only prepares the device).
    """

    identifier: str

    def run(self, remote: RemoteExecutor) -> int:
        ...


class DeviceDiscovery(Protocol):
    """
    Discovery collaborator.

    Given a device type, yields a finite list of results, each carrying a
    device with at least an address and a login username.
    """

    def run(
        self,
        device_type: str,
        actions: Sequence[PostDiscoveryAction],
        credentials: Credentials,
    ) -> list[DiscoveryResult]:
        ...

    def stop(self) -> None:
        ...


__all__ = ["DeviceDiscovery", "PostDiscoveryAction", "RemoteExecutor"]
