"""
Domain - data structures shared by the deployment pipeline.

Plain dataclasses only; the behaviour lives in the deploy, remote and
credentials packages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from .exceptions import (
    ConfigError,
    DecodeError,
    DeploymentError,
    IntegrityError,
    RemoteCommandError,
    TransportError,
)

if TYPE_CHECKING:
    from ..interfaces import PostDiscoveryAction


@dataclass(frozen=True)
class Credentials:
    """A username/password pair. The password never shows up in repr()."""

    username: str
    password: str = field(default="", repr=False)

    @property
    def is_anonymous(self) -> bool:
        return not self.username

    @classmethod
    def empty(cls) -> Credentials:
        return cls(username="", password="")


@dataclass
class Device:
    """A host found by discovery."""

    identifier: str
    hostname: str
    ipv4_address: str | None = None
    username: str = ""
    password: str = field(default="", repr=False)

    def with_credentials(self, credentials: Credentials) -> Device:
        return Device(
            identifier=self.identifier,
            hostname=self.hostname,
            ipv4_address=self.ipv4_address,
            username=credentials.username,
            password=credentials.password,
        )

    def address(self) -> str:
        """Return the IPv4 address or raise TransportError if it is unknown."""
        if not self.ipv4_address:
            raise TransportError(f"Unable to get ip address for {self.hostname} ({self.identifier})")
        return self.ipv4_address

    def __str__(self) -> str:
        return f"{self.hostname} ({self.ipv4_address or 'unresolved'})"


@dataclass
class DiscoveryResult:
    """Outcome of one discovery pass for a single device."""

    device: Device
    found_end_devices: dict[str, int] = field(default_factory=dict)

    def found(self, action_identifier: str) -> int:
        return self.found_end_devices.get(action_identifier, 0)


@dataclass(frozen=True)
class ExportedEndpoint:
    handler_id: str
    extra: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class PlacementNode:
    """One node of the service placement; its id is a network address."""

    id: str
    exported_endpoints: tuple[ExportedEndpoint, ...] = ()
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def handler_ids(self) -> list[str]:
        return [endpoint.handler_id for endpoint in self.exported_endpoints]


@dataclass(frozen=True)
class ServicePlacement:
    nodes: tuple[PlacementNode, ...] = ()

    def nodes_for(self, address: str) -> list[PlacementNode]:
        return [node for node in self.nodes if node.id == address]


class ScopeKind(Enum):
    ALL = "all"
    SOME = "some"
    ONE = "one"


@dataclass(frozen=True)
class RegistrationScope:
    """Device types a post-discovery action is registered for."""

    kind: ScopeKind
    types: tuple[str, ...] = ()

    @classmethod
    def all(cls) -> RegistrationScope:
        return cls(ScopeKind.ALL)

    @classmethod
    def some(cls, types: list[str] | tuple[str, ...]) -> RegistrationScope:
        return cls(ScopeKind.SOME, tuple(types))

    @classmethod
    def one(cls, device_type: str) -> RegistrationScope:
        return cls(ScopeKind.ONE, (device_type,))

    def resolve(self, searchable_types: list[str]) -> list[str]:
        if self.kind is ScopeKind.ALL:
            return list(searchable_types)
        return [device_type for device_type in self.types if device_type in searchable_types]


@dataclass(frozen=True)
class ActionBinding:
    """A post-discovery action together with the action key it stands for."""

    option: str
    action: PostDiscoveryAction


class DeploymentState(Enum):
    DISCOVERED = "discovered"
    CREDENTIALS_RESOLVED = "credentials_resolved"
    INPUTS_PREPARED = "inputs_prepared"
    STRUCTURE_RETRIEVED = "structure_retrieved"
    NODE_SELECTED = "node_selected"
    LAUNCHED = "launched"
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DeploymentState.DONE, DeploymentState.SKIPPED, DeploymentState.FAILED)


@dataclass
class DeploymentOutcome:
    """Where a device's deployment ended up."""

    device: Device
    state: DeploymentState = DeploymentState.DISCOVERED
    node_id: str | None = None
    structure_path: str | None = None
    error: DeploymentError | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is DeploymentState.DONE


__all__ = [
    "ActionBinding",
    "ConfigError",
    "Credentials",
    "DecodeError",
    "DeploymentError",
    "DeploymentOutcome",
    "DeploymentState",
    "Device",
    "DiscoveryResult",
    "ExportedEndpoint",
    "IntegrityError",
    "PlacementNode",
    "RegistrationScope",
    "RemoteCommandError",
    "ScopeKind",
    "ServicePlacement",
    "TransportError",
]
