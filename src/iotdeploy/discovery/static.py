"""Discovery from a YAML inventory file, for networks without mDNS."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from ..domain import ConfigError, Device
from ..remote import RemoteSession
from .base import BaseDiscovery, SessionFactory

logger = logging.getLogger(__name__)


def load_inventory(path: str | Path) -> dict[str, list[Device]]:
    """
    Read an inventory of the form:

        types:
          _workstation._tcp:
            - hostname: pi-kitchen
              address: 192.168.2.10

    Raises:
        ConfigError: If the file cannot be read or has another shape
    """
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to read inventory {path}: {exc}") from exc

    types = data.get("types") if isinstance(data, dict) else None
    if not isinstance(types, dict):
        raise ConfigError(f"Inventory {path} needs a 'types' mapping")

    return {device_type: _parse_hosts(device_type, hosts, path) for device_type, hosts in types.items()}


def _parse_hosts(device_type: str, hosts: Any, path: Path) -> list[Device]:
    if not isinstance(hosts, list):
        raise ConfigError(f"Inventory {path}: '{device_type}' must list hosts")
    devices = []
    for host in hosts:
        if not isinstance(host, dict) or not host.get("hostname"):
            raise ConfigError(f"Inventory {path}: every '{device_type}' host needs a hostname")
        devices.append(
            Device(
                identifier=device_type,
                hostname=str(host["hostname"]),
                ipv4_address=str(host["address"]) if host.get("address") else None,
            )
        )
    return devices


class StaticDiscovery(BaseDiscovery):
    def __init__(
        self,
        inventory: dict[str, list[Device]],
        session_factory: SessionFactory = RemoteSession,
        run_post_actions: bool = True,
    ) -> None:
        super().__init__(session_factory, run_post_actions)
        self.inventory = inventory

    @classmethod
    def from_file(cls, path: str | Path, **kwargs: Any) -> StaticDiscovery:
        return cls(load_inventory(path), **kwargs)

    def find_devices(self, device_type: str) -> list[Device]:
        devices = self.inventory.get(device_type, [])
        if not devices:
            logger.warning("Inventory has no hosts of type %s", device_type)
        return list(devices)


__all__ = ["StaticDiscovery", "load_inventory"]
