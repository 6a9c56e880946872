"""mDNS discovery through avahi-browse."""

from __future__ import annotations

import logging
import subprocess

from ..deploy.transfer import Runner, run_command
from ..domain import Device, TransportError
from ..remote import RemoteSession
from .base import BaseDiscovery, SessionFactory

logger = logging.getLogger(__name__)

# Field order of a resolved ("=") line in avahi-browse --parsable output.
RESOLVED_FIELDS = ("event", "interface", "protocol", "name", "service_type", "domain", "hostname", "address", "port")


def build_browse_command(device_type: str) -> list[str]:
    return ["avahi-browse", "--resolve", "--terminate", "--parsable", device_type]


def parse_browse_output(output: str, device_type: str) -> list[Device]:
    """
    Devices from resolved IPv4 records, one per hostname (first record wins).

    Example line:
        =;eth0;IPv4;raspberrypi;_workstation._tcp;local;raspberrypi.local;192.168.2.10;9;
    """
    devices: dict[str, Device] = {}
    for line in output.splitlines():
        if not line.startswith("="):
            continue
        parts = line.split(";")
        if len(parts) < len(RESOLVED_FIELDS):
            logger.debug("Ignoring short avahi record: %s", line)
            continue
        record = dict(zip(RESOLVED_FIELDS, parts))
        if record["protocol"] != "IPv4":
            continue
        hostname = record["hostname"]
        if hostname in devices:
            continue
        devices[hostname] = Device(
            identifier=device_type,
            hostname=hostname,
            ipv4_address=record["address"] or None,
        )
    return list(devices.values())


class AvahiDiscovery(BaseDiscovery):
    """Find devices announcing device_type as an mDNS service type."""

    def __init__(
        self,
        runner: Runner = subprocess.run,
        session_factory: SessionFactory = RemoteSession,
        run_post_actions: bool = True,
    ) -> None:
        super().__init__(session_factory, run_post_actions)
        self._runner = runner

    def find_devices(self, device_type: str) -> list[Device]:
        try:
            completed = run_command(build_browse_command(device_type), self._runner, capture_output=True)
        except subprocess.CalledProcessError as exc:
            raise TransportError(f"avahi-browse failed for {device_type} (exit {exc.returncode})") from exc
        except FileNotFoundError as exc:
            raise TransportError("avahi-browse is not installed on this machine") from exc
        return parse_browse_output(completed.stdout or "", device_type)


__all__ = ["AvahiDiscovery", "build_browse_command", "parse_browse_output"]
