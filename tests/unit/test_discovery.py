"""Tests for discovery implementations and post-discovery actions."""

from pathlib import Path

import pytest

from iotdeploy.discovery import (
    AvahiDiscovery,
    CreateDeploymentDirectoryAction,
    DockerDiscoveryAction,
    StaticDiscovery,
    load_inventory,
    parse_browse_output,
)
from iotdeploy.domain import ConfigError, Credentials, Device, RemoteCommandError, TransportError
from tests.fixtures import FakeRemote, FakeRunner, FakeSessionFactory

AVAHI_OUTPUT = "\n".join(
    [
        "+;eth0;IPv4;pi-kitchen;_workstation._tcp;local",
        "=;eth0;IPv6;pi-kitchen;_workstation._tcp;local;pi-kitchen.local;fe80::1;9;",
        "=;eth0;IPv4;pi-kitchen;_workstation._tcp;local;pi-kitchen.local;10.0.0.5;9;",
        "=;wlan0;IPv4;pi-kitchen;_workstation._tcp;local;pi-kitchen.local;10.0.0.50;9;",
        "=;eth0;IPv4;pi-garage;_workstation._tcp;local;pi-garage.local;10.0.0.6;9;",
    ]
)

CREDENTIALS = Credentials("pi", "raspberry")


class CountingAction:
    def __init__(self, identifier: str, found: int = 0, error: Exception | None = None) -> None:
        self.identifier = identifier
        self.found = found
        self.error = error
        self.remotes = []

    def run(self, remote) -> int:
        self.remotes.append(remote)
        if self.error:
            raise self.error
        return self.found


# ============================================================================
# Avahi
# ============================================================================


@pytest.mark.unit
def test_parse_browse_output_keeps_first_ipv4_record_per_host() -> None:
    devices = parse_browse_output(AVAHI_OUTPUT, "_workstation._tcp")

    assert [(device.hostname, device.ipv4_address) for device in devices] == [
        ("pi-kitchen.local", "10.0.0.5"),
        ("pi-garage.local", "10.0.0.6"),
    ]
    assert all(device.identifier == "_workstation._tcp" for device in devices)


@pytest.mark.unit
def test_avahi_discovery_runs_avahi_browse() -> None:
    runner = FakeRunner(stdout={"avahi-browse": AVAHI_OUTPUT})
    discovery = AvahiDiscovery(runner=runner, run_post_actions=False)

    results = discovery.run("_workstation._tcp", [], CREDENTIALS)

    assert runner.calls == [["avahi-browse", "--resolve", "--terminate", "--parsable", "_workstation._tcp"]]
    assert [result.device.username for result in results] == ["pi", "pi"]
    assert all(result.found_end_devices == {} for result in results)


@pytest.mark.unit
def test_avahi_failure_raises_transport_error() -> None:
    discovery = AvahiDiscovery(runner=FakeRunner(returncode=1))

    with pytest.raises(TransportError):
        discovery.find_devices("_workstation._tcp")


# ============================================================================
# Static inventory
# ============================================================================


@pytest.mark.unit
def test_load_inventory(tmp_path: Path) -> None:
    path = tmp_path / "inventory.yaml"
    path.write_text(
        "types:\n"
        "  _workstation._tcp:\n"
        "    - hostname: pi-kitchen.local\n"
        "      address: 10.0.0.5\n"
        "    - hostname: pi-unknown.local\n",
        encoding="utf-8",
    )

    inventory = load_inventory(path)

    devices = inventory["_workstation._tcp"]
    assert devices[0] == Device("_workstation._tcp", "pi-kitchen.local", "10.0.0.5")
    assert devices[1].ipv4_address is None


@pytest.mark.unit
@pytest.mark.parametrize(
    "content",
    ["types: [a, b]\n", "types:\n  t: host\n", "types:\n  t:\n    - address: 10.0.0.5\n", "types: {t: [x]\n"],
)
def test_invalid_inventory_raises_config_error(tmp_path: Path, content: str) -> None:
    path = tmp_path / "inventory.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_inventory(path)


@pytest.mark.unit
def test_static_discovery_runs_actions_in_one_session() -> None:
    sessions = FakeSessionFactory()
    discovery = StaticDiscovery(
        {"_workstation._tcp": [Device("_workstation._tcp", "pi-kitchen.local", "10.0.0.5")]},
        session_factory=sessions,
    )
    first = CountingAction("first")
    lifx = CountingAction("docker_lifx", found=3)

    results = discovery.run("_workstation._tcp", [first, lifx], CREDENTIALS)

    assert results[0].found_end_devices == {"first": 0, "docker_lifx": 3}
    assert results[0].found("docker_lifx") == 3
    remote = sessions.remotes["pi-kitchen.local"]
    assert remote.entered == 1
    assert first.remotes == [remote] and lifx.remotes == [remote]
    assert remote.device.password == "raspberry"


@pytest.mark.unit
def test_failing_action_counts_zero_and_others_still_run() -> None:
    discovery = StaticDiscovery(
        {"t": [Device("t", "pi.local", "10.0.0.5")]},
        session_factory=FakeSessionFactory(),
    )
    broken = CountingAction("broken", error=RemoteCommandError("docker run x", 125))
    lifx = CountingAction("docker_lifx", found=1)

    results = discovery.run("t", [broken, lifx], CREDENTIALS)

    assert results[0].found_end_devices == {"broken": 0, "docker_lifx": 1}


@pytest.mark.unit
def test_unreachable_device_is_reported_without_counts() -> None:
    discovery = StaticDiscovery({"t": [Device("t", "ghost.local")]}, session_factory=_unreachable)

    results = discovery.run("t", [CountingAction("a", found=1)], CREDENTIALS)

    assert results[0].device.hostname == "ghost.local"
    assert results[0].found_end_devices == {}


def _unreachable(device: Device):
    raise TransportError(f"Unable to reach {device}")


@pytest.mark.unit
def test_stopped_discovery_returns_nothing() -> None:
    discovery = StaticDiscovery({"t": [Device("t", "pi.local", "10.0.0.5")]}, run_post_actions=False)
    discovery.stop()

    assert discovery.run("t", [], CREDENTIALS) == []


# ============================================================================
# Actions
# ============================================================================


@pytest.mark.unit
def test_create_deployment_directory_without_sudo(remote: FakeRemote) -> None:
    assert CreateDeploymentDirectoryAction("/usr/deployment").run(remote) == 0

    assert remote.probes == ["mkdir -p /usr/deployment"]
    assert remote.commands == []


class ReadOnlyRemote(FakeRemote):
    def probe(self, command, working_dir=None, *, stdin_data=None):
        super().probe(command, working_dir, stdin_data=stdin_data)
        return False


@pytest.mark.unit
def test_create_deployment_directory_falls_back_to_sudo(device: Device) -> None:
    remote = ReadOnlyRemote(device)

    CreateDeploymentDirectoryAction("/usr/deployment").run(remote)

    assert remote.probes == ["mkdir -p /usr/deployment"]
    assert remote.commands == ["sudo mkdir -p /usr/deployment", "sudo chown pi:pi /usr/deployment"]


@pytest.mark.unit
def test_docker_discovery_action_reads_count(device: Device) -> None:
    remote = FakeRemote(device, responses={"cat /usr/deployment/lifx_devices": "4\n"})
    action = DockerDiscoveryAction(
        identifier="docker_lifx",
        image="lifx-action:latest",
        result_file="/usr/deployment/lifx_devices",
        command="/app/tmp --number-only",
        privileged=True,
        network="host",
        volumes=[("/usr/deployment", "/app/tmp")],
        credentials=Credentials("robot", "token"),
    )

    assert action.run(remote) == 4
    assert remote.probes == ["sudo docker login --username robot --password-stdin"]
    assert remote.commands[0] == (
        "sudo docker run --rm --privileged --network host -v /usr/deployment:/app/tmp "
        "lifx-action:latest /app/tmp --number-only"
    )


@pytest.mark.unit
def test_docker_discovery_action_with_garbage_output_counts_zero(device: Device) -> None:
    remote = FakeRemote(device, responses={"cat ": "lamp-1\nlamp-2\n"})
    action = DockerDiscoveryAction(identifier="docker_lifx", image="lifx-action", result_file="/tmp/out")

    assert action.run(remote) == 0
