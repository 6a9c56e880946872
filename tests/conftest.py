"""
conftest.py - shared fixtures.
"""

from __future__ import annotations

import pytest

from iotdeploy.domain import Device
from tests.fixtures import FakeRemote, FakeRunner

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def device() -> Device:
    return Device(
        identifier="_workstation._tcp",
        hostname="pi-kitchen.local",
        ipv4_address="10.0.0.5",
        username="pi",
        password="raspberry",
    )


@pytest.fixture
def remote(device: Device) -> FakeRemote:
    return FakeRemote(device)


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()
