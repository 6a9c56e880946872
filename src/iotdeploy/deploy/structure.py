"""
Structure exchange with the deployed web service.

The orchestrator never inspects the service locally. Instead it asks the
service on the device to export its placement (which node serves which
endpoints) as JSON, reads that file back over SSH and decodes it:

    <args> export-structure <out> --ip-address <addr> --action-keys <csv> --port <port>
    cat <out>

The selected node is then started with:

    <args> startup <structure> --node-id <id> --endpoint-ids <h1,h2>
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from typing import Any

from ..domain import (
    ActionBinding,
    DecodeError,
    DiscoveryResult,
    ExportedEndpoint,
    IntegrityError,
    PlacementNode,
    ServicePlacement,
)
from ..interfaces import RemoteExecutor

logger = logging.getLogger(__name__)

DEFAULT_ACTION_KEY = "default"
EXPORT_STRUCTURE_COMMAND = "export-structure"
STARTUP_COMMAND = "startup"
STRUCTURE_FILENAME = "WebServiceStructure.json"


def positive_action_keys(bindings: Sequence[ActionBinding], result: DiscoveryResult) -> list[str]:
    """Options of the actions that found at least one end device on this device."""
    return [binding.option for binding in bindings if result.found(binding.action.identifier) > 0]


def compose_action_keys(keys: Iterable[str]) -> str:
    """Join action keys, always ending with the default key."""
    return ",".join([*keys, DEFAULT_ACTION_KEY])


def _with_arguments(arguments: str, *parts: str) -> str:
    return " ".join(part for part in (arguments, *parts) if part)


def export_structure_command(
    arguments: str,
    output_path: str,
    ip_address: str,
    action_keys: str,
    port: int,
) -> str:
    return _with_arguments(
        arguments,
        EXPORT_STRUCTURE_COMMAND,
        output_path,
        f"--ip-address {ip_address}",
        f"--action-keys {action_keys}",
        f"--port {port}",
    )


def startup_command(arguments: str, structure_path: str, node_id: str, handler_ids: str) -> str:
    return _with_arguments(
        arguments,
        STARTUP_COMMAND,
        structure_path,
        f"--node-id {node_id}",
        f"--endpoint-ids {handler_ids}",
    )


def decode_placement(text: str) -> ServicePlacement:
    """
    Decode a placement descriptor.

    Expected shape:
        {"nodes": [{"id": "10.0.0.5", "exportedEndpoints": [{"handlerId": "h1", ...}]}]}

    Raises:
        DecodeError: If the text is not valid JSON or does not match the shape
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Placement descriptor is not valid JSON: {exc}") from exc

    if not isinstance(data, dict) or not isinstance(data.get("nodes"), list):
        raise DecodeError("Placement descriptor needs a 'nodes' array")

    return ServicePlacement(nodes=tuple(_decode_node(node) for node in data["nodes"]))


def _decode_node(data: Any) -> PlacementNode:
    if not isinstance(data, dict) or not isinstance(data.get("id"), str):
        raise DecodeError(f"Placement node without a string 'id': {data!r}")
    endpoints = data.get("exportedEndpoints", [])
    if not isinstance(endpoints, list):
        raise DecodeError(f"Node {data['id']}: 'exportedEndpoints' must be an array")
    extra = {key: value for key, value in data.items() if key not in ("id", "exportedEndpoints")}
    return PlacementNode(
        id=data["id"],
        exported_endpoints=tuple(_decode_endpoint(endpoint, data["id"]) for endpoint in endpoints),
        extra=extra,
    )


def _decode_endpoint(data: Any, node_id: str) -> ExportedEndpoint:
    if not isinstance(data, dict) or not isinstance(data.get("handlerId"), str):
        raise DecodeError(f"Node {node_id}: endpoint without a string 'handlerId': {data!r}")
    extra = {key: value for key, value in data.items() if key != "handlerId"}
    return ExportedEndpoint(handler_id=data["handlerId"], extra=extra)


def read_placement(
    remote: RemoteExecutor,
    path: str,
    working_dir: str | None = None,
) -> ServicePlacement:
    """Read the exported descriptor from the device and decode it."""
    response = remote.execute(f"cat {path}", working_dir)
    logger.debug("Read placement descriptor %s (%s bytes)", path, len(response))
    return decode_placement(response)


def select_node(placement: ServicePlacement, address: str) -> PlacementNode | None:
    """
    Return the placement node whose id is the device address.

    Returns None when no node matches.

    Raises:
        IntegrityError: If several nodes claim the address
    """
    nodes = placement.nodes_for(address)
    if len(nodes) > 1:
        raise IntegrityError(
            f"{len(nodes)} placement nodes claim address {address}; "
            "there should only be one deployment node per device"
        )
    return nodes[0] if nodes else None


__all__ = [
    "DEFAULT_ACTION_KEY",
    "EXPORT_STRUCTURE_COMMAND",
    "STARTUP_COMMAND",
    "STRUCTURE_FILENAME",
    "compose_action_keys",
    "decode_placement",
    "export_structure_command",
    "positive_action_keys",
    "read_placement",
    "select_node",
    "startup_command",
]
