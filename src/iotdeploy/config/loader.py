"""
Configuration loading - deploy.yaml and command line overrides.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ..deploy.inputs import ComposeFileInput, ContainerImageInput, InputSource, SourcePackageInput
from ..discovery.actions import DockerDiscoveryAction
from ..domain import ConfigError, Credentials, RegistrationScope

logger = logging.getLogger(__name__)

INPUT_KINDS = ("docker_image", "package_dir", "compose_file")


class ConfigManager:
    """Read access to a YAML configuration file."""

    def __init__(self, config_path: str | Path = "deploy.yaml") -> None:
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise ConfigError(f"Configuration file not found: {self.config_path}")
        self._config = self._load()
        logger.info("Configuration loaded from %s", self.config_path)

    def _load(self) -> dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"{self.config_path} must contain a mapping")
        return data

    def get_all(self) -> dict[str, Any]:
        return self._config.copy()

    def __repr__(self) -> str:
        return f"ConfigManager({self.config_path})"


@dataclass
class DeploySettings:
    """
    Everything a deployment run needs.

    Attributes:
        types: Device types to search for, e.g. ["_workstation._tcp"]
        input: Input section, one of {docker_image}, {package_dir, product_name}
            or {compose_file}
        actions: Post-discovery docker actions (see build_actions())
        credentials_file: JSON credential file; prompt on the terminal if unset
        inventory_file: Static inventory; avahi discovery if unset
    """

    types: list[str] = field(default_factory=list)
    deployment_dir: str = "/usr/deployment"
    port: int = 8080
    web_service_arguments: list[str] = field(default_factory=list)
    automatic_redeployment: bool = False
    redeployment_interval: float = 30.0
    credentials_file: Path | None = None
    inventory_file: Path | None = None
    dump_log: bool = False
    fail_fast: bool = True
    log_level: str = "INFO"
    input: dict[str, Any] = field(default_factory=dict)
    actions: list[dict[str, Any]] = field(default_factory=list)


def split_types(value: str | list[str] | None) -> list[str]:
    """Accept "a,b" as well as ["a", "b"]."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [str(item).strip() for item in value if str(item).strip()]


def merge_input_section(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Overlay a command line input selection on the input section of the file.

    Picking a variant on the command line replaces the variant of the file;
    the other keys of the file (product_name, build_command...) are kept.
    """
    override = {key: value for key, value in override.items() if value is not None}
    merged = dict(base)
    if any(key in override for key in INPUT_KINDS):
        for key in INPUT_KINDS:
            merged.pop(key, None)
    merged.update(override)
    return merged


def load_deploy_settings(config_path: str | Path | None = None, **overrides: object) -> DeploySettings:
    """
    Build DeploySettings from an optional YAML file and keyword overrides.

    Overrides whose value is None are ignored, so unset command line flags
    keep the file (or default) value.

    Raises:
        ConfigError: If the file is unreadable or a value has the wrong type
    """
    data: dict[str, Any] = {}
    if config_path is not None:
        data = ConfigManager(config_path).get_all()

    overrides = {key: value for key, value in overrides.items() if value is not None}
    if isinstance(overrides.get("input"), dict):
        base = data.get("input") if isinstance(data.get("input"), dict) else {}
        overrides["input"] = merge_input_section(base, overrides["input"])

    settings = DeploySettings()
    for key, value in {**data, **overrides}.items():
        if not hasattr(settings, key):
            logger.warning("Ignoring unknown setting '%s'", key)
            continue
        setattr(settings, key, value)

    settings.types = split_types(settings.types)
    settings.web_service_arguments = [str(argument) for argument in settings.web_service_arguments or []]
    settings.credentials_file = Path(settings.credentials_file) if settings.credentials_file else None
    settings.inventory_file = Path(settings.inventory_file) if settings.inventory_file else None
    try:
        settings.port = int(settings.port)
        settings.redeployment_interval = float(settings.redeployment_interval)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid numeric setting: {exc}") from exc
    if not isinstance(settings.input, dict):
        raise ConfigError("The 'input' section must be a mapping")
    if not isinstance(settings.actions, list):
        raise ConfigError("The 'actions' section must be a list")
    return settings


def build_input_source(settings: DeploySettings) -> InputSource:
    """
    Pick the input variant configured in settings.input.

    Raises:
        ConfigError: If no variant or more than one variant is configured
    """
    section = settings.input
    configured = [key for key in INPUT_KINDS if section.get(key)]
    if len(configured) != 1:
        raise ConfigError(
            "Exactly one of input.docker_image, input.package_dir or input.compose_file "
            f"must be set (got {configured or 'none'})"
        )

    kind = configured[0]
    if kind == "docker_image":
        return ContainerImageInput(image=str(section["docker_image"]))
    if kind == "compose_file":
        return ComposeFileInput(compose_file=Path(section["compose_file"]))

    product = section.get("product_name")
    if not product:
        raise ConfigError("input.product_name is required together with input.package_dir")
    extra = {key: section[key] for key in ("fetch_command", "build_command") if section.get(key)}
    return SourcePackageInput(package_dir=Path(section["package_dir"]), product=str(product), **extra)


def _scope(value: Any) -> RegistrationScope:
    if value is None or value == "all":
        return RegistrationScope.all()
    if isinstance(value, str):
        return RegistrationScope.one(value)
    if isinstance(value, list):
        return RegistrationScope.some([str(item) for item in value])
    raise ConfigError(f"Invalid action scope: {value!r}")


def _volumes(value: Any) -> list[tuple[str, str]]:
    volumes = []
    for volume in value or []:
        if not isinstance(volume, dict) or "host" not in volume or "container" not in volume:
            raise ConfigError(f"Action volumes need 'host' and 'container': {volume!r}")
        volumes.append((str(volume["host"]), str(volume["container"])))
    return volumes


def build_actions(settings: DeploySettings) -> list[tuple[RegistrationScope, DockerDiscoveryAction, str]]:
    """
    Docker discovery actions from settings.actions, as (scope, action, option).

    Entry example:
        - identifier: docker_lifx
          option: lifx
          image: registry/lifx-action:latest
          result_file: /usr/deployment/lifx_devices
          command: /app/tmp --number-only
          privileged: true
          network: host
          volumes: [{host: /usr/deployment, container: /app/tmp}]
          scope: all
    """
    bindings = []
    for entry in settings.actions:
        if not isinstance(entry, dict):
            raise ConfigError(f"Invalid action entry: {entry!r}")
        missing = [key for key in ("identifier", "image", "result_file") if not entry.get(key)]
        if missing:
            raise ConfigError(f"Action entry {entry.get('identifier', entry)!r} is missing {', '.join(missing)}")
        action = DockerDiscoveryAction(
            identifier=str(entry["identifier"]),
            image=str(entry["image"]),
            result_file=str(entry["result_file"]),
            command=str(entry.get("command", "")),
            privileged=bool(entry.get("privileged", False)),
            network=entry.get("network"),
            volumes=_volumes(entry.get("volumes")),
            credentials=Credentials(
                username=str(entry.get("username", "")),
                password=str(entry.get("password", "")),
            ),
        )
        option = str(entry.get("option") or entry["identifier"])
        bindings.append((_scope(entry.get("scope")), action, option))
    return bindings


__all__ = [
    "ConfigManager",
    "DeploySettings",
    "build_actions",
    "build_input_source",
    "load_deploy_settings",
    "merge_input_section",
    "split_types",
]
