"""
Deployment inputs.

An input source decides where the deployable artifact comes from and,
through that, every command the pipeline issues on a device:

    - SourcePackageInput: copy sources, fetch dependencies, build on the device,
      run the binary in a tmux session
    - ContainerImageInput: log into the registry, run the image with docker
    - ComposeFileInput: log into the registry, copy the compose file, run
      docker compose with a generated env file

Each variant implements the same three steps: prepare_inputs(),
export_structure() and launch().
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

from ..credentials import DOCKER_COMPOSE_KEY
from ..domain import Credentials, PlacementNode, ServicePlacement
from ..interfaces import RemoteExecutor
from .context import DOCKER_VOLUME_DIR, DeploymentContext
from .structure import STRUCTURE_FILENAME, export_structure_command, read_placement, startup_command
from .transfer import (
    ContainerOptions,
    Runner,
    StartupMode,
    StructureExportMode,
    copy_directory,
    materialize_env_file,
    run_compose,
    run_container,
)

logger = logging.getLogger(__name__)

CONTAINER_INSTANCE_NAME = "IoTDeploymentInstance"


def docker_login(remote: RemoteExecutor, credentials: Credentials) -> bool:
    """
    Log into the container registry on the device.

    The password goes through stdin so it never appears in a command line.
    Anonymous credentials skip the login (public registry).
    """
    if credentials.is_anonymous:
        logger.info("No registry credentials given, assuming a public registry")
        return False
    logger.info("Logging into docker")
    logged_in = remote.probe(
        f"sudo docker login --username {credentials.username} --password-stdin",
        stdin_data=f"{credentials.password}\n",
    )
    if not logged_in:
        logger.warning("docker login failed on %s, continuing", remote.device.hostname)
    return logged_in


def ensure_writable(remote: RemoteExecutor, directory: str) -> None:
    """Make sure containers can write into directory."""
    if not remote.probe(f"test -w {directory}"):
        remote.probe(f"sudo chmod 777 {directory}")


def clear_structure_file(remote: RemoteExecutor, context: DeploymentContext) -> str:
    """Remove the descriptor of an earlier run so only a fresh export is read."""
    structure_path = context.remote_path(STRUCTURE_FILENAME)
    remote.probe(f"sudo rm -f {structure_path}")
    return structure_path


@dataclass
class InputSource(ABC):
    """Common interface of the three input variants."""

    runner: Runner = field(default=subprocess.run, repr=False, compare=False, kw_only=True)

    @property
    @abstractmethod
    def product_name(self) -> str:
        ...

    @property
    def registry_key(self) -> str | None:
        """Credential key of the container registry, if this input needs one."""
        return None

    def watch_paths(self) -> list[Path]:
        """Local paths whose changes should trigger a redeployment."""
        return []

    @abstractmethod
    def prepare_inputs(
        self,
        context: DeploymentContext,
        remote: RemoteExecutor,
        registry_credentials: Credentials | None = None,
    ) -> None:
        ...

    @abstractmethod
    def export_structure(
        self,
        context: DeploymentContext,
        remote: RemoteExecutor,
        action_keys: str,
    ) -> tuple[str, ServicePlacement]:
        """Have the service export its placement; returns (remote path, placement)."""
        ...

    @abstractmethod
    def launch(
        self,
        context: DeploymentContext,
        remote: RemoteExecutor,
        node: PlacementNode,
        structure_path: str,
    ) -> None:
        ...


@dataclass
class SourcePackageInput(InputSource):
    """Sources copied to the device and built there."""

    package_dir: Path
    product: str
    fetch_command: str = "swift package update"
    build_command: str | None = None
    build_dir: str = ".build"
    binary_dir: str = ".build/debug"

    def __post_init__(self) -> None:
        self.package_dir = Path(self.package_dir)

    @property
    def product_name(self) -> str:
        return self.product

    def watch_paths(self) -> list[Path]:
        return [self.package_dir]

    def remote_package_dir(self, context: DeploymentContext) -> str:
        return context.remote_path(self.product)

    def remote_binary_dir(self, context: DeploymentContext) -> str:
        return context.remote_path(self.product, self.binary_dir)

    def prepare_inputs(
        self,
        context: DeploymentContext,
        remote: RemoteExecutor,
        registry_credentials: Credentials | None = None,
    ) -> None:
        # Local build output targets another architecture, it must not be copied.
        local_build = self.package_dir / self.build_dir
        if local_build.is_dir():
            logger.debug("Removing local build output %s", local_build)
            shutil.rmtree(local_build)

        package_dir = self.remote_package_dir(context)
        logger.info("Copying sources to remote")
        copy_directory(self.package_dir, remote, package_dir, self.runner)

        logger.info("Fetching the newest dependencies")
        remote.execute(self.fetch_command, package_dir)

        logger.info("Building package on remote")
        build_command = self.build_command or f"swift build -c debug --product {self.product}"
        remote.execute(build_command, package_dir)

    def export_structure(
        self,
        context: DeploymentContext,
        remote: RemoteExecutor,
        action_keys: str,
    ) -> tuple[str, ServicePlacement]:
        # Unique per export so several devices never share a descriptor file.
        structure_path = context.remote_path(f"AM_{uuid.uuid4()}.json")
        command = export_structure_command(
            context.flattened_arguments,
            structure_path,
            remote.device.address(),
            action_keys,
            context.port,
        )
        remote.execute(f"./{self.product} {command}", self.remote_binary_dir(context))
        return structure_path, read_placement(remote, structure_path, context.deployment_dir)

    def launch(
        self,
        context: DeploymentContext,
        remote: RemoteExecutor,
        node: PlacementNode,
        structure_path: str,
    ) -> None:
        command = startup_command(
            context.flattened_arguments, structure_path, node.id, ",".join(node.handler_ids)
        )
        remote.probe(f"tmux kill-session -t {self.product}")
        remote.execute(
            f"tmux new-session -d -s {self.product} './{self.product} {command}'",
            self.remote_binary_dir(context),
        )


@dataclass
class ContainerImageInput(InputSource):
    """A prebuilt image pulled by the device."""

    image: str

    @property
    def product_name(self) -> str:
        return CONTAINER_INSTANCE_NAME

    @property
    def registry_key(self) -> str:
        return self.image

    def prepare_inputs(
        self,
        context: DeploymentContext,
        remote: RemoteExecutor,
        registry_credentials: Credentials | None = None,
    ) -> None:
        logger.info("A docker image was specified, so skipping copying, fetching and building")
        docker_login(remote, registry_credentials or Credentials.empty())

    def export_structure(
        self,
        context: DeploymentContext,
        remote: RemoteExecutor,
        action_keys: str,
    ) -> tuple[str, ServicePlacement]:
        ensure_writable(remote, context.deployment_dir)
        structure_path = clear_structure_file(remote, context)
        command = export_structure_command(
            context.flattened_arguments,
            f"{DOCKER_VOLUME_DIR}/{STRUCTURE_FILENAME}",
            remote.device.address(),
            action_keys,
            context.port,
        )
        run_container(remote, self.image, command, context.deployment_dir)
        return structure_path, read_placement(remote, structure_path, context.deployment_dir)

    def launch(
        self,
        context: DeploymentContext,
        remote: RemoteExecutor,
        node: PlacementNode,
        structure_path: str,
    ) -> None:
        command = startup_command(
            context.flattened_arguments,
            f"{DOCKER_VOLUME_DIR}/{STRUCTURE_FILENAME}",
            node.id,
            ",".join(node.handler_ids),
        )
        remote.probe(f"sudo docker rm -f {self.product_name}")
        run_container(
            remote,
            self.image,
            command,
            context.deployment_dir,
            ContainerOptions(
                detached=True,
                privileged=True,
                port=context.port,
                container_name=self.product_name,
            ),
        )


@dataclass
class ComposeFileInput(InputSource):
    """A docker compose stack; the compose file reads ENV_* from deployment.env."""

    compose_file: Path

    def __post_init__(self) -> None:
        self.compose_file = Path(self.compose_file)

    @property
    def product_name(self) -> str:
        return self.compose_file.resolve().parent.name

    @property
    def registry_key(self) -> str:
        return DOCKER_COMPOSE_KEY

    def watch_paths(self) -> list[Path]:
        return [self.compose_file]

    def remote_config_path(self, context: DeploymentContext) -> str:
        return context.remote_path(self.compose_file.name)

    def prepare_inputs(
        self,
        context: DeploymentContext,
        remote: RemoteExecutor,
        registry_credentials: Credentials | None = None,
    ) -> None:
        docker_login(remote, registry_credentials or Credentials.empty())
        logger.info("Copying docker compose file to remote")
        remote.upload_file(self.compose_file, self.remote_config_path(context))

    def export_structure(
        self,
        context: DeploymentContext,
        remote: RemoteExecutor,
        action_keys: str,
    ) -> tuple[str, ServicePlacement]:
        ensure_writable(remote, context.deployment_dir)
        structure_path = clear_structure_file(remote, context)
        mode = StructureExportMode(
            action_keys=action_keys,
            file_path=f"{DOCKER_VOLUME_DIR}/{STRUCTURE_FILENAME}",
            ip_address=remote.device.address(),
            port=context.port,
        )
        env_path = materialize_env_file(mode, context, remote)
        run_compose(remote, self.remote_config_path(context), env_path)
        return structure_path, read_placement(remote, structure_path, context.deployment_dir)

    def launch(
        self,
        context: DeploymentContext,
        remote: RemoteExecutor,
        node: PlacementNode,
        structure_path: str,
    ) -> None:
        mode = StartupMode(
            file_path=f"{DOCKER_VOLUME_DIR}/{STRUCTURE_FILENAME}",
            node_id=node.id,
            handler_ids=",".join(node.handler_ids),
        )
        env_path = materialize_env_file(mode, context, remote)
        run_compose(remote, self.remote_config_path(context), env_path, detached=True)


__all__ = [
    "CONTAINER_INSTANCE_NAME",
    "ComposeFileInput",
    "ContainerImageInput",
    "InputSource",
    "SourcePackageInput",
    "clear_structure_file",
    "docker_login",
    "ensure_writable",
]
