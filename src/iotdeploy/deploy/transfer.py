"""File transfer and container launch helpers."""

from __future__ import annotations

import logging
import shlex
import subprocess
import tempfile
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from ..domain import Device, TransportError
from ..interfaces import RemoteExecutor
from .context import DOCKER_VOLUME_DIR, DeploymentContext
from .structure import export_structure_command, startup_command

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]

ENV_FILENAME = "deployment.env"
ENV_KEYS = ("ENV_FILEPATH", "ENV_COMMAND", "ENV_DEPLOYPATH")


def run_command(
    args: Sequence[str],
    runner: Runner = subprocess.run,
    *,
    capture_output: bool = False,
    check: bool = True,
) -> subprocess.CompletedProcess:
    command = [str(arg) for arg in args]
    logger.debug("Running command: %s", " ".join(shlex.quote(part) for part in command))
    return runner(command, check=check, text=True, capture_output=capture_output)


# =========================================================================
# rsync
# =========================================================================


def _base_ssh_options(connect_timeout: int = 10) -> list[str]:
    return [
        "-o",
        "BatchMode=yes",
        "-o",
        "StrictHostKeyChecking=accept-new",
        "-o",
        f"ConnectTimeout={connect_timeout}",
    ]


def rsync_target(device: Device, path: str) -> str:
    return f"{device.username}@{device.address()}:{path}"


def build_rsync_command(
    device: Device,
    origin: Path,
    destination_path: str,
    ssh_port: int = 22,
    verbose: bool = False,
) -> list[str]:
    """
    rsync command mirroring origin to destination_path on the device.

    A directory origin is synced by content (trailing slashes on both sides),
    a file lands inside destination_path.
    """
    ssh_parts = ["ssh", "-p", str(ssh_port), *_base_ssh_options()]
    ssh_command = " ".join(shlex.quote(part) for part in ssh_parts)
    local_value = str(origin)
    remote_value = destination_path
    if origin.is_dir():
        local_value = f"{local_value.rstrip('/')}/"
    if origin.is_dir() or not remote_value.endswith("/"):
        remote_value = f"{remote_value.rstrip('/')}/"
    command = ["rsync", "-avz" if verbose else "-az"]
    command.extend(["-e", ssh_command, local_value, rsync_target(device, remote_value)])
    return command


def sync_directory(
    origin: str | Path,
    device: Device,
    destination_path: str,
    runner: Runner = subprocess.run,
    ssh_port: int = 22,
) -> None:
    """
    Copy origin to the device with rsync.

    Additive only: remote files missing locally are left alone. The ssh
    transport runs in batch mode so it can never block on a prompt, which
    means the device must accept key-based login for the local user.

    Raises:
        TransportError: If rsync fails or is not installed
    """
    command = build_rsync_command(device, Path(origin), destination_path, ssh_port=ssh_port)
    try:
        run_command(command, runner)
    except subprocess.CalledProcessError as exc:
        raise TransportError(
            f"rsync of {origin} to {device} failed (exit {exc.returncode}); "
            "rsync needs key-based ssh login on the device"
        ) from exc
    except FileNotFoundError as exc:
        raise TransportError("rsync is not installed on this machine") from exc
    logger.debug("Synced %s -> %s:%s", origin, device.hostname, destination_path)


def copy_directory(
    origin: str | Path,
    remote: RemoteExecutor,
    destination_path: str,
    runner: Runner = subprocess.run,
) -> None:
    """
    Copy origin into destination_path on the device behind remote.

    A device with a password gets an SFTP upload on the open session. A
    device without one is synced with rsync over its ssh keys.

    Raises:
        TransportError: If the copy fails
    """
    if remote.device.password:
        count = remote.upload_directory(origin, destination_path)
        logger.debug("Uploaded %s files to %s:%s", count, remote.device.hostname, destination_path)
    else:
        sync_directory(origin, remote.device, destination_path, runner)


# =========================================================================
# docker / docker compose
# =========================================================================


@dataclass(frozen=True)
class ContainerOptions:
    """Flags of a docker run invocation. All of them are independent."""

    detached: bool = False
    privileged: bool = False
    port: int | None = None
    container_name: str | None = None
    network: str | None = None
    volume_dir: str = DOCKER_VOLUME_DIR
    extra_volumes: tuple[tuple[str, str], ...] = ()


def build_container_command(
    image: str,
    command: str,
    working_dir: str | None,
    options: ContainerOptions = ContainerOptions(),
) -> str:
    args = ["sudo", "docker", "run", "--rm"]
    if options.container_name:
        args.append(f"--name {options.container_name}")
    if options.port is not None:
        args.append(f"-p {options.port}:{options.port}")
    if options.detached:
        args.append("-d")
    if options.privileged:
        args.append("--privileged")
    if options.network:
        args.append(f"--network {options.network}")
    if working_dir:
        args.append(f"-v {working_dir}:{options.volume_dir}:Z")
    for host_dir, container_dir in options.extra_volumes:
        args.append(f"-v {host_dir}:{container_dir}")
    args.append(image)
    if command:
        args.append(command)
    return " ".join(args)


def run_container(
    remote: RemoteExecutor,
    image: str,
    command: str,
    working_dir: str | None,
    options: ContainerOptions = ContainerOptions(),
) -> str:
    """Run image on the device with working_dir mounted at options.volume_dir."""
    return remote.execute(build_container_command(image, command, working_dir, options), working_dir)


def compose_tool(remote: RemoteExecutor) -> str:
    """'docker compose' if the integrated plugin is available, else 'docker-compose'."""
    return "docker compose" if remote.probe("docker compose version") else "docker-compose"


def build_compose_command(tool: str, config_path: str, env_path: str, detached: bool = False) -> str:
    args = ["sudo", tool, "-f", config_path, "--env-file", env_path, "up"]
    if detached:
        args.append("-d")
    return " ".join(args)


def run_compose(
    remote: RemoteExecutor,
    config_path: str,
    env_path: str,
    detached: bool = False,
) -> str:
    command = build_compose_command(compose_tool(remote), config_path, env_path, detached)
    return remote.execute(command)


# =========================================================================
# compose environment file
# =========================================================================


@dataclass(frozen=True)
class StructureExportMode:
    action_keys: str
    file_path: str
    ip_address: str
    port: int

    def command(self, context: DeploymentContext) -> str:
        return export_structure_command(
            context.flattened_arguments,
            self.file_path,
            self.ip_address,
            self.action_keys,
            self.port,
        )


@dataclass(frozen=True)
class StartupMode:
    file_path: str
    node_id: str
    handler_ids: str

    def command(self, context: DeploymentContext) -> str:
        return startup_command(
            context.flattened_arguments, self.file_path, self.node_id, self.handler_ids
        )


EnvMode = StructureExportMode | StartupMode


def render_env_file(mode: EnvMode, context: DeploymentContext) -> str:
    """The three KEY=value lines the compose file substitutes."""
    values = {
        "ENV_FILEPATH": mode.file_path,
        "ENV_COMMAND": mode.command(context),
        "ENV_DEPLOYPATH": context.deployment_dir,
    }
    return "".join(f"{key}={values[key]}\n" for key in ENV_KEYS)


def materialize_env_file(mode: EnvMode, context: DeploymentContext, remote: RemoteExecutor) -> str:
    """Write the env file locally, upload it to the deployment dir and return its remote path."""
    remote_path = context.remote_path(ENV_FILENAME)
    with tempfile.TemporaryDirectory(prefix="iotdeploy_") as tmp_dir:
        env_path = Path(tmp_dir) / ENV_FILENAME
        env_path.write_text(render_env_file(mode, context), encoding="utf-8")
        logger.info("Created env file at %s", env_path)
        remote.upload_file(env_path, remote_path)
    logger.info("Copied env file to %s", remote.device.hostname)
    return remote_path


__all__ = [
    "ENV_FILENAME",
    "ENV_KEYS",
    "ContainerOptions",
    "StartupMode",
    "StructureExportMode",
    "build_compose_command",
    "build_container_command",
    "build_rsync_command",
    "compose_tool",
    "copy_directory",
    "materialize_env_file",
    "render_env_file",
    "rsync_target",
    "run_command",
    "run_compose",
    "run_container",
    "sync_directory",
]
