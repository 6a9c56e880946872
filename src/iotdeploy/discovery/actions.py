"""Post-discovery actions run on every device right after it was found."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..deploy.inputs import docker_login
from ..deploy.transfer import ContainerOptions, run_container
from ..domain import Credentials
from ..interfaces import RemoteExecutor

logger = logging.getLogger(__name__)

CREATE_DEPLOYMENT_DIRECTORY = "createDeploymentDir"


@dataclass
class CreateDeploymentDirectoryAction:
    """Make sure the deployment directory exists and belongs to the login user."""

    deployment_dir: str
    identifier: str = CREATE_DEPLOYMENT_DIRECTORY

    def run(self, remote: RemoteExecutor) -> int:
        if remote.probe(f"mkdir -p {self.deployment_dir}"):
            return 0
        logger.debug("mkdir failed on %s, retrying with sudo", remote.device.hostname)
        remote.execute(f"sudo mkdir -p {self.deployment_dir}")
        owner = remote.device.username
        if owner:
            remote.execute(f"sudo chown {owner}:{owner} {self.deployment_dir}")
        return 0


@dataclass
class DockerDiscoveryAction:
    """
    Look for end devices by running a discovery image on the device.

    The image writes the number of end devices it found to result_file
    (a path on the device, typically inside a mounted volume).

    Attributes:
        identifier: Action identifier, reported in the discovery counts
        image: Discovery image to run
        result_file: Remote file the image writes its count to
        command: Arguments passed to the image
        privileged: Run the container privileged
        network: Docker network, e.g. "host"
        volumes: (host_dir, container_dir) bind mounts
        credentials: Registry login, anonymous when omitted
    """

    identifier: str
    image: str
    result_file: str
    command: str = ""
    privileged: bool = False
    network: str | None = None
    volumes: list[tuple[str, str]] = field(default_factory=list)
    credentials: Credentials = field(default_factory=Credentials.empty, repr=False)

    @property
    def container_options(self) -> ContainerOptions:
        return ContainerOptions(
            privileged=self.privileged,
            network=self.network,
            extra_volumes=tuple(tuple(volume) for volume in self.volumes),
        )

    def run(self, remote: RemoteExecutor) -> int:
        docker_login(remote, self.credentials)
        run_container(remote, self.image, self.command, None, self.container_options)
        output = remote.execute(f"cat {self.result_file}").strip()
        try:
            found = int(output or 0)
        except ValueError:
            logger.warning(
                "%s wrote %r to %s, expected a number of devices",
                self.identifier,
                output,
                self.result_file,
            )
            return 0
        logger.info("%s found %s end devices on %s", self.identifier, found, remote.device.hostname)
        return found


__all__ = [
    "CREATE_DEPLOYMENT_DIRECTORY",
    "CreateDeploymentDirectoryAction",
    "DockerDiscoveryAction",
]
