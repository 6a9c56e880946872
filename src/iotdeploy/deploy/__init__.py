"""
Deploy - the per-device deployment pipeline.

The orchestrator is imported lazily: it depends on the discovery package,
which itself uses the transfer helpers of this package.
"""

from .context import DOCKER_VOLUME_DIR, DeploymentContext
from .inputs import ComposeFileInput, ContainerImageInput, InputSource, SourcePackageInput
from .structure import compose_action_keys, decode_placement, select_node
from .watcher import ChangeWatcher


def __getattr__(name):
    if name == "DeploymentOrchestrator":
        from .orchestrator import DeploymentOrchestrator
        return DeploymentOrchestrator
    raise AttributeError(f"module 'iotdeploy.deploy' has no attribute '{name}'")


__all__ = [
    "DOCKER_VOLUME_DIR",
    "ChangeWatcher",
    "ComposeFileInput",
    "ContainerImageInput",
    "DeploymentContext",
    "DeploymentOrchestrator",
    "InputSource",
    "SourcePackageInput",
    "compose_action_keys",
    "decode_placement",
    "select_node",
]
