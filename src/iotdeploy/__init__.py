"""
iotdeploy - deploy a web service onto discovered IoT devices.

Devices are found by type (mDNS or a static inventory), prepared over SSH,
asked which placement node they are, and started as that node.
"""

__version__ = "0.4.0"
__license__ = "MIT"


# Lazy imports to avoid circular dependencies
def __getattr__(name):
    if name == "DeploymentOrchestrator":
        from .deploy.orchestrator import DeploymentOrchestrator
        return DeploymentOrchestrator
    elif name == "CredentialStore":
        from .credentials import CredentialStore
        return CredentialStore
    elif name == "DeploymentError":
        from .domain import DeploymentError
        return DeploymentError
    raise AttributeError(f"module 'iotdeploy' has no attribute '{name}'")


__all__ = [
    "CredentialStore",
    "DeploymentError",
    "DeploymentOrchestrator",
]
