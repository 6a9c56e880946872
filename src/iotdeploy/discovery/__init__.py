"""
Discovery - locating devices and running post-discovery actions on them.
"""

from .actions import CREATE_DEPLOYMENT_DIRECTORY, CreateDeploymentDirectoryAction, DockerDiscoveryAction
from .avahi import AvahiDiscovery, parse_browse_output
from .base import BaseDiscovery, SessionFactory
from .static import StaticDiscovery, load_inventory

__all__ = [
    "CREATE_DEPLOYMENT_DIRECTORY",
    "AvahiDiscovery",
    "BaseDiscovery",
    "CreateDeploymentDirectoryAction",
    "DockerDiscoveryAction",
    "SessionFactory",
    "StaticDiscovery",
    "load_inventory",
    "parse_browse_output",
]
