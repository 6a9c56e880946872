"""Configuration - YAML settings and the objects built from them."""

from .loader import (
    ConfigManager,
    DeploySettings,
    build_actions,
    build_input_source,
    load_deploy_settings,
    merge_input_section,
    split_types,
)

__all__ = [
    "ConfigManager",
    "DeploySettings",
    "build_actions",
    "build_input_source",
    "load_deploy_settings",
    "merge_input_section",
    "split_types",
]
