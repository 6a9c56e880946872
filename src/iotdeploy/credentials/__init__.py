"""Credential resolution for devices and registries."""

from .store import DOCKER_COMPOSE_KEY, CredentialStore, read_username_and_password

__all__ = ["DOCKER_COMPOSE_KEY", "CredentialStore", "read_username_and_password"]
