"""Remote execution client (SSH)."""

from .session import RemoteSession, compose_command

__all__ = ["RemoteSession", "compose_command"]
