"""
Deployment exceptions.

Every failure raised by the pipeline derives from DeploymentError so the CLI
can report it uniformly. Which ones abort a single device and which ones
abort the whole run is decided by the orchestrator.
"""


class DeploymentError(Exception):
    """Base class for deployment errors."""

    pass


class ConfigError(DeploymentError):
    """Bad or ambiguous credential file, or invalid input configuration."""

    pass


class TransportError(DeploymentError):
    """The device could not be resolved or reached."""

    pass


class RemoteCommandError(DeploymentError):
    """A remote command exited with a non-zero status in assert mode."""

    def __init__(self, command: str, exit_status: int, stderr: str = "", host: str = "") -> None:
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr
        self.host = host
        location = f" on {host}" if host else ""
        message = f"Command failed{location} (exit {exit_status}): {command}"
        if stderr.strip():
            message += f"\n{stderr.strip()}"
        super().__init__(message)


class DecodeError(DeploymentError):
    """The placement descriptor returned by the device is malformed."""

    pass


class IntegrityError(DeploymentError):
    """More than one placement node claims the same device address."""

    pass


__all__ = [
    "ConfigError",
    "DecodeError",
    "DeploymentError",
    "IntegrityError",
    "RemoteCommandError",
    "TransportError",
]
