"""
Remote execution over SSH.

Uses paramiko with password authentication. One RemoteSession is opened per
device and every command is a single exec on that connection: no remote shell
state (cwd, env) survives between two calls, so a working directory is
applied as ``cd <dir> && <command>``. Files travel over SFTP on the same
connection, so uploads need no more than the device password.
"""

from __future__ import annotations

import logging
import os
import posixpath
import socket
from collections.abc import Callable
from pathlib import Path

import paramiko

from ..domain import Device, RemoteCommandError, TransportError

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], paramiko.SSHClient]


def compose_command(command: str, working_dir: str | None = None) -> str:
    """Prefix command with a cd into working_dir, if one is given."""
    if not working_dir:
        return command
    return f"cd {working_dir} && {command}"


class RemoteSession:
    """
    Authenticated SSH session on one device.

    Two ways to run a command:
    - execute(): assert mode, a non-zero exit raises RemoteCommandError
    - probe(): probe mode, the exit status is returned as a bool

    Usage:
        with RemoteSession(device) as remote:
            remote.execute("uname -a")
            if not remote.probe("docker compose version"):
                ...
    """

    def __init__(
        self,
        device: Device,
        port: int = 22,
        connect_timeout: float = 10,
        command_timeout: float | None = None,
        client_factory: ClientFactory = paramiko.SSHClient,
    ) -> None:
        self.device = device
        self.port = port
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self._client_factory = client_factory
        self._ssh_client: paramiko.SSHClient | None = None

    def __enter__(self) -> RemoteSession:
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()

    # =========================================================================
    # Connection Management
    # =========================================================================

    def connect(self) -> None:
        """
        Open the SSH connection.

        Raises:
            TransportError: If the device has no address or cannot be reached
        """
        host = self.device.address()
        client = self._client_factory()
        # Devices are discovered dynamically, their host keys are unknown up front.
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=host,
                port=self.port,
                username=self.device.username,
                password=self.device.password or None,
                timeout=self.connect_timeout,
                allow_agent=not self.device.password,
                look_for_keys=not self.device.password,
            )
        except paramiko.AuthenticationException as exc:
            client.close()
            raise TransportError(
                f"Authentication failed for {self.device.username}@{host}: {exc}"
            ) from exc
        except (paramiko.SSHException, socket.error) as exc:
            client.close()
            raise TransportError(f"Unable to reach {self.device.username}@{host}: {exc}") from exc

        self._ssh_client = client
        logger.debug("SSH connected to %s@%s", self.device.username, host)

    def disconnect(self) -> None:
        if self._ssh_client:
            self._ssh_client.close()
            self._ssh_client = None
            logger.debug("SSH disconnected from %s", self.device.hostname)

    def is_connected(self) -> bool:
        if not self._ssh_client:
            return False
        transport = self._ssh_client.get_transport()
        return transport is not None and transport.is_active()

    # =========================================================================
    # Command Execution
    # =========================================================================

    def run_command(
        self,
        command: str,
        working_dir: str | None = None,
        *,
        stdin_data: str | None = None,
    ) -> tuple[int, str, str]:
        """
        Run a command on the device.

        Returns:
            Tuple (exit_code, stdout, stderr)
        """
        if not self._ssh_client:
            self.connect()

        full_command = compose_command(command, working_dir)
        logger.debug("Executing on %s: %s", self.device.hostname, full_command)

        try:
            stdin, stdout, stderr = self._ssh_client.exec_command(
                full_command, timeout=self.command_timeout
            )
            if stdin_data is not None:
                stdin.write(stdin_data)
                stdin.flush()
                stdin.channel.shutdown_write()
            stdout_text = stdout.read().decode("utf-8", errors="replace")
            stderr_text = stderr.read().decode("utf-8", errors="replace")
            exit_code = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, socket.error) as exc:
            raise TransportError(f"Lost connection to {self.device}: {exc}") from exc

        return exit_code, stdout_text, stderr_text

    def execute(
        self,
        command: str,
        working_dir: str | None = None,
        *,
        stdin_data: str | None = None,
    ) -> str:
        """
        Run a command and return its stdout.

        Raises:
            RemoteCommandError: If the command exits with a non-zero status
            TransportError: If the connection fails
        """
        exit_code, stdout_text, stderr_text = self.run_command(
            command, working_dir, stdin_data=stdin_data
        )
        if exit_code != 0:
            logger.error("Command failed on %s (exit %s): %s", self.device.hostname, exit_code, command)
            raise RemoteCommandError(
                compose_command(command, working_dir),
                exit_code,
                stderr_text,
                host=self.device.hostname,
            )
        return stdout_text

    def probe(
        self,
        command: str,
        working_dir: str | None = None,
        *,
        stdin_data: str | None = None,
    ) -> bool:
        """Run a command and report whether it succeeded."""
        exit_code, _, stderr_text = self.run_command(command, working_dir, stdin_data=stdin_data)
        if exit_code != 0:
            logger.debug(
                "Probe returned %s on %s: %s (%s)",
                exit_code,
                self.device.hostname,
                command,
                stderr_text.strip(),
            )
        return exit_code == 0

    # =========================================================================
    # File Transfer
    # =========================================================================

    def _open_sftp(self) -> paramiko.SFTPClient:
        if not self._ssh_client:
            self.connect()
        try:
            return self._ssh_client.open_sftp()
        except (paramiko.SSHException, socket.error) as exc:
            raise TransportError(f"Unable to open SFTP on {self.device}: {exc}") from exc

    def upload_file(self, local_path: str | Path, remote_path: str) -> None:
        """
        Upload one file over SFTP on the authenticated connection.

        Raises:
            TransportError: If the upload fails
        """
        sftp = self._open_sftp()
        try:
            sftp.put(str(local_path), remote_path)
        except (paramiko.SSHException, OSError) as exc:
            raise TransportError(f"Upload of {local_path} to {self.device}:{remote_path} failed: {exc}") from exc
        finally:
            sftp.close()
        logger.debug("Uploaded %s -> %s:%s", local_path, self.device.hostname, remote_path)

    def upload_directory(self, local_dir: str | Path, remote_dir: str) -> int:
        """
        Copy the content of local_dir into remote_dir over SFTP.

        Additive like rsync: remote files missing locally are left alone.
        Missing remote directories are created. Returns the number of files sent.

        Raises:
            TransportError: If a directory cannot be created or a file upload fails
        """
        local_dir = Path(local_dir)
        sftp = self._open_sftp()
        uploaded = 0
        try:
            for root, _, files in os.walk(local_dir):
                relative = Path(root).relative_to(local_dir)
                target_dir = posixpath.join(remote_dir, *relative.parts)
                _ensure_remote_dir(sftp, target_dir)
                for name in sorted(files):
                    sftp.put(os.path.join(root, name), posixpath.join(target_dir, name))
                    uploaded += 1
        except (paramiko.SSHException, OSError) as exc:
            raise TransportError(f"Upload of {local_dir} to {self.device}:{remote_dir} failed: {exc}") from exc
        finally:
            sftp.close()
        logger.debug("Uploaded %s files from %s to %s:%s", uploaded, local_dir, self.device.hostname, remote_dir)
        return uploaded


def _ensure_remote_dir(sftp: paramiko.SFTPClient, path: str) -> None:
    """mkdir -p over SFTP."""
    if not path or path == "/":
        return
    try:
        sftp.stat(path)
        return
    except FileNotFoundError:
        pass
    _ensure_remote_dir(sftp, posixpath.dirname(path.rstrip("/")))
    sftp.mkdir(path)


__all__ = ["RemoteSession", "compose_command"]
