"""
SSH/SFTP transfer channel using paramiko.

The blocking primitives (open_session, open_transfer_subchannel,
create_remote_file, write, flush) map one to one onto paramiko calls.
RemoteTransfer wraps them for use from coroutines by pushing every
blocking call into the loop's default executor.
"""

import asyncio
import ipaddress
import logging
import posixpath
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Callable, Optional, Union

import paramiko
from paramiko import AutoAddPolicy, RejectPolicy, SFTPClient, SFTPFile, SSHClient, WarningPolicy

from hydra_migration.core.exceptions import RemoteCommandError, TransferError
from hydra_migration.models.config import HostKeyPolicy, SSHConfig

logger = logging.getLogger(__name__)

Address = Union[str, ipaddress.IPv4Address, ipaddress.IPv6Address]

_HOST_KEY_POLICIES = {
    HostKeyPolicy.AUTO_ADD: AutoAddPolicy,
    HostKeyPolicy.WARNING: WarningPolicy,
    HostKeyPolicy.REJECT: RejectPolicy,
}


@dataclass
class CommandResult:
    """Exit status and output of a remote command."""
    command: str
    exit_status: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class SSHSession:
    """An authenticated SSH session to a destination host."""

    def __init__(self, client: SSHClient, address: str):
        self.client = client
        self.address = address

    @property
    def is_active(self) -> bool:
        transport = self.client.get_transport()
        return bool(transport and transport.is_active())

    def run(self, command: str, timeout: Optional[float] = None) -> CommandResult:
        try:
            _, stdout, stderr = self.client.exec_command(command, timeout=timeout)
            # Drain both streams first; a full channel window blocks the remote end.
            out = stdout.read().decode(errors='replace')
            err = stderr.read().decode(errors='replace')
            exit_status = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, OSError) as e:
            raise TransferError(
                f"Failed to run command on {self.address}: {e}",
                details={'command': command}
            ) from e
        return CommandResult(command=command, exit_status=exit_status, stdout=out, stderr=err)

    def close(self) -> None:
        self.client.close()
        logger.debug(f"SSH connection to {self.address} closed")


def open_session(address: Address, ssh_config: Optional[SSHConfig] = None) -> SSHSession:
    """
    Open an authenticated SSH session to address.

    Authentication material comes from ssh_config and is passed to
    paramiko unchanged.
    """
    ssh_config = ssh_config or SSHConfig()
    host = str(address)

    client = SSHClient()
    if ssh_config.host_key_policy == HostKeyPolicy.REJECT:
        client.load_system_host_keys()
    client.set_missing_host_key_policy(_HOST_KEY_POLICIES[ssh_config.host_key_policy]())

    connect_params = {
        'hostname': host,
        'port': ssh_config.port,
        'username': ssh_config.username,
        'timeout': ssh_config.timeout,
        'compress': ssh_config.compress,
        'look_for_keys': ssh_config.look_for_keys,
        'allow_agent': ssh_config.allow_agent,
    }
    if ssh_config.password:
        connect_params['password'] = ssh_config.password
    if ssh_config.key_filename:
        connect_params['key_filename'] = ssh_config.key_filename

    try:
        client.connect(**connect_params)
    except (paramiko.SSHException, OSError) as e:
        client.close()
        raise TransferError(
            f"Failed to open SSH session to {host}:{ssh_config.port}: {e}",
            details={'address': host, 'port': ssh_config.port}
        ) from e

    logger.info(f"SSH connection established to {host}:{ssh_config.port}")
    return SSHSession(client, host)


def open_transfer_subchannel(session: SSHSession) -> SFTPClient:
    """Open the SFTP subsystem over an existing session."""
    try:
        return session.client.open_sftp()
    except (paramiko.SSHException, OSError) as e:
        raise TransferError(f"Failed to open SFTP channel to {session.address}: {e}") from e


def create_remote_file(channel: SFTPClient, path: str) -> SFTPFile:
    """Create (or truncate) a remote file for writing."""
    try:
        return channel.open(path, 'wb')
    except (paramiko.SSHException, OSError) as e:
        raise TransferError(f"Failed to create remote file {path}: {e}", details={'path': path}) from e


def write(handle: SFTPFile, data: bytes) -> None:
    try:
        handle.write(data)
    except (paramiko.SSHException, OSError) as e:
        raise TransferError(f"Failed to write remote file: {e}") from e


def flush(handle: SFTPFile) -> None:
    """Flush buffered writes so the remote file is fully written."""
    try:
        handle.flush()
    except (paramiko.SSHException, OSError) as e:
        raise TransferError(f"Failed to flush remote file: {e}") from e


def ensure_remote_directory(channel: SFTPClient, remote_path: str) -> None:
    """Create remote_path and its parents if they do not exist."""
    if not remote_path or remote_path in ('/', '.'):
        return
    try:
        channel.stat(remote_path)
    except FileNotFoundError:
        ensure_remote_directory(channel, posixpath.dirname(remote_path.rstrip('/')))
        try:
            channel.mkdir(remote_path)
        except (paramiko.SSHException, OSError) as e:
            raise TransferError(f"Failed to create remote directory {remote_path}: {e}") from e
    except (paramiko.SSHException, OSError) as e:
        raise TransferError(f"Failed to stat remote directory {remote_path}: {e}") from e


def upload_file(
    channel: SFTPClient,
    local_path: Union[str, Path],
    remote_path: str,
    chunk_size: int = 32768,
    progress_callback: Optional[Callable[[int, int], None]] = None
) -> int:
    """
    Stream a local file to remote_path and flush it.

    Returns:
        Number of bytes written
    """
    local_path = Path(local_path)
    try:
        total = local_path.stat().st_size
        source = open(local_path, 'rb')
    except OSError as e:
        raise TransferError(f"Cannot read local file {local_path}: {e}") from e

    transferred = 0
    with source:
        handle = create_remote_file(channel, remote_path)
        try:
            for chunk in iter(partial(source.read, chunk_size), b''):
                write(handle, chunk)
                transferred += len(chunk)
                if progress_callback:
                    progress_callback(transferred, total)
            flush(handle)
        finally:
            handle.close()

    return transferred


class RemoteTransfer:
    """
    Coroutine-facing wrapper around one SSH session and its SFTP channel.

    Usage:
        async with RemoteTransfer(address, ssh_config) as remote:
            await remote.upload(local_archive, remote_archive)
            await remote.run_command("hydra-migrate restore ...")
    """

    def __init__(
        self,
        address: Address,
        ssh_config: Optional[SSHConfig] = None,
        session_factory: Callable[..., SSHSession] = open_session
    ):
        self.address = address
        self.ssh_config = ssh_config or SSHConfig()
        self._session_factory = session_factory
        self._session: Optional[SSHSession] = None
        self._sftp: Optional[SFTPClient] = None
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def _call(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    async def connect(self) -> None:
        if self._session and self._session.is_active:
            return
        self._session = await self._call(self._session_factory, self.address, self.ssh_config)
        self._sftp = await self._call(open_transfer_subchannel, self._session)

    async def upload(
        self,
        local_path: Union[str, Path],
        remote_path: str,
        chunk_size: int = 32768,
        create_directories: bool = True
    ) -> int:
        await self.connect()
        if create_directories:
            await self._call(ensure_remote_directory, self._sftp, posixpath.dirname(remote_path))

        size = await self._call(upload_file, self._sftp, local_path, remote_path, chunk_size)
        self.logger.info(f"Uploaded {local_path} to {self.address}:{remote_path} ({size} bytes)")
        return size

    async def run_command(self, command: str, check: bool = True, timeout: Optional[float] = None) -> CommandResult:
        await self.connect()
        self.logger.info(f"Running on {self.address}: {command}")
        result = await self._call(self._session.run, command, timeout)

        if check and not result.ok:
            raise RemoteCommandError(
                f"Remote command exited with status {result.exit_status} on {self.address}: {command}",
                command=command,
                exit_status=result.exit_status,
                stderr=result.stderr,
                details={'address': str(self.address)}
            )
        return result

    async def close(self) -> None:
        if self._sftp is not None:
            self._sftp.close()
            self._sftp = None
        if self._session is not None:
            self._session.close()
            self._session = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
