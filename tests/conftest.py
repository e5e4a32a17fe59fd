"""
Pytest configuration and fixtures for the Hydra migration tests.

This module provides an in-memory workload engine and a fake SSH/SFTP
destination that maps remote paths into a temporary directory, so the
whole checkpoint, transfer and restore pipeline can run without Docker
or a second host.
"""

import io
import logging
import os
import shlex
import threading
from pathlib import Path
from typing import List, Optional, Set, Tuple
from unittest.mock import MagicMock

import pytest

from hydra_migration.archive import restore_containers
from hydra_migration.core.exceptions import ClientError
from hydra_migration.models.config import MigrationConfig, RemoteConfig
from hydra_migration.transfer.ssh import SSHSession
from hydra_migration.workload.base import Workload, WorkloadClient


class FakeWorkloadClient(WorkloadClient):
    """In-memory workload engine that writes checkpoint files into a state directory."""

    def __init__(self, state_dir: Path, container_ids: List[str], fail_on: Optional[Set[str]] = None):
        self.state_dir = Path(state_dir)
        self.container_ids = list(container_ids)
        self.fail_on = set(fail_on or [])
        self.list_error: Optional[Exception] = None
        self.created: List[Tuple[str, str]] = []
        self.resumed: List[Tuple[str, str]] = []
        self.deleted: List[Tuple[str, str]] = []
        self.threads: List[str] = []
        self.closed = False

        for container_id in self.container_ids:
            config_file = self.state_dir / container_id / "config.v2.json"
            config_file.parent.mkdir(parents=True, exist_ok=True)
            config_file.write_text(f'{{"ID": "{container_id}"}}')

    def list_running(self) -> List[Workload]:
        self.threads.append(threading.current_thread().name)
        if self.list_error is not None:
            raise self.list_error
        return [Workload(id=cid, name=f"name-{cid}") for cid in self.container_ids]

    def create_checkpoint(self, container_id: str, checkpoint_name: str, leave_running: bool = True) -> None:
        self.threads.append(threading.current_thread().name)
        if container_id in self.fail_on:
            raise ClientError(f"checkpoint of {container_id} rejected")

        dump = self.state_dir / container_id / "checkpoints" / checkpoint_name / "pages-1.img"
        dump.parent.mkdir(parents=True, exist_ok=True)
        dump.write_bytes(f"{container_id}:{checkpoint_name}".encode())
        self.created.append((container_id, checkpoint_name))

    def resume(self, container_id: str, checkpoint_name: str) -> None:
        self.resumed.append((container_id, checkpoint_name))

    def delete_checkpoint(self, container_id: str, checkpoint_name: str) -> None:
        if container_id in self.fail_on:
            raise ClientError(f"delete of {checkpoint_name} rejected")
        self.deleted.append((container_id, checkpoint_name))

    def close(self) -> None:
        self.closed = True


class FakeSFTPClient:
    """SFTP client whose remote filesystem lives under a local root."""

    def __init__(self, root: Path):
        self.root = root
        self.opened: List[str] = []
        self.closed = False

    def local(self, remote_path: str) -> Path:
        return self.root / remote_path.lstrip('/')

    def open(self, path: str, mode: str = 'r'):
        self.opened.append(path)
        return open(self.local(path), mode)

    def stat(self, path: str):
        return os.stat(self.local(path))

    def mkdir(self, path: str):
        self.local(path).mkdir(exist_ok=True)

    def close(self):
        self.closed = True


class FakeSSHClient:
    """
    SSH client that runs 'hydra-migrate restore' locally against the fake
    remote root and records every other command.
    """

    def __init__(self, root: Path, exit_status: int = 0):
        self.root = root
        self.exit_status = exit_status
        self.commands: List[str] = []
        self.sftp = FakeSFTPClient(root)
        self.closed = False
        transport = MagicMock()
        transport.is_active.return_value = True
        self._transport = transport

    def get_transport(self):
        return self._transport

    def open_sftp(self):
        return self.sftp

    def exec_command(self, command: str, timeout: Optional[float] = None):
        self.commands.append(command)
        argv = shlex.split(command)
        if argv[:2] == ['hydra-migrate', 'restore'] and self.exit_status == 0:
            restore_containers(self.sftp.local(argv[2]), self.sftp.local(argv[3]))

        stdout = MagicMock()
        stdout.channel.recv_exit_status.return_value = self.exit_status
        stdout.read.return_value = b""
        stderr = io.BytesIO(b"" if self.exit_status == 0 else b"boom")
        return io.BytesIO(), stdout, stderr

    def close(self):
        self.closed = True


class FakeDestination:
    """A destination host: records sessions opened to it."""

    def __init__(self, root: Path, exit_status: int = 0):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)
        self.exit_status = exit_status
        self.sessions: List[FakeSSHClient] = []
        self.addresses: List[str] = []

    def session_factory(self, address, ssh_config=None) -> SSHSession:
        client = FakeSSHClient(self.root, self.exit_status)
        self.sessions.append(client)
        self.addresses.append(str(address))
        return SSHSession(client, str(address))

    @property
    def commands(self) -> List[str]:
        return [cmd for session in self.sessions for cmd in session.commands]

    def local(self, remote_path: str) -> Path:
        return self.root / remote_path.lstrip('/')


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Drop handlers setup_logging attached during a test."""
    yield
    logger = logging.getLogger("hydra_migration")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    """Source host's container state directory."""
    path = tmp_path / "source" / "containers"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def migration_config(tmp_path: Path, state_dir: Path) -> MigrationConfig:
    """Configuration pointing at the temporary state directory."""
    return MigrationConfig(
        docker_host="unix:///var/run/docker.sock",
        state_dir=str(state_dir),
        work_dir=str(tmp_path / "work"),
        chunk_size=1024,
        remote=RemoteConfig(
            archive_dir="/tmp/hydra",
            state_dir="/var/lib/docker/containers"
        )
    )


@pytest.fixture
def workload_client(state_dir: Path) -> FakeWorkloadClient:
    """Engine with three running containers."""
    return FakeWorkloadClient(state_dir, ["c0ffee01", "c0ffee02", "c0ffee03"])


@pytest.fixture
def destination(tmp_path: Path) -> FakeDestination:
    """Fake destination host rooted in a temporary directory."""
    return FakeDestination(tmp_path / "destination")


@pytest.fixture
def sample_tree(tmp_path: Path) -> Path:
    """Directory tree with a top-level file, a nested file and an empty directory."""
    root = tmp_path / "tree"
    (root / "sub").mkdir(parents=True)
    (root / "empty").mkdir()
    (root / "a.txt").write_bytes(b"alpha\n")
    (root / "sub" / "b.txt").write_bytes(b"\x00\x01beta" * 1000)
    return root
