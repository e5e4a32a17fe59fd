"""
Docker integration for Hydra.

Containers are migrated by checkpointing them with CRIU through the
Docker Engine, copying the engine's container state directory to the
destination host and restoring the containers there. Docker does not
support custom checkpoint directories (moby/moby#37344), so the whole
state directory is shipped, including containers that were not
checkpointed.
"""

import asyncio
import logging
import posixpath
import tempfile
import threading
import uuid
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from hydra_migration.archive import build_archive, restore_containers
from hydra_migration.bridge import run_in_worker_thread
from hydra_migration.core.exceptions import ClientError
from hydra_migration.migration.base import Address, Migration
from hydra_migration.models.checkpoint import (
    Checkpoint,
    CheckpointBatch,
    CheckpointNameAllocator,
    CheckpointResult,
)
from hydra_migration.models.config import MigrationConfig
from hydra_migration.transfer.ssh import RemoteTransfer, SSHSession, open_session
from hydra_migration.utils.helpers import format_bytes, render_command
from hydra_migration.utils.logging import LogCategory, OperationLogger
from hydra_migration.workload.base import WorkloadClient
from hydra_migration.workload.docker import DockerWorkloadClient

logger = logging.getLogger(__name__)


class DockerMigration(Migration):
    """
    Migration orchestrator for Docker containers.

    The Docker client is blocking and runs its own connection pool, so
    every call into it happens on a dedicated worker thread (see
    run_in_worker_thread). Checkpoint batches run one at a time, as do
    migrations.
    """

    def __init__(
        self,
        config: MigrationConfig,
        client: Optional[WorkloadClient] = None,
        session_factory: Callable[..., SSHSession] = open_session,
        name_allocator: Optional[CheckpointNameAllocator] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Migration configuration, built once at startup
            client: Workload client (defaults to a DockerWorkloadClient on config.docker_host)
            session_factory: Opens SSH sessions to destination hosts
            name_allocator: Checkpoint name allocator shared across batches
        """
        self.config = config
        self.client = client or DockerWorkloadClient(config.docker_host)
        self._session_factory = session_factory
        self._allocator = name_allocator or CheckpointNameAllocator()

        self._checkpoints: List[Checkpoint] = []
        self._last_batch: Optional[CheckpointBatch] = None

        self._checkpoint_lock = asyncio.Lock()
        # Held by the worker thread for a whole batch; outlives a cancelled await.
        self._batch_running = threading.Lock()
        self._migrate_lock = asyncio.Lock()

    @property
    def checkpoints(self) -> List[Checkpoint]:
        return list(self._checkpoints)

    @property
    def last_batch(self) -> Optional[CheckpointBatch]:
        return self._last_batch

    def _checkpoint_worker(self, batch: CheckpointBatch, buffer_lock: threading.Lock) -> CheckpointBatch:
        with self._batch_running:
            return self._run_batch(batch, buffer_lock)

    def _run_batch(self, batch: CheckpointBatch, buffer_lock: threading.Lock) -> CheckpointBatch:
        # Runs on the worker thread; the only place the client is called during a batch.
        workloads = self.client.list_running()
        logger.info(f"Checkpointing {len(workloads)} running containers (batch {batch.batch_id})")

        for workload in workloads:
            checkpoint_name = self._allocator.allocate()
            try:
                self.client.create_checkpoint(
                    workload.id,
                    checkpoint_name,
                    leave_running=self.config.leave_running
                )
            except ClientError as e:
                logger.error(f"Checkpoint of container {workload.id} failed: {e}")
                result = CheckpointResult(workload.id, checkpoint_name, success=False, error=str(e))
            else:
                result = CheckpointResult(workload.id, checkpoint_name, success=True)

            with buffer_lock:
                batch.results.append(result)

        return batch

    async def checkpoint_all_containers(self) -> CheckpointBatch:
        """
        Checkpoint every running container.

        Returns one CheckpointResult per container; a failure on one
        container does not stop the others.
        A batch whose caller was cancelled keeps running on its thread and
        the next batch waits for it to finish.

        Raises:
            ClientError: If running containers cannot be enumerated
        """
        async with self._checkpoint_lock:
            op = OperationLogger("checkpoint", LogCategory.CHECKPOINT, logger)
            batch = CheckpointBatch()
            buffer_lock = threading.Lock()

            with op.step("checkpoint_batch"):
                await run_in_worker_thread(
                    self._checkpoint_worker,
                    batch,
                    buffer_lock,
                    thread_name=f"hydra-checkpoint-{batch.batch_id}"
                )

            if not batch.success:
                op.warning(
                    f"{len(batch.failures)} of {len(batch)} containers failed to checkpoint",
                    batch_id=batch.batch_id,
                    failures=batch.failures
                )
            return batch

    async def checkpoint(self) -> None:
        batch = await self.checkpoint_all_containers()
        self._last_batch = batch
        self._checkpoints = batch.checkpoints

        if not batch.success:
            raise ClientError(
                f"{len(batch.failures)} of {len(batch)} containers failed to checkpoint",
                details={'batch_id': batch.batch_id, 'failures': batch.failures}
            )

    def _operation_id(self) -> str:
        prefix = self._last_batch.batch_id if self._last_batch else "live"
        return f"{prefix}-{uuid.uuid4().hex[:8]}"

    async def restore_all_containers(
        self,
        destination: Address,
        remote: Optional[RemoteTransfer] = None
    ) -> str:
        """
        Archive the container state directory and upload it to destination.

        The archive is written to a fresh temporary directory and removed
        once the upload returns. A failed upload leaves a partial remote
        file and is not retried.

        Returns:
            Remote path of the uploaded archive
        """
        owns_remote = remote is None
        if remote is None:
            remote = RemoteTransfer(destination, self.config.ssh, self._session_factory)

        archive_name = f"containers-{self._operation_id()}.zip"
        remote_archive = posixpath.join(self.config.remote.archive_dir, archive_name)
        op = OperationLogger("migrate", LogCategory.TRANSFER, logger)
        loop = asyncio.get_running_loop()

        work_dir = self.config.work_dir
        if work_dir:
            Path(work_dir).mkdir(parents=True, exist_ok=True)

        try:
            with op.step("open_session"):
                await remote.connect()

            with tempfile.TemporaryDirectory(prefix="hydra-", dir=work_dir) as tmp:
                local_archive = Path(tmp) / archive_name

                with op.step("archive_state"):
                    await loop.run_in_executor(None, build_archive, self.config.state_dir, local_archive)

                with op.step("upload_archive"):
                    size = await remote.upload(local_archive, remote_archive, chunk_size=self.config.chunk_size)

            op.info(f"Transferred {format_bytes(size)} to {destination}:{remote_archive}")
        finally:
            if owns_remote:
                await remote.close()

        return remote_archive

    async def trigger_remote_restore(
        self,
        remote: RemoteTransfer,
        remote_archive: str,
        checkpoints: List[Checkpoint]
    ) -> None:
        """Unpack the uploaded archive on the destination and resume the checkpointed containers."""
        op = OperationLogger("migrate", LogCategory.RESTORE, logger)
        remote_config = self.config.remote

        with op.step("remote_restore"):
            await remote.run_command(render_command(
                remote_config.restore_command,
                archive=remote_archive,
                dest=remote_config.state_dir
            ))

        if not remote_config.resume_after_restore:
            return

        with op.step("remote_resume"):
            for checkpoint in checkpoints:
                await remote.run_command(render_command(
                    remote_config.resume_command,
                    checkpoint_name=checkpoint.checkpoint_name,
                    container_id=checkpoint.container_id
                ))

    async def migrate(self, destination: Address) -> None:
        async with self._migrate_lock:
            checkpoints = list(self._checkpoints)
            if not checkpoints:
                logger.warning(
                    "migrate called without checkpoints; transferring the live state directory"
                )

            async with RemoteTransfer(destination, self.config.ssh, self._session_factory) as remote:
                remote_archive = await self.restore_all_containers(destination, remote=remote)
                await self.trigger_remote_restore(remote, remote_archive, checkpoints)

            logger.info(f"Migrated {len(checkpoints)} checkpointed containers to {destination}")

            if self.config.prune_after_migrate and checkpoints:
                await self.prune_checkpoints()

    async def restore_containers(self, archive_path: Union[str, Path], destination: Union[str, Path]) -> List[Path]:
        """Extract an archive into destination, entry by entry."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, restore_containers, archive_path, destination)

    async def resume_checkpoint(self, checkpoint: Checkpoint) -> None:
        """Start a container from one of its checkpoints on this host."""
        await run_in_worker_thread(
            self.client.resume,
            checkpoint.container_id,
            checkpoint.checkpoint_name,
            thread_name=f"hydra-resume-{checkpoint.checkpoint_name}"
        )

    def _prune_worker(self, checkpoints: List[Checkpoint]) -> Dict[str, str]:
        failures: Dict[str, str] = {}
        for checkpoint in checkpoints:
            try:
                self.client.delete_checkpoint(checkpoint.container_id, checkpoint.checkpoint_name)
            except ClientError as e:
                logger.warning(f"Failed to delete checkpoint {checkpoint.checkpoint_name}: {e}")
                failures[checkpoint.checkpoint_name] = str(e)
            else:
                self._allocator.release(checkpoint.checkpoint_name)
        return failures

    async def prune_checkpoints(self) -> Dict[str, str]:
        """
        Delete the registry's checkpoints from the source engine.

        Returns:
            Map of checkpoint name to error text for deletions that failed
        """
        checkpoints = list(self._checkpoints)
        failures = await run_in_worker_thread(self._prune_worker, checkpoints, thread_name="hydra-prune")
        logger.info(f"Pruned {len(checkpoints) - len(failures)} of {len(checkpoints)} checkpoints")
        return failures

    def close(self) -> None:
        self.client.close()
