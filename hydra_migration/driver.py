"""
Driving loop for preemption-aware migration.

The driver waits for the provider's termination signal and then races
checkpoint() followed by migrate() against the announced lead time.
Running out of time is an expected loss, reported as an outcome rather
than raised.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Optional

from hydra_migration.core.exceptions import ConfigurationError, HydraMigrationError
from hydra_migration.migration.base import Address, Migration
from hydra_migration.providers.base import Provider
from hydra_migration.utils.logging import LogCategory, OperationLogger

logger = logging.getLogger(__name__)


class OutcomeStatus(str, Enum):
    """Result of one signal-to-migration run."""
    COMPLETED = "completed"
    LOST = "lost"
    FAILED = "failed"


@dataclass
class MigrationOutcome:
    """What happened after a termination signal."""
    status: OutcomeStatus
    lead_time: timedelta
    elapsed: float
    destination: Optional[str] = None
    error: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.status == OutcomeStatus.COMPLETED


class MigrationDriver:
    """
    Connects a Provider to a Migration backend.

    The destination is either a fixed address or the address of
    target_instance_id, started through the provider once the signal
    arrives.
    """

    def __init__(
        self,
        migration: Migration,
        provider: Provider,
        destination: Optional[Address] = None,
        target_instance_id: Optional[str] = None
    ):
        if destination is None and target_instance_id is None:
            raise ConfigurationError("Either a destination or a target instance id is required")

        self.migration = migration
        self.provider = provider
        self.destination = destination
        self.target_instance_id = target_instance_id

    async def _resolve_destination(self) -> Address:
        if self.destination is not None:
            return self.destination
        return await self.provider.start_instance(self.target_instance_id)

    async def _checkpoint_and_migrate(self, op: OperationLogger, destination_holder: list) -> None:
        with op.step("resolve_destination"):
            destination = await self._resolve_destination()
        destination_holder.append(destination)

        with op.step("checkpoint"):
            await self.migration.checkpoint()
        with op.step("migrate"):
            await self.migration.migrate(destination)

    async def run_once(self) -> MigrationOutcome:
        """Wait for one termination signal and migrate within its lead time."""
        lead_time = await self.provider.wait_until_termination_signal()
        op = OperationLogger("driver", LogCategory.DRIVER, logger)
        op.info(f"Termination signal received; budget {lead_time.total_seconds():.1f}s")

        destination_holder: list = []
        started = time.monotonic()
        status = OutcomeStatus.COMPLETED
        error: Optional[str] = None

        try:
            await asyncio.wait_for(
                self._checkpoint_and_migrate(op, destination_holder),
                timeout=lead_time.total_seconds()
            )
        except asyncio.TimeoutError:
            status = OutcomeStatus.LOST
            error = f"Migration did not finish within {lead_time.total_seconds():.1f}s"
            logger.error(error)
        except HydraMigrationError as e:
            status = OutcomeStatus.FAILED
            error = str(e)
            logger.error(f"Migration failed: {e}")

        elapsed = time.monotonic() - started
        destination = str(destination_holder[0]) if destination_holder else None

        if status == OutcomeStatus.COMPLETED:
            op.info(f"Migration to {destination} completed in {elapsed:.1f}s")

        return MigrationOutcome(
            status=status,
            lead_time=lead_time,
            elapsed=elapsed,
            destination=destination,
            error=error
        )
