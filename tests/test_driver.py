"""
Tests for the migration driving loop.
"""

import asyncio
from datetime import timedelta
from typing import List

import pytest

from hydra_migration.core.exceptions import ConfigurationError, ProviderError, TransferError
from hydra_migration.driver import MigrationDriver, OutcomeStatus
from hydra_migration.migration.base import Migration
from hydra_migration.models.checkpoint import Checkpoint
from hydra_migration.providers.base import Provider


class StubProvider(Provider):
    def __init__(self, lead_time: timedelta, address="10.0.0.8", start_error=None):
        self.lead_time = lead_time
        self.address = address
        self.start_error = start_error
        self.started: List[str] = []

    async def start_instance(self, instance_id):
        self.started.append(instance_id)
        if self.start_error:
            raise self.start_error
        return self.address

    async def wait_until_termination_signal(self):
        return self.lead_time


class StubMigration(Migration):
    def __init__(self, migrate_delay: float = 0.0, migrate_error=None):
        self.migrate_delay = migrate_delay
        self.migrate_error = migrate_error
        self.calls: List[str] = []
        self._checkpoints: List[Checkpoint] = []

    @property
    def checkpoints(self):
        return list(self._checkpoints)

    async def checkpoint(self):
        self.calls.append("checkpoint")
        self._checkpoints = [Checkpoint(checkpoint_name="1", container_id="a")]

    async def migrate(self, destination):
        self.calls.append(f"migrate:{destination}")
        await asyncio.sleep(self.migrate_delay)
        if self.migrate_error:
            raise self.migrate_error


class TestMigrationDriver:
    """Test cases for MigrationDriver.run_once."""

    def test_requires_destination_or_target(self):
        with pytest.raises(ConfigurationError):
            MigrationDriver(StubMigration(), StubProvider(timedelta(seconds=1)))

    @pytest.mark.asyncio
    async def test_completed(self):
        migration = StubMigration()
        driver = MigrationDriver(migration, StubProvider(timedelta(seconds=5)), destination="10.0.0.8")

        outcome = await driver.run_once()

        assert outcome.completed
        assert outcome.destination == "10.0.0.8"
        assert outcome.lead_time == timedelta(seconds=5)
        assert migration.calls == ["checkpoint", "migrate:10.0.0.8"]

    @pytest.mark.asyncio
    async def test_target_instance_started(self):
        provider = StubProvider(timedelta(seconds=5), address="10.0.0.9")
        migration = StubMigration()
        driver = MigrationDriver(migration, provider, target_instance_id="i-standby")

        outcome = await driver.run_once()

        assert provider.started == ["i-standby"]
        assert outcome.destination == "10.0.0.9"
        assert migration.calls[-1] == "migrate:10.0.0.9"

    @pytest.mark.asyncio
    async def test_lost_when_lead_time_runs_out(self):
        migration = StubMigration(migrate_delay=5)
        driver = MigrationDriver(migration, StubProvider(timedelta(milliseconds=100)), destination="10.0.0.8")

        outcome = await driver.run_once()

        assert outcome.status == OutcomeStatus.LOST
        assert not outcome.completed
        assert outcome.elapsed < 5

    @pytest.mark.asyncio
    async def test_failed_on_migration_error(self):
        migration = StubMigration(migrate_error=TransferError("connection reset"))
        driver = MigrationDriver(migration, StubProvider(timedelta(seconds=5)), destination="10.0.0.8")

        outcome = await driver.run_once()

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error == "connection reset"

    @pytest.mark.asyncio
    async def test_failed_when_target_cannot_start(self):
        provider = StubProvider(timedelta(seconds=5), start_error=ProviderError("capacity not available"))
        migration = StubMigration()
        driver = MigrationDriver(migration, provider, target_instance_id="i-standby")

        outcome = await driver.run_once()

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.destination is None
        assert migration.calls == []
