"""
Hydra container migration

Checkpoints running containers, ships their state to another host over
SSH and restores them there before the current host is reclaimed.
"""

__version__ = "0.1.0"

from hydra_migration.models.config import MigrationConfig
from hydra_migration.models.checkpoint import Checkpoint, CheckpointBatch
from hydra_migration.migration import Migration, DockerMigration
from hydra_migration.providers import Provider, create_provider
from hydra_migration.driver import MigrationDriver, MigrationOutcome

__all__ = [
    "MigrationConfig",
    "Checkpoint",
    "CheckpointBatch",
    "Migration",
    "DockerMigration",
    "Provider",
    "create_provider",
    "MigrationDriver",
    "MigrationOutcome",
]
