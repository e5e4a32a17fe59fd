"""
Data models for Hydra migration.

This module contains the Pydantic configuration models and the
checkpoint records passed between components.
"""

from hydra_migration.models.config import (
    MigrationConfig,
    SSHConfig,
    RemoteConfig,
    ProviderConfig,
    ProviderType,
    HostKeyPolicy,
)
from hydra_migration.models.checkpoint import (
    Checkpoint,
    CheckpointResult,
    CheckpointBatch,
    CheckpointNameAllocator,
)

__all__ = [
    # Configuration models
    "MigrationConfig",
    "SSHConfig",
    "RemoteConfig",
    "ProviderConfig",
    "ProviderType",
    "HostKeyPolicy",
    # Checkpoint models
    "Checkpoint",
    "CheckpointResult",
    "CheckpointBatch",
    "CheckpointNameAllocator",
]
