"""
Core module for Hydra migration.

This module contains the exception hierarchy shared by every component.
"""

from hydra_migration.core.exceptions import (
    HydraMigrationError,
    ConfigurationError,
    ClientError,
    TransferError,
    RemoteCommandError,
    ArchiveError,
    ProviderError,
)

__all__ = [
    "HydraMigrationError",
    "ConfigurationError",
    "ClientError",
    "TransferError",
    "RemoteCommandError",
    "ArchiveError",
    "ProviderError",
]
