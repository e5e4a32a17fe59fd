"""
Migration backends.

This module provides the Migration capability and its Docker
implementation.
"""

from .base import Migration
from .docker import DockerMigration

__all__ = [
    "Migration",
    "DockerMigration",
]
