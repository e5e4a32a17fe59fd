"""
Custom exceptions for Hydra migration.

Every failure surfaced by the orchestrator, the transfer channel, the
archive codec or a provider derives from HydraMigrationError so callers
can catch the whole family at once.
"""

from typing import Any, Dict, Optional


class HydraMigrationError(Exception):
    """Base exception class for Hydra migration errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}


class ConfigurationError(HydraMigrationError):
    """Raised when required configuration is missing or invalid."""
    pass


class ClientError(HydraMigrationError):
    """Raised when the workload engine rejects an enumeration or checkpoint request."""
    pass


class TransferError(HydraMigrationError):
    """Raised when the remote session, SFTP channel or remote file I/O fails."""
    pass


class RemoteCommandError(TransferError):
    """Raised when a command on the destination host exits non-zero."""

    def __init__(
        self,
        message: str,
        command: str = "",
        exit_status: int = -1,
        stderr: str = "",
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr


class ArchiveError(HydraMigrationError):
    """Raised when an archive cannot be built, read or extracted."""
    pass


class ProviderError(HydraMigrationError):
    """Raised when a hosting provider operation fails."""
    pass
