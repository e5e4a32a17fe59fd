"""
Remote transfer channel for Hydra migration.

This module provides the SSH session and SFTP primitives used to move
checkpoint archives to a destination host and trigger restoration there.
"""

from .ssh import (
    CommandResult,
    RemoteTransfer,
    SSHSession,
    create_remote_file,
    ensure_remote_directory,
    flush,
    open_session,
    open_transfer_subchannel,
    upload_file,
    write,
)

__all__ = [
    'CommandResult',
    'RemoteTransfer',
    'SSHSession',
    'create_remote_file',
    'ensure_remote_directory',
    'flush',
    'open_session',
    'open_transfer_subchannel',
    'upload_file',
    'write',
]
