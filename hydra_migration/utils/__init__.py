"""
Utilities module for Hydra migration.

This module contains helper functions and the logging setup
used throughout the application.
"""

from hydra_migration.utils.helpers import (
    format_bytes,
    format_duration,
    load_config_file,
    render_command,
)
from hydra_migration.utils.logging import (
    setup_logging,
    get_logger,
    LogCategory,
    OperationLogger,
)

__all__ = [
    # Helper functions
    "format_bytes",
    "format_duration",
    "load_config_file",
    "render_command",
    # Logging utilities
    "setup_logging",
    "get_logger",
    "LogCategory",
    "OperationLogger",
]
