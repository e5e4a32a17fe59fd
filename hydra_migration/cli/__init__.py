"""
Command line interface for Hydra migration.
"""

from .main import main

__all__ = ["main"]
