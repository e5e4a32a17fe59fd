"""
Hosting providers.

This module provides the Provider capability, its implementations and a
factory that picks one from configuration.
"""

from hydra_migration.core.exceptions import ProviderError
from hydra_migration.models.config import ProviderConfig, ProviderType

from .base import InstanceAddress, Provider
from .aws import AWSSpotProvider
from .signal import SignalProvider


def create_provider(config: ProviderConfig) -> Provider:
    """Create the provider named by config.type."""
    if config.type == ProviderType.AWS_SPOT:
        return AWSSpotProvider(config)
    if config.type == ProviderType.SIGNAL:
        return SignalProvider(config)
    raise ProviderError(f"Unsupported provider: {config.type}")


__all__ = [
    "InstanceAddress",
    "Provider",
    "AWSSpotProvider",
    "SignalProvider",
    "create_provider",
]
