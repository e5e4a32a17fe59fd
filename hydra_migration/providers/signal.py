"""
Provider for hosts without a provider API.

Reclamation is announced by a POSIX signal delivered to the process
(SIGTERM by default, as sent by systemd or an orchestrator before it
kills the host), and target instances are looked up in a static
id-to-address table.
"""

import asyncio
import logging
import signal
from datetime import timedelta

from hydra_migration.core.exceptions import ProviderError
from hydra_migration.models.config import ProviderConfig
from hydra_migration.providers.base import InstanceAddress, Provider, parse_address

logger = logging.getLogger(__name__)


class SignalProvider(Provider):
    """Provider driven by a local signal and a static instance table."""

    def __init__(self, config: ProviderConfig):
        self.config = config
        try:
            self.signum = signal.Signals[config.signal_name]
        except KeyError as e:
            raise ProviderError(f"Unknown signal: {config.signal_name}") from e

    async def start_instance(self, instance_id: str) -> InstanceAddress:
        try:
            address = parse_address(self.config.instances[instance_id])
        except KeyError as e:
            raise ProviderError(
                f"Unknown instance: {instance_id}",
                details={'known_instances': sorted(self.config.instances)}
            ) from e

        await self.wait_until_reachable(
            address,
            self.config.reachability_port,
            self.config.reachability_timeout
        )
        return address

    async def wait_until_termination_signal(self) -> timedelta:
        loop = asyncio.get_running_loop()
        received = asyncio.Event()

        loop.add_signal_handler(self.signum, received.set)
        logger.info(f"Waiting for {self.signum.name}")
        try:
            await received.wait()
        finally:
            loop.remove_signal_handler(self.signum)

        logger.warning(f"Received {self.signum.name}; {self.config.lead_time_seconds:.0f}s until termination")
        return self.config.lead_time
