"""
Provider capability.

A provider represents the hosting environment's instance lifecycle: it
can boot a target instance and it tells the driving loop when the
current host is about to be reclaimed.
"""

import asyncio
import ipaddress
import logging
import time
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Union

from hydra_migration.core.exceptions import ProviderError

logger = logging.getLogger(__name__)

InstanceAddress = Union[str, ipaddress.IPv4Address, ipaddress.IPv6Address]


def parse_address(value: str) -> InstanceAddress:
    """Return an ip_address for IP literals and the plain string for host names."""
    try:
        return ipaddress.ip_address(value)
    except ValueError:
        return value


class Provider(ABC):
    """Abstract hosting environment contract."""

    @abstractmethod
    async def start_instance(self, instance_id: str) -> InstanceAddress:
        """
        Boot the instance and wait until it is reachable.

        Returns:
            Network address of the instance: an IPv4Address or IPv6Address,
            or the host name as str when the instance is known only by name

        Raises:
            ProviderError: If the instance cannot be started or never becomes reachable
        """
        pass

    @abstractmethod
    async def wait_until_termination_signal(self) -> timedelta:
        """
        Suspend until the environment announces reclamation of this host.

        Returns:
            Strictly positive lead time before forced termination
        """
        pass

    async def wait_until_reachable(
        self,
        address: InstanceAddress,
        port: int,
        timeout: float,
        interval: float = 2.0
    ) -> None:
        """Poll a TCP port on address until it accepts a connection."""
        deadline = time.monotonic() + timeout
        last_error: Exception = ProviderError("not attempted")

        while time.monotonic() < deadline:
            try:
                _, writer = await asyncio.wait_for(
                    asyncio.open_connection(str(address), port),
                    timeout=max(0.1, min(interval, deadline - time.monotonic()))
                )
            except (OSError, asyncio.TimeoutError) as e:
                last_error = e
                await asyncio.sleep(interval)
                continue

            writer.close()
            await writer.wait_closed()
            logger.info(f"Instance at {address}:{port} is reachable")
            return

        raise ProviderError(
            f"Instance at {address}:{port} not reachable after {timeout:.0f}s: {last_error}",
            details={'address': str(address), 'port': port}
        )
