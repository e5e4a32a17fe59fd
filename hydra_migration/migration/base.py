"""
Migration capability.

Any backend able to checkpoint its workloads and relocate them to another
host implements Migration. A driving loop calls checkpoint() and then
migrate() once the hosting provider announces reclamation.
"""

import ipaddress
from abc import ABC, abstractmethod
from typing import List, Union

from hydra_migration.models.checkpoint import Checkpoint

Address = Union[str, ipaddress.IPv4Address, ipaddress.IPv6Address]


class Migration(ABC):
    """Abstract checkpoint-then-relocate contract."""

    @property
    @abstractmethod
    def checkpoints(self) -> List[Checkpoint]:
        """Checkpoints captured by the most recent checkpoint() call."""
        pass

    @abstractmethod
    async def checkpoint(self) -> None:
        """
        Capture all managed workloads, replacing the previous registry.

        Raises:
            ClientError: If the engine cannot be queried or any workload failed
        """
        pass

    @abstractmethod
    async def migrate(self, destination: Address) -> None:
        """
        Transfer captured state to destination and restore it there.

        Raises:
            TransferError: If the session, channel or remote restore fails
            ArchiveError: If the state cannot be archived
        """
        pass
