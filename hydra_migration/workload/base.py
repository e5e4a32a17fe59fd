"""
Base classes for workload engine clients.

A workload client enumerates running workloads and creates, resumes and
deletes named checkpoints. Implementations are blocking; the orchestrator
only calls them from a dedicated worker thread.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class Workload:
    """A running workload as reported by the engine."""
    id: str
    name: Optional[str] = None
    image: Optional[str] = None
    status: str = "running"
    labels: Dict[str, str] = field(default_factory=dict)


class WorkloadClient(ABC):
    """Abstract interface to a checkpoint-capable workload engine."""

    @abstractmethod
    def list_running(self) -> List[Workload]:
        """
        Enumerate running workloads.

        Raises:
            ClientError: If the engine cannot be queried
        """
        pass

    @abstractmethod
    def create_checkpoint(self, container_id: str, checkpoint_name: str, leave_running: bool = True) -> None:
        """
        Create a named checkpoint of a workload.

        Raises:
            ClientError: If the engine rejects the checkpoint
        """
        pass

    @abstractmethod
    def resume(self, container_id: str, checkpoint_name: str) -> None:
        """Start a workload from a named checkpoint."""
        pass

    @abstractmethod
    def delete_checkpoint(self, container_id: str, checkpoint_name: str) -> None:
        """Remove a named checkpoint from the engine."""
        pass

    def list_checkpoints(self, container_id: str) -> List[Dict[str, Any]]:
        """List the checkpoints the engine holds for a workload."""
        return []

    def close(self) -> None:
        """Release connections held by the client."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
