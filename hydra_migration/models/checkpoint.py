"""
Checkpoint records produced by a checkpoint batch.

A Checkpoint ties a generated checkpoint name to the workload it was
taken from. A CheckpointBatch keeps one CheckpointResult per enumerated
workload so a caller can see exactly which workloads were captured.
"""

import secrets
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Callable, Dict, List, Optional


@dataclass(frozen=True)
class Checkpoint:
    """A named checkpoint of one workload."""
    checkpoint_name: str
    container_id: str


@dataclass
class CheckpointResult:
    """Outcome of checkpointing a single workload."""
    container_id: str
    checkpoint_name: str
    success: bool
    error: Optional[str] = None

    def to_checkpoint(self) -> Checkpoint:
        return Checkpoint(
            checkpoint_name=self.checkpoint_name,
            container_id=self.container_id
        )


@dataclass
class CheckpointBatch:
    """Per-workload results of one checkpoint_all_containers call."""
    batch_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    results: List[CheckpointResult] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def checkpoints(self) -> List[Checkpoint]:
        """Successful checkpoints, in enumeration order."""
        return [r.to_checkpoint() for r in self.results if r.success]

    @property
    def failures(self) -> Dict[str, str]:
        """Map of container id to error text for failed workloads."""
        return {r.container_id: r.error or "unknown error" for r in self.results if not r.success}

    @property
    def success(self) -> bool:
        return all(r.success for r in self.results)

    def __len__(self) -> int:
        return len(self.results)


class CheckpointNameAllocator:
    """
    Issues checkpoint names from the 64-bit identifier space.

    Names are the decimal text of a random unsigned 64-bit integer. The
    most recent max_names names are remembered and a colliding draw is
    redrawn, so no name is issued twice while it is still tracked. Older
    names are forgotten first; by then their checkpoints have long been
    replaced.
    """

    BITS = 64
    MAX_NAMES = 65536

    def __init__(self, random_source: Optional[Callable[[int], int]] = None, max_names: int = MAX_NAMES):
        if max_names < 1:
            raise ValueError("max_names must be positive")
        self._random_source = random_source or secrets.randbits
        self._max_names = max_names
        self._issued: OrderedDict[str, None] = OrderedDict()
        self._lock = threading.Lock()

    def allocate(self) -> str:
        with self._lock:
            while True:
                name = str(self._random_source(self.BITS))
                if name not in self._issued:
                    self._issued[name] = None
                    while len(self._issued) > self._max_names:
                        self._issued.popitem(last=False)
                    return name

    def release(self, name: str) -> None:
        """Forget a name once its checkpoint has been deleted."""
        with self._lock:
            self._issued.pop(name, None)

    def __len__(self) -> int:
        return len(self._issued)
