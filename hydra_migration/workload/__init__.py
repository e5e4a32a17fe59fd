"""
Workload engine clients.
"""

from .base import Workload, WorkloadClient
from .docker import DockerWorkloadClient

__all__ = [
    'Workload',
    'WorkloadClient',
    'DockerWorkloadClient',
]
