"""
Docker workload client using docker-py.

docker-py has no checkpoint API, so checkpoint creation, listing,
deletion and checkpoint-aware start go through the Engine API endpoints
on the low-level APIClient. The Engine must run with experimental
features enabled and CRIU installed for these endpoints to succeed.
"""

import logging
from typing import Any, Dict, List, Optional

import docker
from docker.errors import DockerException

from hydra_migration.core.exceptions import ClientError
from hydra_migration.workload.base import Workload, WorkloadClient

logger = logging.getLogger(__name__)


class DockerWorkloadClient(WorkloadClient):
    """
    Workload client backed by a Docker Engine.

    The underlying DockerClient is created on first use so that building
    an orchestrator never touches the engine socket.

    The checkpoint calls use APIClient request helpers that are private to
    docker-py (_post_json, _url, _raise_for_status, _result), so the
    dependency is pinned below the next major release.
    """

    def __init__(
        self,
        docker_host: str,
        timeout: int = 60,
        api_version: str = 'auto',
        client: Optional[docker.DockerClient] = None
    ):
        self.docker_host = docker_host
        self.timeout = timeout
        self.api_version = api_version
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.DockerClient(
                    base_url=self.docker_host,
                    version=self.api_version,
                    timeout=self.timeout
                )
            except DockerException as e:
                raise ClientError(
                    f"Cannot connect to Docker at {self.docker_host}: {e}",
                    details={'docker_host': self.docker_host}
                ) from e
            logger.info(f"Docker connection established to {self.docker_host}")
        return self._client

    def list_running(self) -> List[Workload]:
        try:
            containers = self.client.containers.list()
        except (DockerException, OSError) as e:
            raise ClientError(f"Failed to list running containers: {e}") from e

        workloads = []
        for container in containers:
            tags = getattr(container.image, 'tags', None) or []
            workloads.append(Workload(
                id=container.id,
                name=container.name,
                image=tags[0] if tags else None,
                status=container.status,
                labels=dict(container.labels or {})
            ))
        return workloads

    def create_checkpoint(self, container_id: str, checkpoint_name: str, leave_running: bool = True) -> None:
        api = self.client.api
        payload = {'CheckpointID': checkpoint_name, 'Exit': not leave_running}
        try:
            response = api._post_json(
                api._url('/containers/{0}/checkpoints', container_id),
                data=payload
            )
            api._raise_for_status(response)
        except (DockerException, OSError) as e:
            raise ClientError(
                f"Failed to checkpoint container {container_id}: {e}",
                details={'container_id': container_id, 'checkpoint_name': checkpoint_name}
            ) from e
        logger.debug(f"Created checkpoint {checkpoint_name} of container {container_id}")

    def resume(self, container_id: str, checkpoint_name: str) -> None:
        api = self.client.api
        try:
            response = api._post(
                api._url('/containers/{0}/start', container_id),
                params={'checkpoint': checkpoint_name}
            )
            api._raise_for_status(response)
        except (DockerException, OSError) as e:
            raise ClientError(
                f"Failed to resume container {container_id} from {checkpoint_name}: {e}",
                details={'container_id': container_id, 'checkpoint_name': checkpoint_name}
            ) from e
        logger.info(f"Resumed container {container_id} from checkpoint {checkpoint_name}")

    def delete_checkpoint(self, container_id: str, checkpoint_name: str) -> None:
        api = self.client.api
        try:
            response = api._delete(
                api._url('/containers/{0}/checkpoints/{1}', container_id, checkpoint_name)
            )
            api._raise_for_status(response)
        except (DockerException, OSError) as e:
            raise ClientError(
                f"Failed to delete checkpoint {checkpoint_name} of container {container_id}: {e}",
                details={'container_id': container_id, 'checkpoint_name': checkpoint_name}
            ) from e

    def list_checkpoints(self, container_id: str) -> List[Dict[str, Any]]:
        api = self.client.api
        try:
            response = api._get(api._url('/containers/{0}/checkpoints', container_id))
            return api._result(response, json=True) or []
        except (DockerException, OSError) as e:
            raise ClientError(f"Failed to list checkpoints of container {container_id}: {e}") from e

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
