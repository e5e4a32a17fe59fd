"""
AWS spot instance provider.

Instances are started through the EC2 API (boto3). Reclamation is
detected by polling the instance metadata service for a spot
interruption notice, which AWS publishes two minutes before it stops or
terminates the instance.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta, UTC
from functools import partial
from typing import Any, Callable, Dict, Optional

import boto3
import httpx
from botocore.exceptions import BotoCoreError, ClientError as BotoClientError

from hydra_migration.core.exceptions import ProviderError
from hydra_migration.models.config import ProviderConfig
from hydra_migration.providers.base import InstanceAddress, Provider, parse_address

logger = logging.getLogger(__name__)

TOKEN_PATH = "/latest/api/token"
INSTANCE_ACTION_PATH = "/latest/meta-data/spot/instance-action"


class AWSSpotProvider(Provider):
    """Provider for EC2 spot capacity."""

    def __init__(
        self,
        config: ProviderConfig,
        ec2_client: Optional[Any] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC)
    ):
        self.config = config
        self._ec2 = ec2_client
        self._http_client = http_client
        self._clock = clock
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    @property
    def ec2(self) -> Any:
        if self._ec2 is None:
            self._ec2 = boto3.client('ec2', region_name=self.config.region)
        return self._ec2

    def _start_blocking(self, instance_id: str) -> str:
        ec2 = self.ec2
        try:
            ec2.start_instances(InstanceIds=[instance_id])
            ec2.get_waiter('instance_running').wait(InstanceIds=[instance_id])
            response = ec2.describe_instances(InstanceIds=[instance_id])
        except (BotoClientError, BotoCoreError) as e:
            raise ProviderError(
                f"Failed to start instance {instance_id}: {e}",
                details={'instance_id': instance_id}
            ) from e

        try:
            instance = response['Reservations'][0]['Instances'][0]
        except (KeyError, IndexError) as e:
            raise ProviderError(f"Instance {instance_id} not found after start") from e

        address = instance.get('PublicIpAddress') or instance.get('PrivateIpAddress')
        if not address:
            raise ProviderError(f"Instance {instance_id} has no IP address", details={'instance_id': instance_id})
        return address

    async def start_instance(self, instance_id: str) -> InstanceAddress:
        loop = asyncio.get_running_loop()
        address = parse_address(await loop.run_in_executor(None, partial(self._start_blocking, instance_id)))
        logger.info(f"Instance {instance_id} running at {address}")

        await self.wait_until_reachable(
            address,
            self.config.reachability_port,
            self.config.reachability_timeout
        )
        return address

    async def _get_token(self, http: httpx.AsyncClient) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        response = await http.put(
            TOKEN_PATH,
            headers={'X-aws-ec2-metadata-token-ttl-seconds': str(self.config.token_ttl)}
        )
        response.raise_for_status()
        self._token = response.text
        # Refreshed a minute before IMDS expires it.
        self._token_expires_at = time.monotonic() + max(1, self.config.token_ttl - 60)
        return self._token

    async def _get_instance_action(self, http: httpx.AsyncClient) -> Optional[Dict[str, Any]]:
        token = await self._get_token(http)
        response = await http.get(INSTANCE_ACTION_PATH, headers={'X-aws-ec2-metadata-token': token})

        if response.status_code == 404:
            return None
        if response.status_code == 401:
            self._token = None
            return None
        response.raise_for_status()
        return response.json()

    def lead_time_from_notice(self, notice: Dict[str, Any]) -> timedelta:
        """Turn an instance-action document into the remaining lead time."""
        try:
            action_time = datetime.fromisoformat(notice['time'])
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderError(f"Malformed spot interruption notice: {notice}") from e

        if action_time.tzinfo is None:
            action_time = action_time.replace(tzinfo=UTC)

        lead_time = action_time - self._clock()
        if lead_time <= timedelta(0):
            raise ProviderError(
                f"Spot interruption notice already expired at {action_time.isoformat()}",
                details={'notice': notice}
            )
        return lead_time

    async def wait_until_termination_signal(self) -> timedelta:
        http = self._http_client or httpx.AsyncClient(base_url=self.config.metadata_url, timeout=2.0)
        try:
            while True:
                try:
                    notice = await self._get_instance_action(http)
                except httpx.TransportError as e:
                    logger.warning(f"Instance metadata service unreachable: {e}")
                    notice = None
                except httpx.HTTPStatusError as e:
                    raise ProviderError(f"Instance metadata service error: {e}") from e

                if notice is not None:
                    lead_time = self.lead_time_from_notice(notice)
                    logger.warning(
                        f"Spot interruption notice: {notice.get('action')} in "
                        f"{lead_time.total_seconds():.0f}s"
                    )
                    return lead_time

                await asyncio.sleep(self.config.poll_interval)
        finally:
            if self._http_client is None:
                await http.aclose()
