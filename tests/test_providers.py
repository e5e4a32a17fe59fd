"""
Tests for hosting providers.
"""

import asyncio
import ipaddress
import json
import os
import signal
from datetime import datetime, timedelta, UTC
from unittest.mock import MagicMock

import httpx
import pytest
import pytest_asyncio
from botocore.exceptions import ClientError as BotoClientError

from hydra_migration.core.exceptions import ProviderError
from hydra_migration.models.config import ProviderConfig, ProviderType
from hydra_migration.providers import AWSSpotProvider, SignalProvider, create_provider
from hydra_migration.providers.base import parse_address

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=UTC)


@pytest_asyncio.fixture
async def listening_port():
    """A local TCP server standing in for a booted instance's SSH daemon."""
    async def handle(reader, writer):
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    yield port
    server.close()
    await server.wait_closed()


def metadata_transport(responses):
    """MockTransport answering IMDS paths from a list of (status, body) per path."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.method, request.url.path, dict(request.headers)))
        if request.url.path == "/latest/api/token":
            return httpx.Response(200, text="token-1")
        status, body = responses.pop(0)
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    return httpx.MockTransport(handler), calls


class TestParseAddress:
    """Test cases for parse_address."""

    def test_ip_literal(self):
        assert parse_address("10.0.0.8") == ipaddress.IPv4Address("10.0.0.8")
        assert parse_address("::1") == ipaddress.IPv6Address("::1")

    def test_host_name(self):
        assert parse_address("standby.internal") == "standby.internal"


class TestCreateProvider:
    """Test cases for the provider factory."""

    def test_signal_provider(self):
        assert isinstance(create_provider(ProviderConfig(type=ProviderType.SIGNAL)), SignalProvider)

    def test_aws_provider(self):
        assert isinstance(create_provider(ProviderConfig(type=ProviderType.AWS_SPOT)), AWSSpotProvider)


class TestAWSSpotProvider:
    """Test cases for AWSSpotProvider."""

    def make_provider(self, ec2=None, http=None, **config):
        config.setdefault('type', ProviderType.AWS_SPOT)
        config.setdefault('poll_interval', 0.01)
        return AWSSpotProvider(ProviderConfig(**config), ec2_client=ec2, http_client=http, clock=lambda: NOW)

    @pytest.mark.asyncio
    async def test_start_instance(self, listening_port):
        ec2 = MagicMock()
        ec2.describe_instances.return_value = {
            'Reservations': [{'Instances': [{'PrivateIpAddress': '127.0.0.1'}]}]
        }
        provider = self.make_provider(ec2, reachability_port=listening_port, reachability_timeout=5)

        address = await provider.start_instance("i-0123456789abcdef0")

        assert address == ipaddress.IPv4Address("127.0.0.1")
        ec2.start_instances.assert_called_once_with(InstanceIds=["i-0123456789abcdef0"])
        ec2.get_waiter.assert_called_once_with('instance_running')

    @pytest.mark.asyncio
    async def test_start_instance_prefers_public_ip(self, listening_port):
        ec2 = MagicMock()
        ec2.describe_instances.return_value = {
            'Reservations': [{'Instances': [{'PublicIpAddress': '127.0.0.1', 'PrivateIpAddress': '10.1.2.3'}]}]
        }
        provider = self.make_provider(ec2, reachability_port=listening_port, reachability_timeout=5)

        assert await provider.start_instance("i-1") == ipaddress.IPv4Address("127.0.0.1")

    @pytest.mark.asyncio
    async def test_start_instance_api_error(self):
        ec2 = MagicMock()
        ec2.start_instances.side_effect = BotoClientError(
            {'Error': {'Code': 'IncorrectInstanceState', 'Message': 'terminated'}},
            'StartInstances'
        )
        provider = self.make_provider(ec2)

        with pytest.raises(ProviderError) as exc_info:
            await provider.start_instance("i-1")

        assert exc_info.value.details['instance_id'] == "i-1"

    @pytest.mark.asyncio
    async def test_start_instance_without_address(self):
        ec2 = MagicMock()
        ec2.describe_instances.return_value = {'Reservations': [{'Instances': [{}]}]}

        with pytest.raises(ProviderError, match="no IP address"):
            await self.make_provider(ec2).start_instance("i-1")

    def test_lead_time_from_notice(self):
        provider = self.make_provider()

        lead_time = provider.lead_time_from_notice({'action': 'terminate', 'time': '2026-10-18T12:02:00Z'})

        assert lead_time == timedelta(minutes=2)

    def test_expired_notice(self):
        provider = self.make_provider()

        with pytest.raises(ProviderError, match="expired"):
            provider.lead_time_from_notice({'action': 'stop', 'time': '2026-10-18T11:59:00Z'})

    def test_malformed_notice(self):
        with pytest.raises(ProviderError):
            self.make_provider().lead_time_from_notice({'action': 'stop'})

    @pytest.mark.asyncio
    async def test_waits_for_interruption_notice(self):
        transport, calls = metadata_transport([
            (404, None),
            (404, None),
            (200, {'action': 'terminate', 'time': '2026-10-18T12:01:30Z'}),
        ])
        http = httpx.AsyncClient(transport=transport, base_url="http://169.254.169.254")
        provider = self.make_provider(http=http)

        lead_time = await provider.wait_until_termination_signal()
        await http.aclose()

        assert lead_time == timedelta(seconds=90)
        token_requests = [c for c in calls if c[1] == "/latest/api/token"]
        assert len(token_requests) == 1
        assert token_requests[0][0] == "PUT"
        assert token_requests[0][2]['x-aws-ec2-metadata-token-ttl-seconds'] == "21600"
        action_requests = [c for c in calls if c[1] == "/latest/meta-data/spot/instance-action"]
        assert all(c[2]['x-aws-ec2-metadata-token'] == "token-1" for c in action_requests)

    @pytest.mark.asyncio
    async def test_unauthorized_refreshes_token(self):
        transport, calls = metadata_transport([
            (401, None),
            (200, {'action': 'stop', 'time': '2026-10-18T12:02:00Z'}),
        ])
        http = httpx.AsyncClient(transport=transport, base_url="http://169.254.169.254")

        await self.make_provider(http=http).wait_until_termination_signal()
        await http.aclose()

        assert len([c for c in calls if c[1] == "/latest/api/token"]) == 2

    @pytest.mark.asyncio
    async def test_metadata_service_error(self):
        transport, _ = metadata_transport([(500, None)])
        http = httpx.AsyncClient(transport=transport, base_url="http://169.254.169.254")

        with pytest.raises(ProviderError):
            await self.make_provider(http=http).wait_until_termination_signal()
        await http.aclose()

    @pytest.mark.asyncio
    async def test_transport_error_keeps_polling(self):
        attempts = []

        def handler(request):
            if request.url.path == "/latest/api/token":
                attempts.append(request)
                if len(attempts) == 1:
                    raise httpx.ConnectError("connection refused", request=request)
                return httpx.Response(200, text="token-1")
            return httpx.Response(200, content=json.dumps(
                {'action': 'terminate', 'time': '2026-10-18T12:02:00Z'}).encode())

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://169.254.169.254")

        lead_time = await self.make_provider(http=http).wait_until_termination_signal()
        await http.aclose()

        assert lead_time == timedelta(minutes=2)
        assert len(attempts) == 2


class TestSignalProvider:
    """Test cases for SignalProvider."""

    def test_unknown_signal(self):
        with pytest.raises(ProviderError):
            SignalProvider(ProviderConfig(signal_name="SIGNOPE"))

    @pytest.mark.asyncio
    async def test_start_known_instance(self, listening_port):
        config = ProviderConfig(
            instances={"standby": "127.0.0.1"},
            reachability_port=listening_port,
            reachability_timeout=5
        )

        address = await SignalProvider(config).start_instance("standby")

        assert address == ipaddress.IPv4Address("127.0.0.1")

    @pytest.mark.asyncio
    async def test_start_instance_by_host_name(self, listening_port):
        config = ProviderConfig(
            instances={"standby": "localhost"},
            reachability_port=listening_port,
            reachability_timeout=5
        )

        address = await SignalProvider(config).start_instance("standby")

        assert address == "localhost"
        assert isinstance(address, str)

    @pytest.mark.asyncio
    async def test_start_unknown_instance(self):
        with pytest.raises(ProviderError) as exc_info:
            await SignalProvider(ProviderConfig(instances={"standby": "10.0.0.8"})).start_instance("other")

        assert exc_info.value.details['known_instances'] == ["standby"]

    @pytest.mark.asyncio
    async def test_unreachable_instance(self):
        provider = SignalProvider(ProviderConfig())

        with pytest.raises(ProviderError, match="not reachable"):
            await provider.wait_until_reachable("127.0.0.1", 1, 0.3, interval=0.05)

    @pytest.mark.asyncio
    async def test_termination_signal(self):
        provider = SignalProvider(ProviderConfig(signal_name="SIGUSR1", lead_time_seconds=45))
        loop = asyncio.get_running_loop()
        loop.call_later(0.05, os.kill, os.getpid(), signal.SIGUSR1)

        lead_time = await asyncio.wait_for(provider.wait_until_termination_signal(), timeout=5)

        assert lead_time == timedelta(seconds=45)
