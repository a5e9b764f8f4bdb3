"""
Unit tests for the relay service lifecycle

Discord and MQTT are replaced with fakes; the pipeline is real.
"""

import asyncio
import json
import logging
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from core.config import ConfigurationManager
from models.packet import ChannelMapping, RelayOutcome
from services.relay.channel_config import ChannelConfig
from services.relay.relay_service import RelayService
from mocks.relay_mocks import FakeChannel, FakeChannelDirectory, StubDecoder, make_group_text_packet


PAYLOAD = json.dumps({"packet_hex": "15" + "00" * 19}).encode()


class FakeMQTTClient:
    """Records construction and lifecycle calls"""

    instances = []

    def __init__(self, config, on_message=None, logger=None):
        self.config = config
        self.on_message = on_message
        self.connected = False
        self.disconnected = False
        FakeMQTTClient.instances.append(self)

    async def connect(self):
        self.connected = True
        return True

    async def disconnect(self):
        self.disconnected = True

    def get_stats(self):
        return {'messages_received': 0}


@pytest.fixture
def config_manager(temp_dir):
    manager = ConfigurationManager(str(temp_dir), environ={
        'DISCORD_TOKEN': 'token',
        'MQTT_HOST': 'broker.example.com',
        'RELAY_STATS_INTERVAL': '0',
    })
    manager.load_config()
    return manager


@pytest.fixture
def directory():
    return FakeChannelDirectory({"123": FakeChannel("123")})


@pytest.fixture
def discord_client(directory):
    client = MagicMock()
    client.login = AsyncMock()
    client.wait_until_ready = AsyncMock()
    client.close = AsyncMock()
    client.resolve_channel = directory.resolve
    return client


@pytest.fixture
def channel_config():
    mapping = ChannelMapping(name="general", channel_hash="ab", destination_channel_id="123")
    return ChannelConfig(channel_map={"ab": mapping})


@pytest.fixture
def service(config_manager, discord_client, channel_config):
    FakeMQTTClient.instances = []
    return RelayService(
        config_manager,
        discord_client=discord_client,
        mqtt_client_factory=FakeMQTTClient,
        decoder=StubDecoder(make_group_text_packet()),
        channel_config=channel_config,
    )


class TestLifecycle:
    """Tests for start and stop"""

    @pytest.mark.asyncio
    async def test_start_logs_in_before_mqtt(self, service, discord_client):
        await service.start()
        try:
            discord_client.login.assert_awaited_once()
            discord_client.start_gateway.assert_called_once()
            discord_client.wait_until_ready.assert_awaited_once()

            mqtt = FakeMQTTClient.instances[0]
            assert mqtt.connected
            assert mqtt.config['host'] == 'broker.example.com'
            assert mqtt.on_message == service.on_transport_message
        finally:
            await service.stop()

    @pytest.mark.asyncio
    async def test_login_failure_prevents_mqtt(self, service, discord_client):
        discord_client.login.side_effect = RuntimeError("Improper token has been passed.")

        with pytest.raises(RuntimeError):
            await service.start()

        assert FakeMQTTClient.instances == []

    @pytest.mark.asyncio
    async def test_stop_closes_connections(self, service, discord_client):
        await service.start()
        await service.stop()

        assert FakeMQTTClient.instances[0].disconnected
        discord_client.close.assert_awaited_once()
        assert not service.running

    @pytest.mark.asyncio
    async def test_warns_without_destinations(self, config_manager, discord_client, caplog):
        service = RelayService(
            config_manager,
            discord_client=discord_client,
            mqtt_client_factory=FakeMQTTClient,
            channel_config=ChannelConfig(),
        )
        with caplog.at_level(logging.WARNING):
            await service.start()
        await service.stop()

        assert "No default Discord channel and no channel mappings configured" in caplog.text


class TestProcessing:
    """Tests for transport message handling"""

    @pytest.mark.asyncio
    async def test_transport_message_is_relayed(self, service, directory):
        await service.start()
        try:
            service.on_transport_message("meshcore/gw/packets", PAYLOAD)
            await asyncio.gather(*list(service._inflight))
        finally:
            await service.stop()

        assert directory.channels["123"].sends == ["[MeshCore #general] alice: hello"]

    @pytest.mark.asyncio
    async def test_process_returns_result(self, service):
        result = await service.process("meshcore/gw/packets", PAYLOAD)
        assert result.outcome == RelayOutcome.DELIVERED

    @pytest.mark.asyncio
    async def test_process_contains_unexpected_errors(self, service):
        service.pipeline.handle = AsyncMock(side_effect=KeyError("boom"))
        assert await service.process("t", PAYLOAD) is None

    def test_components_follow_configuration(self, service, config_manager):
        assert service.dedupe_cache.window_millis == config_manager.get_dedupe_seconds() * 1000
        assert len(service.router) == 1
        assert service.key_store is None


class TestBackgroundTasks:
    """Tests for the dedupe sweep and stats reporter loops"""

    @pytest.mark.asyncio
    async def test_sweep_loop_removes_stale_entries(self, service):
        service.dedupe_cache.sweep_interval_millis = 10
        service.dedupe_cache.should_relay("stale", 0)
        service.dedupe_cache.should_relay("fresh", int(time.time() * 1000))

        await service.start()
        try:
            await asyncio.sleep(0.05)
            assert "stale" not in service.dedupe_cache
            assert "fresh" in service.dedupe_cache
        finally:
            await service.stop()

    @pytest.mark.asyncio
    async def test_stats_reporter_logs_counts(self, service, config_manager, caplog):
        with patch.object(config_manager, 'get_stats_interval', return_value=0.01):
            with caplog.at_level(logging.INFO):
                await service.start()
                try:
                    await service.process("meshcore/gw/packets", PAYLOAD)
                    await asyncio.sleep(0.05)
                finally:
                    await service.stop()

        assert "Relay Stats - received=0, delivered=1" in caplog.text
        assert len(service._background_tasks) == 0

    @pytest.mark.asyncio
    async def test_stats_reporter_disabled_by_zero_interval(self, service):
        await service.start()
        try:
            assert len(service._background_tasks) == 1
        finally:
            await service.stop()
