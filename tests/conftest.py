"""
Global pytest configuration and fixtures for MeshCore relay testing.
"""
import json
import sys
import tempfile
import pytest
from pathlib import Path
from typing import Any, Dict

# Add src directory to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

# Add tests directory to path so shared mocks import as ``mocks``
tests_path = Path(__file__).parent
if str(tests_path) not in sys.path:
    sys.path.insert(0, str(tests_path))

from models.packet import ChannelMapping
from services.relay.channel_cache import DestinationChannelCache
from services.relay.channel_router import ChannelRouter
from services.relay.dedupe_cache import DedupeCache
from mocks.relay_mocks import FakeChannel, FakeChannelDirectory, TEST_CHANNEL_SECRET


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def channel_secret():
    """Channel secret shared by packet builders and channel mappings."""
    return TEST_CHANNEL_SECRET


@pytest.fixture
def general_mapping():
    """Mapping for a named channel with a configured destination."""
    return ChannelMapping(name="general", channel_hash="ab", destination_channel_id="123")


@pytest.fixture
def channel_directory():
    """Discord channel lookup with one text channel per known id."""
    return FakeChannelDirectory({
        "123": FakeChannel("123"),
        "999": FakeChannel("999"),
    })


@pytest.fixture
def router(general_mapping):
    return ChannelRouter({"ab": general_mapping})


@pytest.fixture
def dedupe_cache():
    return DedupeCache(45)


@pytest.fixture
def channel_cache(channel_directory):
    return DestinationChannelCache(channel_directory.resolve)


@pytest.fixture
def test_config() -> Dict[str, Any]:
    """Provide a complete relay configuration."""
    return {
        "app": {"name": "MeshCore Relay", "version": "1.0.0"},
        "mqtt": {
            "host": "broker.example.com",
            "port": 1883,
            "topic": "meshcore/#",
            "transport": "tcp",
            "ws_path": "/mqtt",
            "tls": False,
            "tls_insecure": False,
            "ca_cert": "",
            "client_id": "",
            "username": "",
            "password": "",
            "qos": 0,
        },
        "relay": {"dedupe_seconds": 45, "log_level": "info", "stats_interval": 300},
        "discord": {"token": "test-token", "default_channel_id": ""},
        "channels": {"file": "channels.json"},
        "logging": {"file": "", "console": True},
    }


@pytest.fixture
def channels_file(temp_dir, channel_secret):
    """Write a channels file mapping the test secret and an explicit hash."""
    path = temp_dir / "channels.json"
    path.write_text(json.dumps({
        "default_channel_id": "555",
        "channels": [
            {"name": "general", "secret": channel_secret, "discord_channel_id": "123"},
            {"name": "ops", "hash": "7F", "discordChannelId": "999"},
        ]
    }), encoding="utf-8")
    return path
