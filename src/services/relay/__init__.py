"""
MeshCore to Discord relay

Extracts MeshCore packets from MQTT payloads, decodes GroupText messages,
suppresses duplicates and forwards the text to mapped Discord channels.
"""

from .blob_extractor import extract, extract_packet_hex
from .channel_cache import DestinationChannelCache
from .channel_config import ChannelConfig, load_channel_config, normalize_hex
from .channel_router import ChannelRouter
from .dedupe_cache import DedupeCache, build_dedupe_key
from .message_formatter import MessageFormatter
from .pipeline import RelayPipeline

__all__ = [
    'extract', 'extract_packet_hex', 'DestinationChannelCache', 'ChannelConfig',
    'load_channel_config', 'normalize_hex', 'ChannelRouter', 'DedupeCache',
    'build_dedupe_key', 'MessageFormatter', 'RelayPipeline'
]
