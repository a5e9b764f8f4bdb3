"""
Data models for the MeshCore relay

Contains the data classes shared by the decoder and the relay pipeline.
"""

from .meshcore import (
    RouteType, PayloadType, DecodedPacket, GroupTextPayload, DecryptedGroupText
)
from .packet import (
    EncodingHint, RelayOutcome, RawTransportMessage, PacketBlob,
    ChannelMapping, RoutingDecision, RelayResult, RelayStatistics
)

__all__ = [
    'RouteType', 'PayloadType', 'DecodedPacket', 'GroupTextPayload', 'DecryptedGroupText',
    'EncodingHint', 'RelayOutcome', 'RawTransportMessage', 'PacketBlob',
    'ChannelMapping', 'RoutingDecision', 'RelayResult', 'RelayStatistics'
]
