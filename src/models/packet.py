"""
Relay data models

Defines the structures passed between the relay pipeline stages: transport
deliveries, extracted packet blobs, channel mappings and routing results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class EncodingHint(Enum):
    """How a packet blob was encoded inside the transport payload"""
    HEX = "hex"
    BASE64 = "base64"
    INT_ARRAY = "int_array"
    BINARY = "binary"


class RelayOutcome(Enum):
    """Terminal state of a single pipeline invocation"""
    DELIVERED = "delivered"
    NO_PACKET = "no_packet"
    DECODE_FAILED = "decode_failed"
    NOT_GROUP_TEXT = "not_group_text"
    ENCRYPTED = "encrypted"
    DUPLICATE = "duplicate"
    NO_ROUTE = "no_route"
    CHANNEL_UNAVAILABLE = "channel_unavailable"
    EMPTY_MESSAGE = "empty_message"
    SEND_FAILED = "send_failed"


@dataclass
class RawTransportMessage:
    """A single delivery from the MQTT transport"""
    topic: str
    payload: bytes = b""


@dataclass(frozen=True)
class PacketBlob:
    """Hex-encoded packet located inside a transport payload"""
    hex: str
    source_path: str = "root"
    encoding_hint: EncodingHint = EncodingHint.HEX


@dataclass(frozen=True)
class ChannelMapping:
    """Mesh channel to Discord channel mapping loaded from the channels file"""
    name: str
    channel_hash: str
    destination_channel_id: str
    secret: str = ""

    @property
    def label(self) -> str:
        """Display label used in relayed messages"""
        if self.name:
            return f"#{self.name}"
        if self.channel_hash:
            return f"hash {self.channel_hash}"
        return "unknown"


@dataclass(frozen=True)
class RoutingDecision:
    """Destination chosen for a decoded message"""
    destination_channel_id: Optional[str] = None
    mapping: Optional[ChannelMapping] = None

    @property
    def routable(self) -> bool:
        return bool(self.destination_channel_id)


@dataclass
class RelayResult:
    """Result of handling one transport message"""
    outcome: RelayOutcome
    detail: str = ""
    destination_channel_id: Optional[str] = None
    text: str = ""

    @property
    def delivered(self) -> bool:
        return self.outcome == RelayOutcome.DELIVERED


@dataclass
class RelayStatistics:
    """Per-outcome counters for relayed and dropped messages"""
    counts: dict = field(default_factory=lambda: {outcome: 0 for outcome in RelayOutcome})

    def record(self, outcome: RelayOutcome) -> None:
        self.counts[outcome] = self.counts.get(outcome, 0) + 1

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def delivered(self) -> int:
        return self.counts.get(RelayOutcome.DELIVERED, 0)

    @property
    def dropped(self) -> int:
        return self.total - self.delivered

    def to_dict(self):
        """Convert statistics to a plain dictionary"""
        return {outcome.value: count for outcome, count in self.counts.items()}
