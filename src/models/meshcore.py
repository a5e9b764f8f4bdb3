"""
MeshCore packet models

Read-only structures produced by the MeshCore packet decoder.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class RouteType(Enum):
    """Packet routing mode (header bits 0-1)"""
    TRANSPORT_FLOOD = 0x00
    FLOOD = 0x01
    DIRECT = 0x02
    TRANSPORT_DIRECT = 0x03

    @property
    def has_transport_codes(self) -> bool:
        return self in (RouteType.TRANSPORT_FLOOD, RouteType.TRANSPORT_DIRECT)


class PayloadType(Enum):
    """Packet payload type (header bits 2-5)"""
    REQUEST = 0x00
    RESPONSE = 0x01
    TEXT_MESSAGE = 0x02
    ACK = 0x03
    ADVERT = 0x04
    GROUP_TEXT = 0x05
    GROUP_DATA = 0x06
    ANON_REQUEST = 0x07
    PATH = 0x08
    TRACE = 0x09
    MULTIPART = 0x0A
    RAW_CUSTOM = 0x0F
    UNKNOWN = -1

    @classmethod
    def from_value(cls, value: int) -> 'PayloadType':
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass
class DecryptedGroupText:
    """Plaintext content of a GroupText payload"""
    timestamp: int = 0
    flags: int = 0
    sender: str = ""
    message: str = ""


@dataclass
class GroupTextPayload:
    """GroupText payload, decrypted when a matching channel key was available"""
    channel_hash: str = ""
    cipher_mac: str = ""
    ciphertext: str = ""
    decrypted: Optional[DecryptedGroupText] = None

    @property
    def is_decrypted(self) -> bool:
        return self.decrypted is not None


@dataclass
class DecodedPacket:
    """A decoded MeshCore packet"""
    payload_type: PayloadType
    route_type: RouteType = RouteType.FLOOD
    payload_version: int = 0
    message_hash: str = ""
    path: List[str] = field(default_factory=list)
    raw_payload: str = ""
    decoded: Optional[GroupTextPayload] = None

    @property
    def is_group_text(self) -> bool:
        return self.payload_type == PayloadType.GROUP_TEXT
