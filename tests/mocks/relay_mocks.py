"""
Mock implementations for relay testing

Provides stand-ins for Discord channels and the packet decoder, plus a
builder for real encrypted GroupText packets.
"""

import hashlib
import hmac
from typing import Dict, List, Optional

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from models.meshcore import (
    DecodedPacket, DecryptedGroupText, GroupTextPayload, PayloadType, RouteType
)


TEST_CHANNEL_SECRET = "8b3387e9c5cdea6ac9e5edbaa115cd72"


class FakeChannel:
    """Discord text channel that records sent messages"""

    def __init__(self, channel_id: str, fail_with: Optional[Exception] = None):
        self.id = channel_id
        self.fail_with = fail_with
        self.sends: List[str] = []

    async def send(self, content: str):
        if self.fail_with is not None:
            raise self.fail_with
        self.sends.append(content)
        return content


class FakeChannelDirectory:
    """Channel resolver backed by a dict; unknown ids resolve to None"""

    def __init__(self, channels: Dict[str, FakeChannel], fail_with: Optional[Exception] = None):
        self.channels = channels
        self.fail_with = fail_with
        self.lookups: List[str] = []

    async def resolve(self, channel_id: str) -> Optional[FakeChannel]:
        self.lookups.append(channel_id)
        if self.fail_with is not None:
            raise self.fail_with
        return self.channels.get(channel_id)


class StubDecoder:
    """Decoder returning a fixed packet, recording every call"""

    def __init__(self, packet: Optional[DecodedPacket] = None, error: Optional[Exception] = None):
        self.packet = packet
        self.error = error
        self.calls: List[str] = []

    def __call__(self, hex_string: str, key_store=None) -> DecodedPacket:
        self.calls.append(hex_string)
        if self.error is not None:
            raise self.error
        return self.packet


def make_group_text_packet(message: str = "hello", sender: str = "alice",
                           channel_hash: str = "ab", message_hash: str = "A1B2C3D4E5F60708",
                           timestamp: int = 1700000000) -> DecodedPacket:
    """Build an already-decrypted GroupText packet as the decoder would return it"""
    return DecodedPacket(
        payload_type=PayloadType.GROUP_TEXT,
        route_type=RouteType.FLOOD,
        message_hash=message_hash,
        decoded=GroupTextPayload(
            channel_hash=channel_hash,
            cipher_mac="0000",
            ciphertext="00" * 16,
            decrypted=DecryptedGroupText(timestamp=timestamp, flags=0, sender=sender, message=message),
        ),
    )


def make_encrypted_packet(channel_hash: str = "ab", message_hash: str = "A1B2C3D4E5F60708") -> DecodedPacket:
    """Build a GroupText packet that no configured secret could decrypt"""
    return DecodedPacket(
        payload_type=PayloadType.GROUP_TEXT,
        message_hash=message_hash,
        decoded=GroupTextPayload(channel_hash=channel_hash, cipher_mac="0000", ciphertext="00" * 16),
    )


def encrypt_group_text(secret_hex: str, text: str, timestamp: int = 1700000000, flags: int = 0) -> bytes:
    """Encrypt a GroupText plaintext and prefix channel hash and MAC"""
    secret = bytes.fromhex(secret_hex)
    plaintext = timestamp.to_bytes(4, "little") + bytes([flags]) + text.encode("utf-8")
    if len(plaintext) % 16:
        plaintext += b"\x00" * (16 - len(plaintext) % 16)

    encryptor = Cipher(algorithms.AES(secret[:16]), modes.ECB()).encryptor()
    ciphertext = encryptor.update(plaintext) + encryptor.finalize()

    mac = hmac.new(secret.ljust(32, b"\x00"), ciphertext, hashlib.sha256).digest()[:2]
    channel_hash = hashlib.sha256(secret).digest()[:1]
    return channel_hash + mac + ciphertext


def build_packet(payload_type: int, payload: bytes, route_type: int = RouteType.FLOOD.value,
                 path: bytes = b"", transport_codes: bytes = b"\x00\x00\x00\x00", version: int = 0) -> bytes:
    """Assemble raw MeshCore packet bytes"""
    header = (route_type & 0x03) | ((payload_type & 0x0F) << 2) | ((version & 0x03) << 6)
    packet = bytes([header])
    if route_type in (RouteType.TRANSPORT_FLOOD.value, RouteType.TRANSPORT_DIRECT.value):
        packet += transport_codes
    return packet + bytes([len(path)]) + path + payload


def build_group_text_hex(secret_hex: str = TEST_CHANNEL_SECRET, text: str = "alice: hello",
                         timestamp: int = 1700000000, path: bytes = b"") -> str:
    """Hex of a complete flood-routed GroupText packet"""
    payload = encrypt_group_text(secret_hex, text, timestamp)
    return build_packet(PayloadType.GROUP_TEXT.value, payload, path=path).hex()
