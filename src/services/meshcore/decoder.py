"""
MeshCore packet decoder

Parses the MeshCore over-the-air packet layout:

    header (1) | transport codes (4, transport routes only) | path_len (1) |
    path (path_len) | payload

Header bits 0-1 hold the route type, bits 2-5 the payload type and bits 6-7
the payload version. GroupText payloads are further split into channel hash,
cipher MAC and ciphertext, and decrypted when the key store holds a secret for
the channel.
"""

import hashlib
import logging
from typing import Optional

from models.meshcore import DecodedPacket, GroupTextPayload, PayloadType, RouteType
from .crypto import CIPHER_MAC_SIZE, ChannelKeyStore, DecryptionError, decrypt_group_text


logger = logging.getLogger(__name__)

TRANSPORT_CODES_SIZE = 4
MESSAGE_HASH_SIZE = 8


class PacketDecodeError(Exception):
    """Packet bytes could not be parsed"""
    pass


def calculate_message_hash(payload_type: int, payload: bytes, path_len: int = 0) -> str:
    """
    Compute the identity hash of a packet, stable across repeaters.

    The path is excluded because every hop rewrites it; TRACE packets mix in
    the path length since their payload is otherwise identical per hop.
    """
    digest = hashlib.sha256()
    digest.update(bytes([payload_type & 0xFF]))
    if payload_type == PayloadType.TRACE.value:
        digest.update(path_len.to_bytes(2, "little"))
    digest.update(payload)
    return digest.digest()[:MESSAGE_HASH_SIZE].hex().upper()


def _decode_group_text(payload: bytes, key_store: Optional[ChannelKeyStore]) -> GroupTextPayload:
    header_size = 1 + CIPHER_MAC_SIZE
    if len(payload) < header_size:
        raise PacketDecodeError(f"GroupText payload too short: {len(payload)} bytes")

    channel_hash = payload[0:1].hex()
    cipher_mac = payload[1:header_size]
    ciphertext = payload[header_size:]

    group_text = GroupTextPayload(
        channel_hash=channel_hash,
        cipher_mac=cipher_mac.hex(),
        ciphertext=ciphertext.hex(),
    )

    if key_store is None:
        return group_text

    for secret in key_store.secrets_for(channel_hash):
        try:
            group_text.decrypted = decrypt_group_text(secret, cipher_mac, ciphertext)
            break
        except DecryptionError as e:
            logger.debug(f"Secret rejected for channel {channel_hash}: {e}")

    return group_text


def decode(hex_string: str, key_store: Optional[ChannelKeyStore] = None) -> DecodedPacket:
    """
    Decode a hex-encoded MeshCore packet.

    Args:
        hex_string: Packet bytes as hex
        key_store: Channel secrets used to decrypt GroupText payloads

    Returns:
        DecodedPacket; ``decoded`` is populated for GroupText only

    Raises:
        PacketDecodeError: if the packet is not valid hex or is truncated
    """
    try:
        raw = bytes.fromhex((hex_string or "").strip())
    except ValueError as e:
        raise PacketDecodeError(f"Packet is not valid hex: {e}") from e

    if len(raw) < 2:
        raise PacketDecodeError(f"Packet too short: {len(raw)} bytes")

    header = raw[0]
    route_type = RouteType(header & 0x03)
    payload_type_value = (header >> 2) & 0x0F
    payload_type = PayloadType.from_value(payload_type_value)
    payload_version = (header >> 6) & 0x03

    offset = 1
    if route_type.has_transport_codes:
        if len(raw) < offset + TRANSPORT_CODES_SIZE + 1:
            raise PacketDecodeError("Packet truncated in transport codes")
        offset += TRANSPORT_CODES_SIZE

    if len(raw) <= offset:
        raise PacketDecodeError("Packet truncated before path length")
    path_len = raw[offset]
    offset += 1

    if len(raw) < offset + path_len:
        raise PacketDecodeError(f"Packet truncated in path: need {path_len} bytes")
    path = [f"{hop:02x}" for hop in raw[offset:offset + path_len]]
    offset += path_len

    payload = raw[offset:]

    packet = DecodedPacket(
        payload_type=payload_type,
        route_type=route_type,
        payload_version=payload_version,
        message_hash=calculate_message_hash(payload_type_value, payload, path_len),
        path=path,
        raw_payload=payload.hex(),
    )

    if payload_type == PayloadType.GROUP_TEXT:
        packet.decoded = _decode_group_text(payload, key_store)

    return packet
